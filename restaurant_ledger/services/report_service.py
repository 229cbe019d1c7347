# restaurant_ledger/services/report_service.py
"""Pure aggregations over already-fetched records; nothing here touches the store."""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any, Optional

from restaurant_ledger.schemas.entities import ExpenseEntry, OrderItem, SaleEntry
from restaurant_ledger.schemas.report import (
    CategoryShare,
    DailySales,
    DateRange,
    ExpenseListSummary,
    ExpenseReport,
    ExpenseSummary,
    GroupBy,
    PeriodItem,
    PeriodSales,
    SaleFilters,
    SaleListSummary,
    SalesAnalytics,
    SalesReport,
    SalesSummary,
    SalesTrends,
    TopItem,
)

TOP_CATEGORIES = 5
TOP_ITEMS = 10
TOP_ITEMS_PER_PERIOD = 3


def _money(value: float) -> float:
    return round(value, 2)


def _percentage(part: float, total: float) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _growth(latest: float, previous: float) -> float:
    return round((latest - previous) / previous * 100, 2) if previous > 0 else 0.0


def _date_range(start_date: Optional[str], end_date: Optional[str]) -> Optional[DateRange]:
    if start_date and end_date:
        return DateRange(start_date=str(start_date), end_date=str(end_date))
    return None


def _top_categories(totals: dict[str, float], grand_total: float) -> list[CategoryShare]:
    ranked = sorted(totals.items(), key=lambda pair: pair[1], reverse=True)[:TOP_CATEGORIES]
    return [
        CategoryShare(category=name, amount=_money(amount), percentage=_percentage(amount, grand_total))
        for name, amount in ranked
    ]


# =========================
# Pedidos
# =========================
def calculate_order_total(items: Iterable[OrderItem | dict[str, Any]]) -> float:
    total = 0.0
    for item in items:
        line = item if isinstance(item, OrderItem) else OrderItem.model_validate(item)
        total += line.unit_price * line.quantity
    return _money(total)


# =========================
# Gastos
# =========================
def summarize_expense_list(
    entries: Sequence[ExpenseEntry],
    *,
    date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
) -> ExpenseListSummary:
    return ExpenseListSummary(
        total_amount=_money(sum(entry.amount for entry in entries)),
        expense_count=len(entries),
        date_range=_date_range(start_date, end_date),
        date=date,
        category=category,
    )


def summarize_expenses(
    entries: Sequence[ExpenseEntry],
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> ExpenseReport:
    total = sum(entry.amount for entry in entries)
    by_category: dict[str, float] = defaultdict(float)
    by_method: dict[str, float] = defaultdict(float)
    by_day: dict[str, float] = defaultdict(float)
    for entry in entries:
        by_category[entry.category] += entry.amount
        by_method[entry.payment_method] += entry.amount
        by_day[entry.date.isoformat()] += entry.amount

    count = len(entries)
    return ExpenseReport(
        summary=ExpenseSummary(
            total_amount=_money(total),
            expense_count=count,
            average_daily_expense=_money(total / len(by_day)) if by_day else 0.0,
            average_expense_amount=_money(total / count) if count else 0.0,
            date_range=_date_range(start_date, end_date),
            unique_days=len(by_day),
        ),
        category_breakdown={name: _money(amount) for name, amount in by_category.items()},
        payment_method_breakdown={name: _money(amount) for name, amount in by_method.items()},
        daily_totals={day: _money(amount) for day, amount in sorted(by_day.items())},
        top_categories=_top_categories(by_category, total),
    )


# =========================
# Ventas
# =========================
def summarize_sale_list(
    entries: Sequence[SaleEntry],
    *,
    date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    filters: Optional[SaleFilters] = None,
) -> SaleListSummary:
    revenue = sum(entry.total_amount for entry in entries)
    count = len(entries)
    return SaleListSummary(
        total_revenue=_money(revenue),
        total_quantity=_money(sum(entry.quantity for entry in entries)),
        sale_count=count,
        average_order_value=_money(revenue / count) if count else 0.0,
        date_range=_date_range(start_date, end_date),
        date=date,
        filters=filters or SaleFilters(),
    )


def summarize_sales(
    entries: Sequence[SaleEntry],
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> SalesReport:
    revenue = sum(entry.total_amount for entry in entries)
    quantity = sum(entry.quantity for entry in entries)
    by_category: dict[str, float] = defaultdict(float)
    by_method: dict[str, float] = defaultdict(float)
    by_day: dict[str, dict[str, float]] = defaultdict(lambda: {"revenue": 0.0, "quantity": 0.0, "order_count": 0})
    by_item: dict[str, dict[str, float]] = defaultdict(lambda: {"revenue": 0.0, "quantity": 0.0, "count": 0})

    for entry in entries:
        by_category[entry.category] += entry.total_amount
        by_method[entry.payment_method] += entry.total_amount
        day = by_day[entry.date.isoformat()]
        day["revenue"] += entry.total_amount
        day["quantity"] += entry.quantity
        day["order_count"] += 1
        item = by_item[entry.item_name]
        item["revenue"] += entry.total_amount
        item["quantity"] += entry.quantity
        item["count"] += 1

    count = len(entries)
    ranked_items = sorted(by_item.items(), key=lambda pair: pair[1]["revenue"], reverse=True)[:TOP_ITEMS]
    return SalesReport(
        summary=SalesSummary(
            total_revenue=_money(revenue),
            total_quantity=_money(quantity),
            sale_count=count,
            average_daily_revenue=_money(revenue / len(by_day)) if by_day else 0.0,
            average_order_value=_money(revenue / count) if count else 0.0,
            date_range=_date_range(start_date, end_date),
            unique_days=len(by_day),
        ),
        category_breakdown={name: _money(amount) for name, amount in by_category.items()},
        payment_method_breakdown={name: _money(amount) for name, amount in by_method.items()},
        daily_totals={
            day: DailySales(
                revenue=_money(data["revenue"]),
                quantity=_money(data["quantity"]),
                order_count=int(data["order_count"]),
            )
            for day, data in sorted(by_day.items())
        },
        top_categories=_top_categories(by_category, revenue),
        top_items=[
            TopItem(
                item_name=name,
                revenue=_money(data["revenue"]),
                quantity=_money(data["quantity"]),
                sale_count=int(data["count"]),
                average_price=_money(data["revenue"] / data["quantity"]),
                percentage=_percentage(data["revenue"], revenue),
            )
            for name, data in ranked_items
        ],
    )


def _period_key(entry: SaleEntry, group_by: GroupBy) -> str:
    if group_by == "week":
        # Semanas que empiezan en domingo.
        start = entry.date - dt.timedelta(days=(entry.date.weekday() + 1) % 7)
        return start.isoformat()
    if group_by == "month":
        return entry.date.isoformat()[:7]
    return entry.date.isoformat()


def sales_analytics(
    entries: Sequence[SaleEntry],
    *,
    group_by: GroupBy = "day",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> SalesAnalytics:
    periods: dict[str, dict[str, Any]] = {}
    for entry in entries:
        period = periods.setdefault(
            _period_key(entry, group_by),
            {"revenue": 0.0, "quantity": 0.0, "order_count": 0, "items": defaultdict(lambda: [0.0, 0.0])},
        )
        period["revenue"] += entry.total_amount
        period["quantity"] += entry.quantity
        period["order_count"] += 1
        item = period["items"][entry.item_name]
        item[0] += entry.quantity
        item[1] += entry.total_amount

    keys = sorted(periods)
    trends = SalesTrends()
    if len(keys) >= 2:
        latest, previous = periods[keys[-1]], periods[keys[-2]]
        trends = SalesTrends(
            revenue_growth=_growth(latest["revenue"], previous["revenue"]),
            quantity_growth=_growth(latest["quantity"], previous["quantity"]),
            order_count_growth=_growth(latest["order_count"], previous["order_count"]),
        )

    time_based: dict[str, PeriodSales] = {}
    for key in keys:
        data = periods[key]
        ranked = sorted(data["items"].items(), key=lambda pair: pair[1][1], reverse=True)[:TOP_ITEMS_PER_PERIOD]
        time_based[key] = PeriodSales(
            revenue=_money(data["revenue"]),
            quantity=_money(data["quantity"]),
            order_count=data["order_count"],
            average_order_value=_money(data["revenue"] / data["order_count"]),
            top_items=[
                PeriodItem(item_name=name, quantity=_money(qty), revenue=_money(amount))
                for name, (qty, amount) in ranked
            ],
        )

    return SalesAnalytics(
        group_by=group_by,
        date_range=_date_range(start_date, end_date),
        trends=trends,
        time_based_data=time_based,
    )
