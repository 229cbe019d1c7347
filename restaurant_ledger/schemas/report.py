# restaurant_ledger/schemas/report.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from restaurant_ledger.schemas.entities import LedgerModel

GroupBy = Literal["day", "week", "month"]


class DateRange(LedgerModel):
    start_date: str
    end_date: str


class CategoryShare(LedgerModel):
    category: str
    amount: float
    percentage: float = Field(..., description="Porcentaje sobre el total, 1 decimal")


# --- Gastos ---
class ExpenseListSummary(LedgerModel):
    total_amount: float
    expense_count: int
    date_range: Optional[DateRange] = None
    date: Optional[str] = None
    category: Optional[str] = None


class ExpenseSummary(LedgerModel):
    total_amount: float
    expense_count: int
    average_daily_expense: float
    average_expense_amount: float
    date_range: Optional[DateRange] = None
    unique_days: int


class ExpenseReport(LedgerModel):
    summary: ExpenseSummary
    category_breakdown: dict[str, float]
    payment_method_breakdown: dict[str, float]
    daily_totals: dict[str, float]
    top_categories: list[CategoryShare]


# --- Ventas ---
class SaleFilters(LedgerModel):
    category: Optional[str] = None
    item_name: Optional[str] = None
    payment_method: Optional[str] = None


class SaleListSummary(LedgerModel):
    total_revenue: float
    total_quantity: float
    sale_count: int
    average_order_value: float
    date_range: Optional[DateRange] = None
    date: Optional[str] = None
    filters: SaleFilters = Field(default_factory=SaleFilters)


class SalesSummary(LedgerModel):
    total_revenue: float
    total_quantity: float
    sale_count: int
    average_daily_revenue: float
    average_order_value: float
    date_range: Optional[DateRange] = None
    unique_days: int


class DailySales(LedgerModel):
    revenue: float
    quantity: float
    order_count: int


class TopItem(LedgerModel):
    item_name: str
    revenue: float
    quantity: float
    sale_count: int
    average_price: float
    percentage: float


class SalesReport(LedgerModel):
    summary: SalesSummary
    category_breakdown: dict[str, float]
    payment_method_breakdown: dict[str, float]
    daily_totals: dict[str, DailySales]
    top_categories: list[CategoryShare]
    top_items: list[TopItem]


class PeriodItem(LedgerModel):
    item_name: str
    quantity: float
    revenue: float


class PeriodSales(LedgerModel):
    revenue: float
    quantity: float
    order_count: int
    average_order_value: float
    top_items: list[PeriodItem]


class SalesTrends(LedgerModel):
    revenue_growth: float = 0.0
    quantity_growth: float = 0.0
    order_count_growth: float = 0.0


class SalesAnalytics(LedgerModel):
    group_by: GroupBy
    date_range: Optional[DateRange] = None
    trends: SalesTrends
    time_based_data: dict[str, PeriodSales]
