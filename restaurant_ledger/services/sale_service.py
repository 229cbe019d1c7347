from __future__ import annotations

import datetime as dt
from datetime import datetime, timezone
from typing import Optional

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.domain import codec
from restaurant_ledger.schemas.entities import SaleEntry
from restaurant_ledger.schemas.report import GroupBy, SaleFilters, SalesAnalytics, SalesReport
from restaurant_ledger.schemas.sale import SaleCreate, SaleList, SaleUpdate
from restaurant_ledger.services import report_service, restaurant_records

logger = get_logger("restaurant_ledger.sales")

LABEL = "sale"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[dt.date]) -> Optional[str]:
    return value.isoformat() if value else None


async def _fetch(store, restaurant_id, **dates) -> list[SaleEntry]:
    items = await restaurant_records.fetch_dated(store, restaurant_id, codec.SALE_PREFIX, **dates)
    return [codec.decode_sale(item) for item in items]


async def create_sale(store: RecordStore, payload: SaleCreate) -> SaleEntry:
    now = _utcnow()
    entry = SaleEntry(
        **payload.model_dump(),
        sale_id=codec.new_record_id(),
        total_amount=payload.quantity * payload.unit_price,
        created_at=now,
        updated_at=now,
    )
    await restaurant_records.create(store, codec.encode_sale(entry), LABEL)
    logger.info(
        "Sale saved",
        extra={"restaurant_id": entry.restaurant_id, "sale_id": entry.sale_id, "total_amount": entry.total_amount},
    )
    return entry


async def list_sales(
    store: RecordStore,
    restaurant_id: str,
    *,
    date: Optional[dt.date] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    filters: Optional[SaleFilters] = None,
) -> SaleList:
    filters = filters or SaleFilters()
    sales = await _fetch(store, restaurant_id, date=date, start_date=start_date, end_date=end_date)
    if filters.category:
        sales = [sale for sale in sales if sale.category == filters.category]
    if filters.item_name:
        # Coincidencia parcial, como el filtro "contains" del listado.
        sales = [sale for sale in sales if filters.item_name in sale.item_name]
    if filters.payment_method:
        sales = [sale for sale in sales if sale.payment_method == filters.payment_method]
    sales.sort(key=lambda sale: sale.created_at, reverse=True)

    summary = report_service.summarize_sale_list(
        sales,
        date=_iso(date),
        start_date=_iso(start_date),
        end_date=_iso(end_date),
        filters=filters,
    )
    return SaleList(sales=sales, summary=summary)


async def sales_summary(
    store: RecordStore,
    restaurant_id: str,
    *,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> SalesReport:
    sales = await _fetch(store, restaurant_id, start_date=start_date, end_date=end_date)
    return report_service.summarize_sales(sales, start_date=_iso(start_date), end_date=_iso(end_date))


async def sales_analytics(
    store: RecordStore,
    restaurant_id: str,
    *,
    group_by: GroupBy = "day",
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> SalesAnalytics:
    sales = await _fetch(store, restaurant_id, start_date=start_date, end_date=end_date)
    return report_service.sales_analytics(
        sales, group_by=group_by, start_date=_iso(start_date), end_date=_iso(end_date)
    )


async def update_sale(store: RecordStore, payload: SaleUpdate) -> SaleEntry:
    key = codec.sale_key(payload.restaurant_id, payload.original_date, payload.sale_id)
    current = await restaurant_records.get_required(store, key, LABEL)
    existing = codec.decode_sale(current)

    changes = payload.model_dump(exclude={"restaurant_id", "sale_id", "original_date"}, exclude_none=True)
    merged = existing.model_copy(update=changes)
    updated = merged.model_copy(
        update={"total_amount": merged.quantity * merged.unit_price, "updated_at": _utcnow()}
    )
    await restaurant_records.replace(store, current, codec.encode_sale(updated), LABEL)

    logger.info("Sale updated", extra={"restaurant_id": updated.restaurant_id, "sale_id": updated.sale_id})
    return updated


async def delete_sale(store: RecordStore, restaurant_id: str, sale_id: str, date: dt.date) -> None:
    await restaurant_records.remove(store, codec.sale_key(restaurant_id, date, sale_id), LABEL)
    logger.info("Sale deleted", extra={"restaurant_id": restaurant_id, "sale_id": sale_id})
