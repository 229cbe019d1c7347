from __future__ import annotations

import datetime as dt
from datetime import datetime, timezone
from typing import Optional

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.domain import codec
from restaurant_ledger.schemas.entities import ExpenseEntry
from restaurant_ledger.schemas.expense import ExpenseCreate, ExpenseList, ExpenseUpdate
from restaurant_ledger.schemas.report import ExpenseReport
from restaurant_ledger.services import report_service, restaurant_records

logger = get_logger("restaurant_ledger.expenses")

LABEL = "expense"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_expense(store: RecordStore, payload: ExpenseCreate) -> ExpenseEntry:
    now = _utcnow()
    entry = ExpenseEntry(
        **payload.model_dump(),
        expense_id=codec.new_record_id(),
        created_at=now,
        updated_at=now,
    )
    await restaurant_records.create(store, codec.encode_expense(entry), LABEL)
    logger.info(
        "Expense saved",
        extra={"restaurant_id": entry.restaurant_id, "expense_id": entry.expense_id, "amount": entry.amount},
    )
    return entry


async def list_expenses(
    store: RecordStore,
    restaurant_id: str,
    *,
    date: Optional[dt.date] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    category: Optional[str] = None,
) -> ExpenseList:
    items = await restaurant_records.fetch_dated(
        store, restaurant_id, codec.EXPENSE_PREFIX, date=date, start_date=start_date, end_date=end_date
    )
    expenses = [codec.decode_expense(item) for item in items]
    if category:
        expenses = [entry for entry in expenses if entry.category == category]
    # Más recientes primero.
    expenses.sort(key=lambda entry: entry.created_at, reverse=True)
    summary = report_service.summarize_expense_list(
        expenses,
        date=date.isoformat() if date else None,
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
        category=category,
    )
    return ExpenseList(expenses=expenses, summary=summary)


async def expense_summary(
    store: RecordStore,
    restaurant_id: str,
    *,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> ExpenseReport:
    items = await restaurant_records.fetch_dated(
        store, restaurant_id, codec.EXPENSE_PREFIX, start_date=start_date, end_date=end_date
    )
    return report_service.summarize_expenses(
        [codec.decode_expense(item) for item in items],
        start_date=start_date.isoformat() if start_date else None,
        end_date=end_date.isoformat() if end_date else None,
    )


async def update_expense(store: RecordStore, payload: ExpenseUpdate) -> ExpenseEntry:
    key = codec.expense_key(payload.restaurant_id, payload.original_date, payload.expense_id)
    current = await restaurant_records.get_required(store, key, LABEL)
    existing = codec.decode_expense(current)

    changes = payload.model_dump(exclude={"restaurant_id", "expense_id", "original_date"}, exclude_none=True)
    updated = existing.model_copy(update={**changes, "updated_at": _utcnow()})
    await restaurant_records.replace(store, current, codec.encode_expense(updated), LABEL)

    logger.info(
        "Expense updated",
        extra={"restaurant_id": updated.restaurant_id, "expense_id": updated.expense_id},
    )
    return updated


async def delete_expense(store: RecordStore, restaurant_id: str, expense_id: str, date: dt.date) -> None:
    await restaurant_records.remove(store, codec.expense_key(restaurant_id, date, expense_id), LABEL)
    logger.info("Expense deleted", extra={"restaurant_id": restaurant_id, "expense_id": expense_id})
