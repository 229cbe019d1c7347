"""Helpers shared by the date-keyed restaurant record families (expenses, sales)."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import (
    ConditionFailedError,
    RecordStore,
    StoredItem,
    StoreError,
)
from restaurant_ledger.domain import codec
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
    from_store_error,
)

logger = get_logger("restaurant_ledger.records")


async def fetch_dated(
    store: RecordStore,
    restaurant_id: str,
    prefix: str,
    *,
    date: Optional[dt.date] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> list[StoredItem]:
    """One day (prefix), an inclusive date span (range) or the whole family."""
    pk = codec.restaurant_pk(restaurant_id)
    if (start_date is None) != (end_date is None):
        raise DomainValidationError("start_date and end_date must be given together")
    try:
        if date is not None:
            return await store.query_by_prefix(pk, codec.dated_prefix(prefix, date))
        if start_date is not None and end_date is not None:
            low, high = codec.dated_range(prefix, start_date, end_date)
            return await store.query_range(pk, low, high)
        return await store.query_by_prefix(pk, prefix)
    except StoreError as exc:
        raise from_store_error(exc, "querying restaurant records") from exc


async def get_required(store: RecordStore, key: tuple[str, str], label: str) -> StoredItem:
    try:
        item = await store.get(*key)
    except StoreError as exc:
        raise from_store_error(exc, f"fetching {label}") from exc
    if item is None:
        raise ResourceNotFoundError(f"{label.capitalize()} not found")
    return item


async def create(store: RecordStore, item: StoredItem, label: str) -> None:
    try:
        await store.put(item, must_not_exist=True)
    except ConditionFailedError as exc:
        raise ConflictError(f"{label.capitalize()} id collision; retry") from exc
    except StoreError as exc:
        raise from_store_error(exc, f"saving {label}") from exc


async def replace(store: RecordStore, current: StoredItem, updated: StoredItem, label: str) -> None:
    """Write ``updated`` over ``current``; a changed date means a changed sort key."""
    try:
        if updated.key == current.key:
            await store.put(updated, expected_version=current.version)
            return
        # Nuevo registro antes de borrar el anterior.
        await store.put(updated, must_not_exist=True)
        await store.delete(current.pk, current.sk, expected_version=current.version)
    except ConditionFailedError as exc:
        raise ConflictError(f"{label.capitalize()} changed concurrently; retry") from exc
    except StoreError as exc:
        logger.error(
            "Restaurant record update failed",
            extra={"label": label, "from": current.sk, "to": updated.sk},
        )
        raise from_store_error(exc, f"updating {label}") from exc


async def remove(store: RecordStore, key: tuple[str, str], label: str) -> None:
    try:
        deleted = await store.delete(*key)
    except StoreError as exc:
        raise from_store_error(exc, f"deleting {label}") from exc
    if not deleted:
        raise ResourceNotFoundError(f"{label.capitalize()} not found")
