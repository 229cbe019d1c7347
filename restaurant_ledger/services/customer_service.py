from __future__ import annotations

from datetime import datetime, timezone

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import (
    RECORD_TYPE_ATTRIBUTE,
    ConditionFailedError,
    RecordStore,
    StoreError,
)
from restaurant_ledger.domain import codec
from restaurant_ledger.domain.enums import RecordType
from restaurant_ledger.schemas.entities import Customer
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
    from_store_error,
)

logger = get_logger("restaurant_ledger.customers")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def register_customer(
    store: RecordStore,
    *,
    name: str,
    phone_number: str,
    date_of_birth: str | None = None,
) -> Customer:
    if not name or not name.strip():
        raise DomainValidationError("name is required")
    customer = Customer(
        id=codec.customer_id_from_phone(phone_number),
        name=name.strip(),
        phone_number=phone_number,
        date_of_birth=date_of_birth,
        created_at=_utcnow(),
    )
    try:
        await store.put(codec.encode_customer(customer), must_not_exist=True)
    except ConditionFailedError as exc:
        raise ConflictError(f"Customer {customer.id} is already registered") from exc
    except StoreError as exc:
        raise from_store_error(exc, "registering customer") from exc

    logger.info("Customer registered", extra={"customer_id": customer.id})
    return customer


async def get_customer(store: RecordStore, customer_id: str) -> Customer | None:
    """Customer lookup used by the reward ledger; never writes."""
    pk, sk = codec.customer_key(customer_id)
    try:
        item = await store.get(pk, sk)
    except StoreError as exc:
        raise from_store_error(exc, "fetching customer") from exc
    if item is None or item.attributes.get(RECORD_TYPE_ATTRIBUTE) != RecordType.customer.value:
        return None
    return codec.decode_customer(item)


async def require_customer(store: RecordStore, customer_id: str) -> Customer:
    customer = await get_customer(store, customer_id)
    if customer is None:
        raise ResourceNotFoundError("Customer not found")
    return customer


async def list_customers(store: RecordStore) -> list[Customer]:
    try:
        items = await store.scan_by_attribute(RECORD_TYPE_ATTRIBUTE, RecordType.customer.value)
    except StoreError as exc:
        raise from_store_error(exc, "listing customers") from exc
    return [codec.decode_customer(item) for item in items]
