from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import (
    RECORD_TYPE_ATTRIBUTE,
    ConditionFailedError,
    RecordStore,
    StoredItem,
    StoreError,
)
from restaurant_ledger.domain import codec
from restaurant_ledger.domain.enums import RecordType
from restaurant_ledger.schemas.entities import Coupon, CustomerCoupon
from restaurant_ledger.services import customer_service
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
    from_store_error,
)

logger = get_logger("restaurant_ledger.coupons")

USED_COUNT_ATTRIBUTE = "usedCount"
TIMES_USED_ATTRIBUTE = "timesUsed"
REQUIRED_FIELDS = ("code", "title", "description")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def create_coupon(store: RecordStore, payload: dict[str, Any]) -> Coupon:
    missing = [name for name in REQUIRED_FIELDS if not str(payload.get(name) or "").strip()]
    if missing:
        raise DomainValidationError(f"Missing required fields: {', '.join(missing)}")

    data = dict(payload)
    data[USED_COUNT_ATTRIBUTE] = 0
    data.pop("used_count", None)
    data.pop(RECORD_TYPE_ATTRIBUTE, None)
    coupon = Coupon.model_validate(data)
    codec.coupon_key(coupon.code)

    try:
        await store.put(codec.encode_coupon(coupon), must_not_exist=True)
    except ConditionFailedError as exc:
        raise ConflictError(f"Coupon {coupon.code} already exists") from exc
    except StoreError as exc:
        raise from_store_error(exc, "creating coupon") from exc

    logger.info("Coupon created", extra={"code": coupon.code})
    return coupon


async def get_coupon(store: RecordStore, code: str) -> Coupon:
    pk, sk = codec.coupon_key(code)
    try:
        item = await store.get(pk, sk)
    except StoreError as exc:
        raise from_store_error(exc, "fetching coupon") from exc
    if item is None:
        raise ResourceNotFoundError("Coupon not found")
    return codec.decode_coupon(item)


async def list_coupons(store: RecordStore) -> list[Coupon]:
    try:
        items = await store.scan_by_attribute(RECORD_TYPE_ATTRIBUTE, RecordType.coupon.value)
    except StoreError as exc:
        raise from_store_error(exc, "listing coupons") from exc
    return [codec.decode_coupon(item) for item in items]


async def increment_usage(store: RecordStore, code: str, customer_id: str | None = None) -> int:
    """Atomically bump ``usedCount`` and return the new value.

    With ``customer_id`` the use is also recorded in the customer's partition,
    where the dashboard picks it up.
    """
    pk, sk = codec.coupon_key(code)
    if customer_id is not None:
        await customer_service.require_customer(store, customer_id)
    try:
        attributes = await store.conditional_update(pk, sk, deltas={USED_COUNT_ATTRIBUTE: 1})
    except ConditionFailedError as exc:
        # conditional_update only fails its condition when the item is missing.
        raise ResourceNotFoundError("Coupon not found") from exc
    except StoreError as exc:
        raise from_store_error(exc, "incrementing coupon usage") from exc

    used_count = int(attributes[USED_COUNT_ATTRIBUTE])
    logger.info("Coupon used", extra={"code": code, "used_count": used_count, "customer_id": customer_id})
    if customer_id is not None:
        await _record_customer_use(store, customer_id, codec.decode_coupon(StoredItem(pk, sk, attributes)))
    return used_count


async def _record_customer_use(store: RecordStore, customer_id: str, coupon: Coupon) -> None:
    pk, sk = codec.customer_coupon_key(customer_id, coupon.code)
    now = _utcnow()
    link = CustomerCoupon(
        customer_id=customer_id,
        code=coupon.code,
        title=coupon.title,
        description=coupon.description,
        last_used_at=now,
    )
    try:
        try:
            await store.put(codec.encode_customer_coupon(link), must_not_exist=True)
        except ConditionFailedError:
            await store.conditional_update(
                pk, sk, deltas={TIMES_USED_ATTRIBUTE: 1}, sets={"lastUsedAt": now.isoformat()}
            )
    except StoreError:
        # usedCount ya cuenta este uso.
        logger.error(
            "Could not record coupon use for customer",
            extra={"code": coupon.code, "customer_id": customer_id},
            exc_info=True,
        )


async def list_customer_coupons(store: RecordStore, customer_id: str) -> list[CustomerCoupon]:
    try:
        items = await store.query_by_prefix(codec.customer_pk(customer_id), codec.COUPON_PREFIX)
    except StoreError as exc:
        raise from_store_error(exc, "fetching customer coupons") from exc
    return [codec.decode_customer_coupon(item) for item in items]


async def delete_coupon(store: RecordStore, code: str) -> None:
    pk, sk = codec.coupon_key(code)
    try:
        deleted = await store.delete(pk, sk)
    except StoreError as exc:
        raise from_store_error(exc, "deleting coupon") from exc
    if not deleted:
        raise ResourceNotFoundError("Coupon not found")
    logger.info("Coupon deleted", extra={"code": code})
