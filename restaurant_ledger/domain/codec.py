# restaurant_ledger/domain/codec.py
"""Mapping between domain entities and ``(pk, sk, attributes)`` items.

Composite keys use ``#`` as the delimiter, so identifiers that end up inside a
key must not contain it; otherwise a prefix query could return items from an
unrelated entity.
"""

from __future__ import annotations

import datetime as dt
import re
import secrets
import string
import time
from typing import Any

from restaurant_ledger.core.config import settings
from restaurant_ledger.db.record_store import RECORD_TYPE_ATTRIBUTE, StoredItem
from restaurant_ledger.domain.enums import RecordType
from restaurant_ledger.schemas.entities import (
    Coupon,
    Customer,
    CustomerCoupon,
    ExpenseEntry,
    Order,
    OrderItem,
    Redemption,
    RewardEntry,
    SaleEntry,
)
from restaurant_ledger.services.exceptions import DomainValidationError

KEY_DELIMITER = "#"

CUSTOMER_PREFIX = "CUSTOMER#"
CUSTOMER_PROFILE_SK = "PROFILE"
REWARD_PREFIX = "REWARD#"
COUPON_PREFIX = "COUPON#"
COUPON_DETAILS_SK = "DETAILS"
ORDER_PREFIX = "ORDER#"
ORDER_DETAILS_SK = "DETAILS"
ORDER_ITEM_PREFIX = "ITEM#"
RESTAURANT_PREFIX = "RESTAURANT#"
EXPENSE_PREFIX = "EXPENSE#"
SALE_PREFIX = "SALE#"
REDEMPTION_PREFIX = "REDEMPTION#"

# Sorts after any "<date>#<entryId>" suffix, closing a date range.
RANGE_HIGH_SENTINEL = "\uffff"

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_ID_ALPHABET = string.ascii_lowercase + string.digits


class KeyFormatError(DomainValidationError):
    """An identifier cannot be safely embedded in a composite key."""


def _segment(value: Any, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise KeyFormatError(f"{field} must not be empty")
    if KEY_DELIMITER in text:
        raise KeyFormatError(f"{field} must not contain '{KEY_DELIMITER}'")
    return text


def _date_segment(value: dt.date | str, field: str = "date") -> str:
    if isinstance(value, dt.date):
        return value.isoformat()
    text = _segment(value, field)
    try:
        return dt.date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise KeyFormatError(f"{field} must be in YYYY-MM-DD format") from exc


# ---------- key builders ----------

def customer_pk(customer_id: str) -> str:
    return f"{CUSTOMER_PREFIX}{_segment(customer_id, 'customer_id')}"


def customer_key(customer_id: str) -> tuple[str, str]:
    return customer_pk(customer_id), CUSTOMER_PROFILE_SK


def reward_key(customer_id: str, entry_id: str) -> tuple[str, str]:
    return customer_pk(customer_id), f"{REWARD_PREFIX}{_segment(entry_id, 'entry_id')}"


def redemption_key(customer_id: str, redemption_id: str) -> tuple[str, str]:
    return customer_pk(customer_id), f"{REDEMPTION_PREFIX}{_segment(redemption_id, 'redemption_id')}"


def coupon_key(code: str) -> tuple[str, str]:
    return f"{COUPON_PREFIX}{_segment(code, 'code')}", COUPON_DETAILS_SK


def customer_coupon_key(customer_id: str, code: str) -> tuple[str, str]:
    return customer_pk(customer_id), f"{COUPON_PREFIX}{_segment(code, 'code')}"


def order_key(order_id: str) -> tuple[str, str]:
    return f"{ORDER_PREFIX}{_segment(order_id, 'order_id')}", ORDER_DETAILS_SK


def order_item_key(order_id: str, line: Any) -> tuple[str, str]:
    return f"{ORDER_PREFIX}{_segment(order_id, 'order_id')}", f"{ORDER_ITEM_PREFIX}{_segment(line, 'line')}"


def restaurant_pk(restaurant_id: str) -> str:
    return f"{RESTAURANT_PREFIX}{_segment(restaurant_id, 'restaurant_id')}"


def expense_key(restaurant_id: str, date: dt.date | str, expense_id: str) -> tuple[str, str]:
    return (
        restaurant_pk(restaurant_id),
        f"{EXPENSE_PREFIX}{_date_segment(date)}#{_segment(expense_id, 'expense_id')}",
    )


def sale_key(restaurant_id: str, date: dt.date | str, sale_id: str) -> tuple[str, str]:
    return (
        restaurant_pk(restaurant_id),
        f"{SALE_PREFIX}{_date_segment(date)}#{_segment(sale_id, 'sale_id')}",
    )


def dated_prefix(prefix: str, date: dt.date | str | None = None) -> str:
    """Sort-key prefix for a record family, optionally narrowed to one day."""
    if date is None:
        return prefix
    return f"{prefix}{_date_segment(date)}#"


def dated_range(prefix: str, start: dt.date | str, end: dt.date | str) -> tuple[str, str]:
    low = f"{prefix}{_date_segment(start, 'start_date')}"
    high = f"{prefix}{_date_segment(end, 'end_date')}#{RANGE_HIGH_SENTINEL}"
    if low > high:
        raise DomainValidationError("start_date must not be after end_date")
    return low, high


def parse_suffix(sk: str, prefix: str) -> str:
    if not sk.startswith(prefix):
        raise KeyFormatError(f"Sort key {sk!r} does not start with {prefix!r}")
    return sk[len(prefix):]


def parse_reward_sk(sk: str) -> str:
    return parse_suffix(sk, REWARD_PREFIX)


# ---------- identifiers ----------

def new_entry_id() -> str:
    """Millisecond epoch timestamp; doubles as the creation-order key."""
    return str(time.time_ns() // 1_000_000)


def new_record_id() -> str:
    """Expense and sale ids: millisecond timestamp plus a short random suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{new_entry_id()}-{suffix}"


def new_order_id() -> str:
    return f"ORD-{new_entry_id()}-{secrets.randbelow(10_000)}"


def customer_id_from_phone(phone_number: str) -> str:
    """Derive the customer id by dropping the national prefix and separators."""
    phone = _PHONE_SEPARATORS.sub("", phone_number or "")
    prefix = settings.PHONE_COUNTRY_PREFIX
    if prefix and phone.startswith(prefix):
        phone = phone[len(prefix):]
    elif phone.startswith("+"):
        phone = phone[1:]
    return _segment(phone, "phone_number")


# ---------- entities ----------

def _attributes(entity, record_type: RecordType, exclude: set[str] | None = None) -> dict[str, Any]:
    attributes = entity.model_dump(by_alias=True, mode="json", exclude=exclude)
    attributes[RECORD_TYPE_ATTRIBUTE] = record_type.value
    return attributes


def _payload(item: StoredItem) -> dict[str, Any]:
    attributes = dict(item.attributes)
    attributes.pop(RECORD_TYPE_ATTRIBUTE, None)
    return attributes


def encode_customer(customer: Customer) -> StoredItem:
    pk, sk = customer_key(customer.id)
    return StoredItem(pk, sk, _attributes(customer, RecordType.customer))


def decode_customer(item: StoredItem) -> Customer:
    attributes = _payload(item)
    attributes.setdefault("id", parse_suffix(item.pk, CUSTOMER_PREFIX))
    return Customer.model_validate(attributes)


def encode_reward(entry: RewardEntry) -> StoredItem:
    pk, sk = reward_key(entry.customer_id, entry.entry_id)
    # Both ids are recoverable from the key.
    attributes = _attributes(entry, RecordType.reward, exclude={"customer_id", "entry_id"})
    return StoredItem(pk, sk, attributes)


def decode_reward(item: StoredItem) -> RewardEntry:
    attributes = _payload(item)
    attributes["customerId"] = parse_suffix(item.pk, CUSTOMER_PREFIX)
    attributes["entryId"] = parse_reward_sk(item.sk)
    return RewardEntry.model_validate(attributes)


def encode_coupon(coupon: Coupon) -> StoredItem:
    pk, sk = coupon_key(coupon.code)
    return StoredItem(pk, sk, _attributes(coupon, RecordType.coupon))


def decode_coupon(item: StoredItem) -> Coupon:
    return Coupon.model_validate(_payload(item))


def encode_customer_coupon(link: CustomerCoupon) -> StoredItem:
    pk, sk = customer_coupon_key(link.customer_id, link.code)
    return StoredItem(pk, sk, _attributes(link, RecordType.customer_coupon, exclude={"customer_id"}))


def decode_customer_coupon(item: StoredItem) -> CustomerCoupon:
    attributes = _payload(item)
    attributes["customerId"] = parse_suffix(item.pk, CUSTOMER_PREFIX)
    return CustomerCoupon.model_validate(attributes)


def encode_order(order: Order) -> list[StoredItem]:
    """Header item followed by one item per order line (``ITEM#1``, ``ITEM#2`` ...)."""
    pk, sk = order_key(order.order_id)
    items = [StoredItem(pk, sk, _attributes(order, RecordType.order))]
    for index, line in enumerate(order.items, start=1):
        line_pk, line_sk = order_item_key(order.order_id, line.id or index)
        attributes = _attributes(line, RecordType.order_item)
        attributes["addedAt"] = order.created_at.isoformat()
        items.append(StoredItem(line_pk, line_sk, attributes))
    return items


def decode_order(item: StoredItem) -> Order:
    return Order.model_validate(_payload(item))


def decode_order_item(item: StoredItem) -> OrderItem:
    return OrderItem.model_validate(_payload(item))


def encode_expense(entry: ExpenseEntry) -> StoredItem:
    pk, sk = expense_key(entry.restaurant_id, entry.date, entry.expense_id)
    return StoredItem(pk, sk, _attributes(entry, RecordType.expense))


def decode_expense(item: StoredItem) -> ExpenseEntry:
    return ExpenseEntry.model_validate(_payload(item))


def encode_sale(entry: SaleEntry) -> StoredItem:
    pk, sk = sale_key(entry.restaurant_id, entry.date, entry.sale_id)
    return StoredItem(pk, sk, _attributes(entry, RecordType.sale))


def decode_sale(item: StoredItem) -> SaleEntry:
    return SaleEntry.model_validate(_payload(item))


def encode_redemption(redemption: Redemption) -> StoredItem:
    pk, sk = redemption_key(redemption.customer_id, redemption.redemption_id)
    attributes = _attributes(redemption, RecordType.redemption, exclude={"customer_id", "redemption_id"})
    return StoredItem(pk, sk, attributes)


def decode_redemption(item: StoredItem) -> Redemption:
    attributes = _payload(item)
    attributes["customerId"] = parse_suffix(item.pk, CUSTOMER_PREFIX)
    attributes["redemptionId"] = parse_suffix(item.sk, REDEMPTION_PREFIX)
    return Redemption.model_validate(attributes)
