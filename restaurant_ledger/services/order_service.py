from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import (
    RECORD_TYPE_ATTRIBUTE,
    ConditionFailedError,
    PutOp,
    RecordStore,
    StoreError,
)
from restaurant_ledger.domain import codec
from restaurant_ledger.domain.enums import OrderStatus, RecordType
from restaurant_ledger.schemas.entities import Order, OrderItem
from restaurant_ledger.services import report_service
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    ResourceNotFoundError,
    UnavailableError,
    from_store_error,
)

logger = get_logger("restaurant_ledger.orders")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_items(items: list[OrderItem | dict[str, Any]]) -> list[OrderItem]:
    if not items:
        raise DomainValidationError("Missing order items")
    try:
        return [item if isinstance(item, OrderItem) else OrderItem.model_validate(item) for item in items]
    except ValidationError as exc:
        raise DomainValidationError(f"Invalid order item: {exc.errors()[0]['msg']}") from exc


async def place_order(
    store: RecordStore,
    *,
    table_id: str,
    items: list[OrderItem | dict[str, Any]],
    payment_details: dict[str, Any],
) -> Order:
    if not table_id or not str(table_id).strip():
        raise DomainValidationError("Missing tableId")
    if not payment_details:
        raise DomainValidationError("Missing payment details")
    lines = _parse_items(items)

    now = _utcnow()
    order = Order(
        order_id=codec.new_order_id(),
        table_id=str(table_id).strip(),
        items=lines,
        total_amount=report_service.calculate_order_total(lines),
        payment_details=payment_details,
        status=OrderStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    header, *line_items = codec.encode_order(order)

    try:
        await store.put(header, must_not_exist=True)
    except ConditionFailedError as exc:
        raise ConflictError("Order id collision; retry") from exc
    except StoreError as exc:
        raise from_store_error(exc, "placing order") from exc

    result = await store.batch_write([PutOp(item) for item in line_items])
    if not result.ok:
        # El encabezado ya quedó guardado; las líneas fallidas se informan.
        logger.error(
            "Order lines not fully written",
            extra={
                "order_id": order.order_id,
                "failed": [f"{op.key[1]}:{reason}" for op, reason in result.failed],
            },
        )
        raise UnavailableError(f"Order {order.order_id} was saved but some item lines were not; retry later")

    logger.info(
        "Order placed",
        extra={"order_id": order.order_id, "table_id": order.table_id, "total_amount": order.total_amount},
    )
    return order


async def get_order(store: RecordStore, order_id: str) -> tuple[Order, list[OrderItem]]:
    pk, sk = codec.order_key(order_id)
    try:
        items = await store.query_by_prefix(pk, "")
    except StoreError as exc:
        raise from_store_error(exc, "fetching order") from exc

    header = next((item for item in items if item.sk == sk), None)
    if header is None:
        raise ResourceNotFoundError("Order not found")
    lines = [
        codec.decode_order_item(item)
        for item in items
        if item.attributes.get(RECORD_TYPE_ATTRIBUTE) == RecordType.order_item.value
    ]
    return codec.decode_order(header), lines
