# restaurant_ledger/schemas/order.py
from __future__ import annotations

from typing import Any

from pydantic import Field

from restaurant_ledger.schemas.entities import LedgerModel, Order, OrderItem


class OrderCreate(LedgerModel):
    table_id: str = Field(..., min_length=1)
    items: list[OrderItem] = Field(..., min_length=1)
    payment_details: dict[str, Any]


class OrderPlaced(LedgerModel):
    order_id: str
    total_amount: float


class OrderDetail(LedgerModel):
    order: Order
    lines: list[OrderItem]
