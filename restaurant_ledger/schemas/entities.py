# restaurant_ledger/schemas/entities.py
"""Domain entities persisted in the records table.

Attribute names are camelCase on the wire (and in the stored attribute map);
Python code uses the snake_case field names.
"""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from restaurant_ledger.domain.enums import OrderStatus, RedemptionStatus


class LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Customer(LedgerModel):
    id: str
    name: str
    phone_number: str
    date_of_birth: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("dateOfBirth", "date_of_birth", "dob"),
    )
    created_at: datetime


class RewardEntry(LedgerModel):
    customer_id: str
    entry_id: str
    reward_type: str
    points: int = Field(..., ge=0)
    period: Optional[str] = None
    name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("dateOfBirth", "date_of_birth", "dob"),
    )
    created_at: Optional[datetime] = None
    # Set by the redemption that last wrote this entry; cleared by manual updates.
    last_redemption_id: Optional[str] = None

    @property
    def sequence(self) -> int:
        """Creation order; entry ids are millisecond timestamps."""
        return int(self.entry_id)


class Coupon(LedgerModel):
    # Extra fields from the creation payload are kept verbatim.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    code: str
    title: str
    description: str
    used_count: int = Field(default=0, ge=0)


class CustomerCoupon(LedgerModel):
    """A coupon as used by one customer, stored in the customer's partition."""

    customer_id: str
    code: str
    title: str = ""
    description: str = ""
    times_used: int = Field(default=1, ge=1)
    last_used_at: datetime


class OrderItem(LedgerModel):
    id: Optional[str] = None
    name: str
    unit_price: float = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("unitPrice", "unit_price", "price"),
    )
    quantity: int = Field(default=1, gt=0)


class Order(LedgerModel):
    order_id: str
    table_id: str
    items: list[OrderItem]
    total_amount: float
    payment_details: dict[str, Any]
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime
    updated_at: datetime


class ExpenseEntry(LedgerModel):
    restaurant_id: str
    expense_id: str
    category: str
    description: str = ""
    amount: float = Field(..., gt=0)
    date: dt.date
    payment_method: str
    vendor: str = ""
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class SaleEntry(LedgerModel):
    restaurant_id: str
    sale_id: str
    item_name: str
    category: str
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    total_amount: float
    date: dt.date
    payment_method: str
    customer_name: str = ""
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class RedemptionStep(LedgerModel):
    sk: str
    before: int
    after: int
    # Entry version the step was planned against.
    version: Optional[int] = None

    @property
    def deducted(self) -> int:
        return self.before - self.after


class Redemption(LedgerModel):
    """Intent record written before a redemption touches any reward entry."""

    customer_id: str
    redemption_id: str
    points: int = Field(..., gt=0)
    status: RedemptionStatus = RedemptionStatus.pending
    # Points already taken from the ledger by settled batches.
    applied_points: int = Field(default=0, ge=0)
    steps: list[RedemptionStep] = Field(default_factory=list)
    remaining: Optional[int] = None
    created_at: datetime
