# restaurant_ledger/schemas/customer.py
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field

from restaurant_ledger.schemas.entities import Customer, CustomerCoupon, LedgerModel, Redemption, RewardEntry


class CustomerCreate(LedgerModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., min_length=4, max_length=32)
    date_of_birth: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("dateOfBirth", "date_of_birth", "dob"),
    )


class CustomerDashboard(LedgerModel):
    customer: Customer
    rewards: list[RewardEntry]
    available_points: int
    redemptions: list[Redemption]
    coupons: list[CustomerCoupon]
