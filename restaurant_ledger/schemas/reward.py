# restaurant_ledger/schemas/reward.py
from __future__ import annotations

from typing import Optional

from pydantic import Field

from restaurant_ledger.schemas.entities import LedgerModel


class RewardCreate(LedgerModel):
    customer_id: str = Field(..., min_length=1)
    reward_type: str = Field(..., min_length=1, max_length=100)
    points: int
    period: Optional[str] = None


class RewardUpdate(LedgerModel):
    points: int
    reward_type: str = Field(..., min_length=1, max_length=100)
    period: Optional[str] = None


class RewardCreated(LedgerModel):
    reward_id: str


class RedeemRequest(LedgerModel):
    points: int
    # Reusar el mismo id al reintentar tras una redención parcial.
    redemption_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class RedeemResult(LedgerModel):
    redemption_id: str
    redeemed: int
    remaining: Optional[int] = None
