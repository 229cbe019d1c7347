# restaurant_ledger/schemas/coupon.py
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from restaurant_ledger.schemas.entities import LedgerModel


class CouponCreate(LedgerModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    code: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class CouponUsage(LedgerModel):
    code: str
    used_count: int


class CouponUseRequest(LedgerModel):
    # Opcional: registra el uso también en la partición del cliente.
    customer_id: Optional[str] = Field(default=None, min_length=1)
