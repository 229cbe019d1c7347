# restaurant_ledger/schemas/sale.py
from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import Field

from restaurant_ledger.schemas.entities import LedgerModel, SaleEntry
from restaurant_ledger.schemas.report import SaleListSummary


class SaleCreate(LedgerModel):
    restaurant_id: str = Field(..., min_length=1)
    item_name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    date: dt.date
    payment_method: str = Field(..., min_length=1)
    customer_name: str = ""
    notes: str = ""


class SaleUpdate(LedgerModel):
    restaurant_id: str = Field(..., min_length=1)
    sale_id: str = Field(..., min_length=1)
    original_date: dt.date
    item_name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    quantity: Optional[float] = Field(default=None, gt=0)
    unit_price: Optional[float] = Field(default=None, gt=0)
    date: Optional[dt.date] = None
    payment_method: Optional[str] = Field(default=None, min_length=1)
    customer_name: Optional[str] = None
    notes: Optional[str] = None


class SaleList(LedgerModel):
    sales: list[SaleEntry]
    summary: SaleListSummary
