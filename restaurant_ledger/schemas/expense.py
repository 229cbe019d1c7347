# restaurant_ledger/schemas/expense.py
from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import Field

from restaurant_ledger.schemas.entities import ExpenseEntry, LedgerModel
from restaurant_ledger.schemas.report import ExpenseListSummary


class ExpenseCreate(LedgerModel):
    restaurant_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    description: str = ""
    amount: float = Field(..., gt=0)
    date: dt.date
    payment_method: str = Field(..., min_length=1)
    vendor: str = ""
    notes: str = ""


class ExpenseUpdate(LedgerModel):
    restaurant_id: str = Field(..., min_length=1)
    expense_id: str = Field(..., min_length=1)
    original_date: dt.date
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    date: Optional[dt.date] = None
    payment_method: Optional[str] = Field(default=None, min_length=1)
    vendor: Optional[str] = None
    notes: Optional[str] = None


class ExpenseList(LedgerModel):
    expenses: list[ExpenseEntry]
    summary: ExpenseListSummary
