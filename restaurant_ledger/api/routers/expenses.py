import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.entities import ExpenseEntry
from restaurant_ledger.schemas.expense import ExpenseCreate, ExpenseList, ExpenseUpdate
from restaurant_ledger.schemas.report import ExpenseReport
from restaurant_ledger.services import expense_service

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseEntry, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await expense_service.create_expense(store, payload)


@router.get("", response_model=ExpenseList)
async def list_expenses(
    restaurant_id: str = Query(..., min_length=1),
    date: Optional[dt.date] = Query(default=None),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    category: Optional[str] = Query(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await expense_service.list_expenses(
        store, restaurant_id, date=date, start_date=start_date, end_date=end_date, category=category
    )


@router.get("/summary", response_model=ExpenseReport)
async def expense_summary(
    restaurant_id: str = Query(..., min_length=1),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await expense_service.expense_summary(store, restaurant_id, start_date=start_date, end_date=end_date)


@router.put("", response_model=ExpenseEntry)
async def update_expense(
    payload: ExpenseUpdate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await expense_service.update_expense(store, payload)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    restaurant_id: str = Query(..., min_length=1),
    expense_id: str = Query(..., min_length=1),
    date: dt.date = Query(...),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    await expense_service.delete_expense(store, restaurant_id, expense_id, date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
