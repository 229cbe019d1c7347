import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.entities import SaleEntry
from restaurant_ledger.schemas.report import GroupBy, SaleFilters, SalesAnalytics, SalesReport
from restaurant_ledger.schemas.sale import SaleCreate, SaleList, SaleUpdate
from restaurant_ledger.services import sale_service

router = APIRouter(prefix="/sales", tags=["sales"])


@router.post("", response_model=SaleEntry, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: SaleCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await sale_service.create_sale(store, payload)


@router.get("", response_model=SaleList)
async def list_sales(
    restaurant_id: str = Query(..., min_length=1),
    date: Optional[dt.date] = Query(default=None),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    category: Optional[str] = Query(default=None),
    item_name: Optional[str] = Query(default=None),
    payment_method: Optional[str] = Query(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    filters = SaleFilters(category=category, item_name=item_name, payment_method=payment_method)
    return await sale_service.list_sales(
        store, restaurant_id, date=date, start_date=start_date, end_date=end_date, filters=filters
    )


@router.get("/summary", response_model=SalesReport)
async def sales_summary(
    restaurant_id: str = Query(..., min_length=1),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await sale_service.sales_summary(store, restaurant_id, start_date=start_date, end_date=end_date)


@router.get("/analytics", response_model=SalesAnalytics)
async def sales_analytics(
    restaurant_id: str = Query(..., min_length=1),
    group_by: GroupBy = Query(default="day"),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await sale_service.sales_analytics(
        store, restaurant_id, group_by=group_by, start_date=start_date, end_date=end_date
    )


@router.put("", response_model=SaleEntry)
async def update_sale(
    payload: SaleUpdate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await sale_service.update_sale(store, payload)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sale(
    restaurant_id: str = Query(..., min_length=1),
    sale_id: str = Query(..., min_length=1),
    date: dt.date = Query(...),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    await sale_service.delete_sale(store, restaurant_id, sale_id, date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
