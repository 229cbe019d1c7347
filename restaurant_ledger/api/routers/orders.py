from fastapi import APIRouter, Depends, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.order import OrderCreate, OrderDetail, OrderPlaced
from restaurant_ledger.services import order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderPlaced, status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: OrderCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    order = await order_service.place_order(
        store,
        table_id=payload.table_id,
        items=payload.items,
        payment_details=payload.payment_details,
    )
    return OrderPlaced(order_id=order.order_id, total_amount=order.total_amount)


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: str, store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    order, lines = await order_service.get_order(store, order_id)
    return OrderDetail(order=order, lines=lines)
