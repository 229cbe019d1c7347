from typing import Optional

from fastapi import APIRouter, Body, Depends, Response, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.coupon import CouponCreate, CouponUsage, CouponUseRequest
from restaurant_ledger.schemas.entities import Coupon
from restaurant_ledger.services import coupon_service
from restaurant_ledger.services.event_bus import emit_ledger_event

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("", response_model=Coupon, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await coupon_service.create_coupon(store, payload.model_dump(by_alias=True))


@router.get("", response_model=list[Coupon])
async def list_coupons(store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await coupon_service.list_coupons(store)


@router.get("/{code}", response_model=Coupon)
async def get_coupon(code: str, store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await coupon_service.get_coupon(store, code)


@router.post("/{code}/use", response_model=CouponUsage)
async def use_coupon(
    code: str,
    payload: Optional[CouponUseRequest] = Body(default=None),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    customer_id = payload.customer_id if payload else None
    used_count = await coupon_service.increment_usage(store, code, customer_id)
    emit_ledger_event("coupon_used", {"code": code, "used_count": used_count, "customer_id": customer_id})
    return CouponUsage(code=code, used_count=used_count)


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(code: str, store: RecordStore = Depends(get_store), _: str = Depends(get_writer)):
    await coupon_service.delete_coupon(store, code)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
