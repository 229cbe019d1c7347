import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.entities import RewardEntry
from restaurant_ledger.schemas.reward import RedeemRequest, RedeemResult, RewardCreate, RewardCreated, RewardUpdate
from restaurant_ledger.services import reward_service
from restaurant_ledger.services.event_bus import emit_ledger_event

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.post("", response_model=RewardCreated, status_code=status.HTTP_201_CREATED)
async def create_reward(
    payload: RewardCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    entry_id = await reward_service.create_reward(
        store, payload.customer_id, payload.reward_type, payload.points, payload.period
    )
    emit_ledger_event(
        "reward_created",
        {
            "customer_id": payload.customer_id,
            "entry_id": entry_id,
            "reward_type": payload.reward_type,
            "points": payload.points,
        },
    )
    return RewardCreated(reward_id=entry_id)


@router.get("", response_model=list[RewardEntry])
async def list_rewards(
    customer_id: str = Query(..., min_length=1),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await reward_service.list_rewards(store, customer_id)


@router.get("/all", response_model=list[RewardEntry])
async def list_all_rewards(store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await reward_service.list_all_rewards(store)


@router.get("/{customer_id}/{entry_id}", response_model=RewardEntry)
async def get_reward(
    customer_id: str,
    entry_id: str,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_reader),
):
    return await reward_service.get_reward(store, customer_id, entry_id)


@router.put("/{customer_id}/{entry_id}", response_model=RewardEntry)
async def update_reward(
    customer_id: str,
    entry_id: str,
    payload: RewardUpdate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    updated = await reward_service.update_reward(
        store, customer_id, entry_id, payload.points, payload.reward_type, payload.period
    )
    if updated is None:
        # Con 0 puntos la entrada se consume y se elimina.
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return updated


@router.delete("/{customer_id}/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reward(
    customer_id: str,
    entry_id: str,
    reward_type: str = Query(..., min_length=1),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    await reward_service.delete_reward(store, customer_id, entry_id, reward_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{customer_id}/redeem", response_model=RedeemResult)
async def redeem_points(
    customer_id: str,
    payload: RedeemRequest,
    idempotency_key: Optional[str] = Header(default=None, max_length=64),
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    redemption_id = payload.redemption_id or idempotency_key or uuid.uuid4().hex
    redemption = await reward_service.redeem_points(
        store, customer_id, payload.points, redemption_id=redemption_id
    )
    emit_ledger_event(
        "reward_redeemed",
        {
            "customer_id": customer_id,
            "redemption_id": redemption.redemption_id,
            "points": redemption.points,
            "remaining": redemption.remaining,
        },
    )
    return RedeemResult(
        redemption_id=redemption.redemption_id,
        redeemed=redemption.points,
        remaining=redemption.remaining,
    )
