"""Reward ledger: accrual, mutation and FIFO redemption of customer points.

Reward entries live in the owning customer's partition under
``REWARD#<entryId>``; entry ids are millisecond timestamps, so numeric order is
creation order and also the order in which points are spent.

Every write made here is conditional on the version that was read, so two
redemptions racing on the same customer cannot both spend the same points.
Redemptions are journaled under ``REDEMPTION#<redemptionId>`` before the batch
write, and the journal records how many points each settled batch actually
took. A retry carrying the same redemption id only spends what is still owed,
planned again from fresh entries.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone

from restaurant_ledger.core.config import settings
from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.core.metrics import record_redemption
from restaurant_ledger.db.record_store import (
    CONDITION_FAILED,
    RECORD_TYPE_ATTRIBUTE,
    BatchWriteResult,
    ConditionFailedError,
    DeleteOp,
    PutOp,
    RecordStore,
    StoredItem,
    StoreError,
    WriteOp,
)
from restaurant_ledger.domain import codec
from restaurant_ledger.domain.enums import RecordType, RedemptionStatus
from restaurant_ledger.schemas.entities import Customer, Redemption, RedemptionStep, RewardEntry
from restaurant_ledger.services import customer_service
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InsufficientPointsError,
    PartialRedemptionError,
    ResourceNotFoundError,
    UnavailableError,
    from_store_error,
)

CustomerLookup = Callable[[RecordStore, str], Awaitable[Customer | None]]

logger = get_logger("restaurant_ledger.rewards")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_points(points, *, allow_zero: bool = False) -> int:
    # bool is an int subclass; True is not "1 point".
    if isinstance(points, bool) or not isinstance(points, int):
        raise DomainValidationError("points must be an integer")
    if points < 0 or (points == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise DomainValidationError(f"points must be a {qualifier} integer")
    return points


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DomainValidationError(f"{field} is required")
    return value.strip()


def _op_label(op: WriteOp) -> str:
    return f"{op.key[0]}/{op.key[1]}"


async def _load_entries(store: RecordStore, customer_id: str) -> list[tuple[StoredItem, RewardEntry]]:
    pk = codec.customer_pk(customer_id)
    try:
        items = await store.query_by_prefix(pk, codec.REWARD_PREFIX)
    except StoreError as exc:
        raise from_store_error(exc, "fetching rewards") from exc
    entries = [(item, codec.decode_reward(item)) for item in items]
    # Sort keys compare as text; "REWARD#999" > "REWARD#1000".
    entries.sort(key=lambda pair: pair[1].sequence)
    return entries


async def _get_entry(store: RecordStore, customer_id: str, entry_id: str) -> tuple[StoredItem, RewardEntry]:
    pk, sk = codec.reward_key(customer_id, entry_id)
    try:
        item = await store.get(pk, sk)
    except StoreError as exc:
        raise from_store_error(exc, "fetching reward") from exc
    if item is None:
        raise ResourceNotFoundError("Reward entry not found")
    return item, codec.decode_reward(item)


# ---------- lifecycle ----------

async def create_reward(
    store: RecordStore,
    customer_id: str,
    reward_type: str,
    points: int,
    period: str | None = None,
    *,
    customer_lookup: CustomerLookup = customer_service.get_customer,
) -> str:
    reward_type = _require_text(reward_type, "reward_type")
    points = _require_points(points)

    customer = await customer_lookup(store, customer_id)
    if customer is None:
        raise ResourceNotFoundError("Customer not found")

    existing = await _load_entries(store, customer_id)
    if any(entry.reward_type == reward_type and entry.points > 0 for _, entry in existing):
        logger.warning(
            "Duplicate reward type rejected",
            extra={"customer_id": customer_id, "reward_type": reward_type},
        )
        raise ConflictError(f"Customer already has an active '{reward_type}' reward")

    entry_id = codec.new_entry_id()
    latest = max((entry.sequence for _, entry in existing), default=0)
    if int(entry_id) <= latest:
        # Same millisecond (or a clock step back): keep ids strictly increasing.
        entry_id = str(latest + 1)

    entry = RewardEntry(
        customer_id=customer_id,
        entry_id=entry_id,
        reward_type=reward_type,
        points=points,
        period=period,
        name=customer.name,
        phone_number=customer.phone_number,
        date_of_birth=customer.date_of_birth,
        created_at=_utcnow(),
    )
    try:
        await store.put(codec.encode_reward(entry), must_not_exist=True)
    except ConditionFailedError as exc:
        raise ConflictError("A reward entry with this id already exists; retry") from exc
    except StoreError as exc:
        raise from_store_error(exc, "creating reward") from exc

    logger.info(
        "Reward created",
        extra={"customer_id": customer_id, "entry_id": entry_id, "reward_type": reward_type, "points": points},
    )
    return entry_id


async def list_rewards(store: RecordStore, customer_id: str) -> list[RewardEntry]:
    return [entry for _, entry in await _load_entries(store, customer_id)]


async def list_all_rewards(store: RecordStore) -> list[RewardEntry]:
    """Full-table scan; only meant for small administrative listings."""
    try:
        items = await store.scan_by_attribute(RECORD_TYPE_ATTRIBUTE, RecordType.reward.value)
    except StoreError as exc:
        raise from_store_error(exc, "listing rewards") from exc
    entries = [codec.decode_reward(item) for item in items]
    entries.sort(key=lambda entry: (entry.customer_id, entry.sequence))
    return entries


async def get_reward(store: RecordStore, customer_id: str, entry_id: str) -> RewardEntry:
    _, entry = await _get_entry(store, customer_id, entry_id)
    return entry


async def available_points(store: RecordStore, customer_id: str) -> int:
    return sum(entry.points for _, entry in await _load_entries(store, customer_id))


async def update_reward(
    store: RecordStore,
    customer_id: str,
    entry_id: str,
    points: int,
    reward_type: str,
    period: str | None = None,
) -> RewardEntry | None:
    """Overwrite an entry's points and type.

    Returns the stored entry, or ``None`` when ``points`` is zero and the
    entry was consumed (deleted) instead.
    """
    points = _require_points(points, allow_zero=True)
    reward_type = _require_text(reward_type, "reward_type")
    item, entry = await _get_entry(store, customer_id, entry_id)

    try:
        if points == 0:
            await store.delete(item.pk, item.sk, expected_version=item.version)
            logger.info(
                "Reward consumed by update",
                extra={"customer_id": customer_id, "entry_id": entry_id},
            )
            return None

        updated = entry.model_copy(
            update={
                "points": points,
                "reward_type": reward_type,
                "period": period if period is not None else entry.period,
                "last_redemption_id": None,
            }
        )
        await store.put(codec.encode_reward(updated), expected_version=item.version)
    except ConditionFailedError as exc:
        raise ConflictError("Reward entry changed concurrently; retry") from exc
    except StoreError as exc:
        raise from_store_error(exc, "updating reward") from exc

    logger.info(
        "Reward updated",
        extra={"customer_id": customer_id, "entry_id": entry_id, "points": points},
    )
    return updated


async def delete_reward(store: RecordStore, customer_id: str, entry_id: str, expected_reward_type: str) -> None:
    item, entry = await _get_entry(store, customer_id, entry_id)
    if entry.reward_type != expected_reward_type:
        logger.warning(
            "Reward delete guard mismatch",
            extra={
                "customer_id": customer_id,
                "entry_id": entry_id,
                "stored_type": entry.reward_type,
                "expected_type": expected_reward_type,
            },
        )
        raise ConflictError(
            f"Reward type mismatch: entry is '{entry.reward_type}', not '{expected_reward_type}'"
        )
    try:
        await store.delete(item.pk, item.sk, expected_version=item.version)
    except ConditionFailedError as exc:
        raise ConflictError("Reward entry changed concurrently; retry") from exc
    except StoreError as exc:
        raise from_store_error(exc, "deleting reward") from exc

    logger.info("Reward deleted", extra={"customer_id": customer_id, "entry_id": entry_id})


# ---------- redemption ----------

def plan_redemption(entries: Iterable[RewardEntry], points: int) -> list[RedemptionStep]:
    """FIFO walk over entries: oldest points are spent first.

    Only touched entries appear in the plan; a step with ``after == 0`` means
    the entry is consumed and must be deleted.
    """
    ordered = sorted(entries, key=lambda entry: entry.sequence)
    remaining = points
    steps: list[RedemptionStep] = []
    for entry in ordered:
        if remaining <= 0:
            break
        deduct = min(entry.points, remaining)
        if deduct == 0:
            continue
        _, sk = codec.reward_key(entry.customer_id, entry.entry_id)
        steps.append(RedemptionStep(sk=sk, before=entry.points, after=entry.points - deduct))
        remaining -= deduct
    if remaining > 0:
        raise InsufficientPointsError(available=points - remaining, requested=points)
    return steps


def _write_op(item: StoredItem, entry: RewardEntry, step: RedemptionStep, redemption_id: str) -> WriteOp:
    if step.after == 0:
        return DeleteOp(item.pk, item.sk, expected_version=item.version)
    updated = entry.model_copy(update={"points": step.after, "last_redemption_id": redemption_id})
    return PutOp(codec.encode_reward(updated), expected_version=item.version)


async def _get_journal(store: RecordStore, customer_id: str, redemption_id: str) -> tuple[StoredItem, Redemption] | None:
    pk, sk = codec.redemption_key(customer_id, redemption_id)
    try:
        item = await store.get(pk, sk)
    except StoreError as exc:
        raise from_store_error(exc, "fetching redemption") from exc
    if item is None:
        return None
    return item, codec.decode_redemption(item)


async def _write_journal(store: RecordStore, redemption: Redemption, previous: StoredItem | None) -> StoredItem:
    item = codec.encode_redemption(redemption)
    try:
        if previous is None:
            return await store.put(item, must_not_exist=True)
        return await store.put(item, expected_version=previous.version)
    except ConditionFailedError as exc:
        raise ConflictError("Another request is already using this redemptionId") from exc
    except StoreError as exc:
        raise from_store_error(exc, "journaling redemption") from exc


def _settled(redemption: Redemption, result: BatchWriteResult, remaining: int) -> Redemption:
    """Fold a batch outcome into the journal; only ops the store applied count."""
    applied_sks = {op.key[1] for op in result.applied}
    applied_points = redemption.applied_points + sum(
        step.deducted for step in redemption.steps if step.sk in applied_sks
    )
    done = applied_points == redemption.points
    return redemption.model_copy(
        update={
            "applied_points": applied_points,
            "status": RedemptionStatus.applied if done else RedemptionStatus.interrupted,
            "remaining": remaining if done else None,
        }
    )


async def _settle(
    store: RecordStore,
    journal: StoredItem,
    redemption: Redemption,
    result: BatchWriteResult,
    remaining: int,
) -> tuple[StoredItem, Redemption]:
    settled = _settled(redemption, result, remaining)
    try:
        journal = await store.put(codec.encode_redemption(settled), expected_version=journal.version)
    except StoreError:
        # El diario queda "pending"; un reintento deduce el resultado por versiones.
        logger.error(
            "Could not record redemption outcome",
            extra={
                "customer_id": settled.customer_id,
                "redemption_id": settled.redemption_id,
                "applied_points": settled.applied_points,
            },
            exc_info=True,
        )
    return journal, settled


async def _apply_batch(store: RecordStore, ops: list[WriteOp]) -> tuple[BatchWriteResult, bool]:
    """Run the batch to completion; the flag tells whether the caller was cancelled meanwhile."""
    write = asyncio.ensure_future(store.batch_write(ops))
    try:
        return await asyncio.shield(write), False
    except asyncio.CancelledError:
        return await write, True


def _raise_for_failed_batch(redemption: Redemption, result: BatchWriteResult) -> None:
    applied = [_op_label(op) for op in result.applied]
    failed = [f"{_op_label(op)}:{reason}" for op, reason in result.failed]
    context = {"customer_id": redemption.customer_id, "redemption_id": redemption.redemption_id}
    if redemption.applied_points:
        record_redemption("partial")
        logger.error(
            "Redemption partially applied",
            extra={**context, "applied_points": redemption.applied_points, "applied": applied, "failed": failed},
        )
        raise PartialRedemptionError(redemption.redemption_id, applied=applied, failed=failed)
    record_redemption("unavailable")
    logger.error("Redemption rejected by the record store", extra={**context, "failed": failed})
    raise UnavailableError("Record store rejected the redemption; nothing was applied")


def _in_flight_deduction(redemption: Redemption, by_sk: dict[str, tuple[StoredItem, RewardEntry]]) -> int | None:
    """Points taken by the steps of a pending journal, or ``None`` if the ledger cannot tell.

    A step is known not to have landed when its entry still carries the planned
    version, and known to have landed when the entry sits one version later
    with this redemption's id on it.
    """
    deducted = 0
    for step in redemption.steps:
        current = by_sk.get(step.sk)
        if current is None or step.version is None:
            return None
        item, entry = current
        if item.version == step.version:
            continue
        if (
            step.after > 0
            and item.version == step.version + 1
            and entry.last_redemption_id == redemption.redemption_id
        ):
            deducted += step.deducted
            continue
        return None
    return deducted


async def _run_redemption(
    store: RecordStore,
    redemption: Redemption,
    journal: StoredItem | None,
    attempts: int,
) -> Redemption:
    """Plan whatever is still owed against fresh entries and write it, re-planning on conflicts."""
    customer_id = redemption.customer_id
    result = BatchWriteResult()
    for attempt in range(1, attempts + 1):
        owed = redemption.points - redemption.applied_points
        entries = await _load_entries(store, customer_id)
        if not entries:
            raise ResourceNotFoundError("Customer has no reward entries")

        available = sum(entry.points for _, entry in entries)
        if available < owed:
            record_redemption("insufficient")
            raise InsufficientPointsError(available=available, requested=owed)

        by_sk = {item.sk: (item, entry) for item, entry in entries}
        steps = [
            step.model_copy(update={"version": by_sk[step.sk][0].version})
            for step in plan_redemption([entry for _, entry in entries], owed)
        ]
        redemption = redemption.model_copy(update={"steps": steps, "status": RedemptionStatus.pending})
        journal = await _write_journal(store, redemption, journal)

        ops = [_write_op(*by_sk[step.sk], step, redemption.redemption_id) for step in steps]
        result, cancelled = await _apply_batch(store, ops)
        journal, redemption = await _settle(store, journal, redemption, result, available - owed)

        if cancelled:
            if not result.ok:
                _raise_for_failed_batch(redemption, result)
            logger.warning(
                "Redemption completed after the caller was cancelled",
                extra={"customer_id": customer_id, "redemption_id": redemption.redemption_id},
            )
            raise asyncio.CancelledError

        if result.ok:
            record_redemption("success")
            logger.info(
                "Points redeemed",
                extra={
                    "customer_id": customer_id,
                    "redemption_id": redemption.redemption_id,
                    "points": redemption.points,
                    "remaining": redemption.remaining,
                    "attempt": attempt,
                },
            )
            return redemption

        if result.failure_reasons == {CONDITION_FAILED}:
            # Otra escritura ganó la carrera; se replanifica lo que falta.
            record_redemption("conflict_retry")
            logger.warning(
                "Redemption lost a race, retrying",
                extra={
                    "customer_id": customer_id,
                    "redemption_id": redemption.redemption_id,
                    "applied_points": redemption.applied_points,
                    "attempt": attempt,
                },
            )
            continue

        _raise_for_failed_batch(redemption, result)

    if redemption.applied_points:
        _raise_for_failed_batch(redemption, result)
    raise ConflictError("Redemption kept conflicting with concurrent updates; retry")


async def _resume_redemption(
    store: RecordStore,
    journal: StoredItem,
    redemption: Redemption,
    points: int,
    attempts: int,
) -> Redemption:
    if redemption.points != points:
        raise ConflictError("redemptionId was already used for a different amount")
    if redemption.status == RedemptionStatus.applied:
        logger.info(
            "Redemption replayed",
            extra={"customer_id": redemption.customer_id, "redemption_id": redemption.redemption_id},
        )
        return redemption

    if redemption.status == RedemptionStatus.pending and redemption.steps:
        entries = await _load_entries(store, redemption.customer_id)
        deducted = _in_flight_deduction(redemption, {item.sk: (item, entry) for item, entry in entries})
        if deducted is None:
            logger.error(
                "Redemption outcome cannot be determined from the ledger",
                extra={"customer_id": redemption.customer_id, "redemption_id": redemption.redemption_id},
            )
            raise ConflictError("Outcome of this redemption is unknown; reconcile the ledger before retrying")
        redemption = redemption.model_copy(
            update={
                "applied_points": redemption.applied_points + deducted,
                "status": RedemptionStatus.interrupted,
            }
        )
        if redemption.applied_points == redemption.points:
            settled = redemption.model_copy(
                update={
                    "status": RedemptionStatus.applied,
                    "remaining": sum(entry.points for _, entry in entries),
                }
            )
            await _write_journal(store, settled, journal)
            record_redemption("success")
            logger.info(
                "Redemption found applied on retry",
                extra={"customer_id": settled.customer_id, "redemption_id": settled.redemption_id},
            )
            return settled

    logger.info(
        "Resuming redemption",
        extra={
            "customer_id": redemption.customer_id,
            "redemption_id": redemption.redemption_id,
            "applied_points": redemption.applied_points,
        },
    )
    return await _run_redemption(store, redemption, journal, attempts)


async def redeem_points(
    store: RecordStore,
    customer_id: str,
    points: int,
    *,
    redemption_id: str | None = None,
    max_attempts: int | None = None,
) -> Redemption:
    """Spend ``points`` across the customer's entries, oldest first.

    All-or-nothing from the caller's side: returns the settled journal (with
    the balance left after it) on success and raises otherwise.
    ``PartialRedemptionError`` carries the redemption id; retrying with it
    spends only what is still owed.
    """
    points = _require_points(points)
    redemption_id = _require_text(redemption_id, "redemption_id") if redemption_id is not None else uuid.uuid4().hex
    attempts = max_attempts or settings.REDEEM_MAX_ATTEMPTS

    found = await _get_journal(store, customer_id, redemption_id)
    if found is not None:
        return await _resume_redemption(store, found[0], found[1], points, attempts)

    redemption = Redemption(
        customer_id=customer_id,
        redemption_id=redemption_id,
        points=points,
        created_at=_utcnow(),
    )
    return await _run_redemption(store, redemption, None, attempts)


async def list_redemptions(store: RecordStore, customer_id: str) -> list[Redemption]:
    pk = codec.customer_pk(customer_id)
    try:
        items = await store.query_by_prefix(pk, codec.REDEMPTION_PREFIX)
    except StoreError as exc:
        raise from_store_error(exc, "listing redemptions") from exc
    redemptions = [codec.decode_redemption(item) for item in items]
    redemptions.sort(key=lambda redemption: redemption.created_at)
    return redemptions
