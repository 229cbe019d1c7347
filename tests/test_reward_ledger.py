# tests/test_reward_ledger.py
import asyncio
from datetime import datetime, timezone

import pytest

from restaurant_ledger.db.record_store import UNAVAILABLE, BatchWriteResult, StoreUnavailableError
from restaurant_ledger.db.sql_record_store import SqlRecordStore
from restaurant_ledger.domain import codec
from restaurant_ledger.domain.enums import RedemptionStatus
from restaurant_ledger.schemas.entities import Redemption, RedemptionStep, RewardEntry
from restaurant_ledger.services import reward_service
from restaurant_ledger.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InsufficientPointsError,
    PartialRedemptionError,
    ResourceNotFoundError,
    UnavailableError,
)


# ---------- helpers ----------
async def _seed(store, customer_id: str, *points: int) -> list[str]:
    """Crea una entrada por valor, en orden; devuelve los ids."""
    ids = []
    for index, value in enumerate(points):
        ids.append(await reward_service.create_reward(store, customer_id, f"type-{index}", value))
    return ids


async def _balances(store, customer_id: str) -> dict[str, int]:
    return {entry.entry_id: entry.points for entry in await reward_service.list_rewards(store, customer_id)}


def _sk(customer_id: str, entry_id: str) -> str:
    return codec.reward_key(customer_id, entry_id)[1]


def _label(customer_id: str, entry_id: str) -> str:
    return "/".join(codec.reward_key(customer_id, entry_id))


class FlakyBatchStore(SqlRecordStore):
    """Batch writes fail (without applying) for the listed sort keys."""

    def __init__(self, *args, fail_sks=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_sks = set(fail_sks)

    async def batch_write(self, ops):
        result = BatchWriteResult()
        for op in ops:
            if op.key[1] in self.fail_sks:
                result.failed.append((op, UNAVAILABLE))
                continue
            partial = await super().batch_write([op])
            result.applied.extend(partial.applied)
            result.failed.extend(partial.failed)
        return result


class RacingStore(SqlRecordStore):
    """Another writer bumps one entry right before the first batch lands."""

    def __init__(self, *args, race_sk: str, new_points: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.race_sk = race_sk
        self.new_points = new_points
        self.batches = 0

    async def batch_write(self, ops):
        self.batches += 1
        if self.batches == 1:
            for item in await self.query_by_prefix(ops[0].key[0], self.race_sk):
                entry = codec.decode_reward(item)
                await self.put(codec.encode_reward(entry.model_copy(update={"points": self.new_points})))
        return await super().batch_write(ops)


class SlowBatchStore(SqlRecordStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()

    async def batch_write(self, ops):
        self.started.set()
        await asyncio.sleep(0.05)
        return await super().batch_write(ops)


class InterleavedWriterStore(SqlRecordStore):
    """First batch: apply the first op, let another writer set ``race_sk``, then send the rest.

    With ``reason`` the remaining ops fail with it instead of reaching the table.
    """

    def __init__(self, *args, race_sk: str, new_points: int, reason: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.race_sk = race_sk
        self.new_points = new_points
        self.reason = reason
        self.batches = 0

    async def batch_write(self, ops):
        self.batches += 1
        if self.batches > 1:
            return await super().batch_write(ops)
        first, rest = ops[0], ops[1:]
        result = await super().batch_write([first])
        item = await self.get(first.key[0], self.race_sk)
        entry = codec.decode_reward(item)
        await self.put(codec.encode_reward(entry.model_copy(update={"points": self.new_points})))
        if self.reason is None:
            tail = await super().batch_write(rest)
            result.applied.extend(tail.applied)
            result.failed.extend(tail.failed)
        else:
            result.failed.extend((op, self.reason) for op in rest)
        return result


class SlowFailingStore(SqlRecordStore):
    """Slow batch in which every op is rejected without being applied."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()

    async def batch_write(self, ops):
        self.started.set()
        await asyncio.sleep(0.05)
        return BatchWriteResult(failed=[(op, UNAVAILABLE) for op in ops])


class JournalOutageStore(SqlRecordStore):
    """Journal writes fail once the ledger batch has gone through."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.batch_sent = False

    async def batch_write(self, ops):
        result = await super().batch_write(ops)
        self.batch_sent = True
        return result

    async def put(self, item, **kwargs):
        if self.batch_sent and item.sk.startswith(codec.REDEMPTION_PREFIX):
            raise StoreUnavailableError("journal write timed out")
        return await super().put(item, **kwargs)


# ---------- alta ----------
@pytest.mark.asyncio
async def test_create_reward_copies_customer_details(store, customer) -> None:
    entry_id = await reward_service.create_reward(store, customer.id, "birthday", 50, "2024-04")

    entry = await reward_service.get_reward(store, customer.id, entry_id)
    assert entry.points == 50
    assert entry.period == "2024-04"
    assert entry.name == "Asha Rao"
    assert entry.phone_number == customer.phone_number
    assert entry.date_of_birth == "1990-04-12"


@pytest.mark.asyncio
async def test_create_reward_requires_existing_customer(store) -> None:
    with pytest.raises(ResourceNotFoundError):
        await reward_service.create_reward(store, "5550000000", "loyalty", 5)
    assert await reward_service.list_all_rewards(store) == []


@pytest.mark.asyncio
async def test_create_reward_uses_injected_customer_lookup(store, customer) -> None:
    async def _nobody(_store, _customer_id):
        return None

    with pytest.raises(ResourceNotFoundError):
        await reward_service.create_reward(store, customer.id, "loyalty", 5, customer_lookup=_nobody)


@pytest.mark.asyncio
@pytest.mark.parametrize("points", [0, -3, 2.5, "7", True, None])
async def test_create_reward_rejects_invalid_points(store, customer, points) -> None:
    with pytest.raises(DomainValidationError):
        await reward_service.create_reward(store, customer.id, "loyalty", points)


@pytest.mark.asyncio
async def test_duplicate_active_reward_type_is_rejected(store, customer) -> None:
    await reward_service.create_reward(store, customer.id, "loyalty", 5)
    with pytest.raises(ConflictError):
        await reward_service.create_reward(store, customer.id, "loyalty", 3)

    assert await reward_service.available_points(store, customer.id) == 5


@pytest.mark.asyncio
async def test_entry_ids_increase_in_creation_order(store, customer) -> None:
    ids = await _seed(store, customer.id, 1, 1, 1, 1)
    assert [int(value) for value in ids] == sorted({int(value) for value in ids})
    assert [entry.entry_id for entry in await reward_service.list_rewards(store, customer.id)] == ids


# ---------- listados ----------
@pytest.mark.asyncio
async def test_list_all_rewards_spans_customers(store, customer) -> None:
    from restaurant_ledger.services import customer_service

    other = await customer_service.register_customer(store, name="Ravi", phone_number="+91 90000 22222")
    await _seed(store, customer.id, 3)
    await _seed(store, other.id, 4)

    all_entries = await reward_service.list_all_rewards(store)
    assert {(entry.customer_id, entry.points) for entry in all_entries} == {(customer.id, 3), (other.id, 4)}
    assert await reward_service.list_rewards(store, "0000000000") == []


# ---------- actualización y baja ----------
@pytest.mark.asyncio
async def test_update_reward_overwrites_points_and_type(store, customer) -> None:
    [entry_id] = await _seed(store, customer.id, 5)

    updated = await reward_service.update_reward(store, customer.id, entry_id, 12, "vip")

    assert isinstance(updated, RewardEntry)
    stored = await reward_service.get_reward(store, customer.id, entry_id)
    assert (stored.points, stored.reward_type) == (12, "vip")


@pytest.mark.asyncio
async def test_update_to_zero_points_removes_the_entry(store, customer) -> None:
    [entry_id] = await _seed(store, customer.id, 5)

    assert await reward_service.update_reward(store, customer.id, entry_id, 0, "type-0") is None
    with pytest.raises(ResourceNotFoundError):
        await reward_service.get_reward(store, customer.id, entry_id)


@pytest.mark.asyncio
async def test_update_missing_entry_is_not_found(store, customer) -> None:
    with pytest.raises(ResourceNotFoundError):
        await reward_service.update_reward(store, customer.id, "123", 5, "loyalty")


@pytest.mark.asyncio
async def test_update_rejects_negative_points(store, customer) -> None:
    [entry_id] = await _seed(store, customer.id, 5)
    with pytest.raises(DomainValidationError):
        await reward_service.update_reward(store, customer.id, entry_id, -1, "loyalty")


@pytest.mark.asyncio
async def test_delete_reward_checks_expected_type(store, customer) -> None:
    [entry_id] = await _seed(store, customer.id, 5)

    with pytest.raises(ConflictError):
        await reward_service.delete_reward(store, customer.id, entry_id, "something-else")
    assert await reward_service.available_points(store, customer.id) == 5

    await reward_service.delete_reward(store, customer.id, entry_id, "type-0")
    assert await reward_service.list_rewards(store, customer.id) == []

    with pytest.raises(ResourceNotFoundError):
        await reward_service.delete_reward(store, customer.id, entry_id, "type-0")


# ---------- plan FIFO (puro) ----------
def test_plan_redemption_walks_oldest_first() -> None:
    entries = [
        RewardEntry(customer_id="c", entry_id=str(n), reward_type=f"t{n}", points=5) for n in (1, 2, 3)
    ]
    steps = reward_service.plan_redemption(entries, 7)

    assert [(step.sk, step.before, step.after) for step in steps] == [("REWARD#1", 5, 0), ("REWARD#2", 5, 3)]


def test_plan_redemption_rejects_shortfall() -> None:
    entries = [RewardEntry(customer_id="c", entry_id="1", reward_type="t", points=4)]
    with pytest.raises(InsufficientPointsError) as excinfo:
        reward_service.plan_redemption(entries, 5)
    assert excinfo.value.diagnostics() == {"available": 4, "requested": 5}


# ---------- canje ----------
@pytest.mark.asyncio
async def test_redeem_spans_entries_fifo(store, customer) -> None:
    t1, t2, t3 = await _seed(store, customer.id, 5, 5, 5)

    redemption = await reward_service.redeem_points(store, customer.id, 7)

    assert (redemption.points, redemption.remaining) == (7, 8)
    assert await _balances(store, customer.id) == {t2: 3, t3: 5}


@pytest.mark.asyncio
async def test_redeem_exact_balance_consumes_everything(store, customer) -> None:
    await _seed(store, customer.id, 5, 5)

    await reward_service.redeem_points(store, customer.id, 10)

    assert await reward_service.list_rewards(store, customer.id) == []


@pytest.mark.asyncio
async def test_redeem_conserves_points(store, customer) -> None:
    await _seed(store, customer.id, 3, 8, 13)
    before = await reward_service.available_points(store, customer.id)

    redeemed = (await reward_service.redeem_points(store, customer.id, 12)).applied_points

    assert before - await reward_service.available_points(store, customer.id) == redeemed == 12


@pytest.mark.asyncio
async def test_insufficient_points_leave_ledger_untouched(store, customer) -> None:
    await _seed(store, customer.id, 5, 5)
    before = await _balances(store, customer.id)

    with pytest.raises(InsufficientPointsError) as excinfo:
        await reward_service.redeem_points(store, customer.id, 15)

    assert (excinfo.value.available, excinfo.value.requested) == (10, 15)
    assert await _balances(store, customer.id) == before
    assert await reward_service.list_redemptions(store, customer.id) == []


@pytest.mark.asyncio
async def test_redeem_without_entries_is_not_found(store, customer) -> None:
    with pytest.raises(ResourceNotFoundError):
        await reward_service.redeem_points(store, customer.id, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("points", [0, -5, 1.5])
async def test_redeem_rejects_invalid_amounts(store, customer, points) -> None:
    await _seed(store, customer.id, 5)
    with pytest.raises(DomainValidationError):
        await reward_service.redeem_points(store, customer.id, points)


@pytest.mark.asyncio
async def test_redemption_is_journaled_as_applied(store, customer) -> None:
    await _seed(store, customer.id, 5, 5)

    await reward_service.redeem_points(store, customer.id, 6, redemption_id="pos-42")

    [redemption] = await reward_service.list_redemptions(store, customer.id)
    assert redemption.redemption_id == "pos-42"
    assert redemption.status == RedemptionStatus.applied
    assert [step.after for step in redemption.steps] == [0, 4]


@pytest.mark.asyncio
async def test_replaying_an_applied_redemption_does_not_deduct_twice(store, customer) -> None:
    await _seed(store, customer.id, 5, 5, 5)

    await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-1")
    replay = await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-1")
    assert (replay.status, replay.remaining) == (RedemptionStatus.applied, 8)

    assert await reward_service.available_points(store, customer.id) == 8


@pytest.mark.asyncio
async def test_reusing_redemption_id_with_other_amount_conflicts(store, customer) -> None:
    await _seed(store, customer.id, 5, 5, 5)
    await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-1")

    with pytest.raises(ConflictError):
        await reward_service.redeem_points(store, customer.id, 3, redemption_id="r-1")


@pytest.mark.asyncio
async def test_partial_failure_is_reported_and_retry_converges(store, session_factory, customer) -> None:
    t1, t2, t3 = await _seed(store, customer.id, 5, 5, 5)
    flaky = FlakyBatchStore(session_factory, fail_sks={_sk(customer.id, t2)})

    with pytest.raises(PartialRedemptionError) as excinfo:
        await reward_service.redeem_points(flaky, customer.id, 7, redemption_id="r-partial")

    error = excinfo.value
    assert error.retriable is True
    assert error.redemption_id == "r-partial"
    assert error.applied == [_label(customer.id, t1)]
    assert error.failed == [f"{_label(customer.id, t2)}:{UNAVAILABLE}"]
    # t1 ya se consumió; t2 quedó intacta.
    assert await _balances(store, customer.id) == {t2: 5, t3: 5}

    [journal] = await reward_service.list_redemptions(store, customer.id)
    assert (journal.status, journal.applied_points) == (RedemptionStatus.interrupted, 5)

    # Reintento con el mismo id: sólo se descuenta lo que falta.
    retried = await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-partial")
    assert retried.applied_points == 7
    assert await _balances(store, customer.id) == {t2: 3, t3: 5}
    [redemption] = await reward_service.list_redemptions(store, customer.id)
    assert redemption.status == RedemptionStatus.applied


@pytest.mark.asyncio
async def test_failed_batch_with_nothing_applied_is_unavailable(store, session_factory, customer) -> None:
    [t1] = await _seed(store, customer.id, 5)
    flaky = FlakyBatchStore(session_factory, fail_sks={_sk(customer.id, t1)})

    with pytest.raises(UnavailableError):
        await reward_service.redeem_points(flaky, customer.id, 2)

    assert await _balances(store, customer.id) == {t1: 5}


@pytest.mark.asyncio
async def test_lost_race_is_retried_against_fresh_state(store, session_factory, customer) -> None:
    t1, t2 = await _seed(store, customer.id, 10, 5)
    racing = RacingStore(session_factory, race_sk=_sk(customer.id, t1), new_points=20)

    assert (await reward_service.redeem_points(racing, customer.id, 3)).remaining == 22

    assert racing.batches == 2
    assert await _balances(store, customer.id) == {t1: 17, t2: 5}


@pytest.mark.asyncio
async def test_persistent_races_give_up_with_conflict(store, session_factory, customer) -> None:
    t1, _ = await _seed(store, customer.id, 10, 5)

    class AlwaysRacing(RacingStore):
        async def batch_write(self, ops):
            self.batches = 0
            return await super().batch_write(ops)

    racing = AlwaysRacing(session_factory, race_sk=_sk(customer.id, t1), new_points=20)

    with pytest.raises(ConflictError):
        await reward_service.redeem_points(racing, customer.id, 3, max_attempts=2)

    assert await reward_service.available_points(store, customer.id) == 25


@pytest.mark.asyncio
async def test_cancelled_redemption_finishes_its_batch(session_factory, store, customer) -> None:
    await _seed(store, customer.id, 5, 5, 5)
    slow = SlowBatchStore(session_factory)

    task = asyncio.create_task(reward_service.redeem_points(slow, customer.id, 7, redemption_id="r-cancel"))
    await slow.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    # El lote se completó aunque el llamador cancelara.
    assert await reward_service.available_points(store, customer.id) == 8
    # El diario quedó cerrado antes de propagar la cancelación.
    replay = await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-cancel")
    assert replay.status == RedemptionStatus.applied
    assert await reward_service.available_points(store, customer.id) == 8


@pytest.mark.asyncio
async def test_redemption_id_must_be_key_safe(store, customer) -> None:
    await _seed(store, customer.id, 5)
    with pytest.raises(DomainValidationError):
        await reward_service.redeem_points(store, customer.id, 1, redemption_id="bad#id")


# ---------- escrituras intercaladas ----------
@pytest.mark.asyncio
@pytest.mark.parametrize("writer_points", [3, 4])
async def test_interleaved_writer_is_replanned_within_the_call(
    store, session_factory, customer, writer_points
) -> None:
    t1, t2, t3 = await _seed(store, customer.id, 5, 5, 5)
    racing = InterleavedWriterStore(session_factory, race_sk=_sk(customer.id, t2), new_points=writer_points)

    redemption = await reward_service.redeem_points(racing, customer.id, 7, redemption_id="r-mix")

    assert racing.batches == 2
    assert (redemption.status, redemption.applied_points) == (RedemptionStatus.applied, 7)
    # 15 - (5 - writer_points) del otro escritor - 7 canjeados.
    assert await _balances(store, customer.id) == {t2: writer_points - 2, t3: 5}


@pytest.mark.asyncio
@pytest.mark.parametrize("writer_points", [3, 4])
async def test_retry_after_interleaved_partial_spends_only_what_is_owed(
    store, session_factory, customer, writer_points
) -> None:
    t1, t2, t3 = await _seed(store, customer.id, 5, 5, 5)
    racing = InterleavedWriterStore(
        session_factory, race_sk=_sk(customer.id, t2), new_points=writer_points, reason=UNAVAILABLE
    )

    with pytest.raises(PartialRedemptionError):
        await reward_service.redeem_points(racing, customer.id, 7, redemption_id="r1")
    assert await _balances(store, customer.id) == {t2: writer_points, t3: 5}

    retried = await reward_service.redeem_points(store, customer.id, 7, redemption_id="r1")

    assert retried.applied_points == 7
    assert await reward_service.available_points(store, customer.id) == writer_points + 5 - 2
    assert await _balances(store, customer.id) == {t2: writer_points - 2, t3: 5}
    # Un segundo reintento ya no descuenta.
    await reward_service.redeem_points(store, customer.id, 7, redemption_id="r1")
    assert await reward_service.available_points(store, customer.id) == writer_points + 3


@pytest.mark.asyncio
async def test_cancelled_redemption_with_nothing_applied_is_unavailable(
    session_factory, store, customer
) -> None:
    await _seed(store, customer.id, 5, 5)
    failing = SlowFailingStore(session_factory)

    task = asyncio.create_task(reward_service.redeem_points(failing, customer.id, 7, redemption_id="r-x"))
    await failing.started.wait()
    task.cancel()

    with pytest.raises(UnavailableError):
        await task
    assert await reward_service.available_points(store, customer.id) == 10


# ---------- diario sin resultado registrado ----------
@pytest.mark.asyncio
async def test_unrecorded_outcome_is_recognised_from_entry_versions(session_factory, store, customer) -> None:
    t1, t2 = await _seed(store, customer.id, 5, 5)
    outage = JournalOutageStore(session_factory)

    redemption = await reward_service.redeem_points(outage, customer.id, 3, redemption_id="r-lost")

    assert redemption.remaining == 7
    [journal] = await reward_service.list_redemptions(store, customer.id)
    assert journal.status == RedemptionStatus.pending

    replay = await reward_service.redeem_points(store, customer.id, 3, redemption_id="r-lost")

    assert (replay.status, replay.applied_points) == (RedemptionStatus.applied, 3)
    assert await _balances(store, customer.id) == {t1: 2, t2: 5}
    [journal] = await reward_service.list_redemptions(store, customer.id)
    assert journal.status == RedemptionStatus.applied


@pytest.mark.asyncio
async def test_unknowable_outcome_is_refused_instead_of_deducting_again(
    session_factory, store, customer
) -> None:
    await _seed(store, customer.id, 5, 5, 5)
    outage = JournalOutageStore(session_factory)
    await reward_service.redeem_points(outage, customer.id, 7, redemption_id="r-gone")

    # La entrada consumida ya no existe: no se puede saber quién la borró.
    with pytest.raises(ConflictError):
        await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-gone")

    assert await reward_service.available_points(store, customer.id) == 8


@pytest.mark.asyncio
async def test_pending_journal_whose_batch_never_ran_is_finished_once(store, customer) -> None:
    t1, t2, t3 = await _seed(store, customer.id, 5, 5, 5)
    first = await store.get(*codec.reward_key(customer.id, t1))
    second = await store.get(*codec.reward_key(customer.id, t2))
    await store.put(
        codec.encode_redemption(
            Redemption(
                customer_id=customer.id,
                redemption_id="r-crash",
                points=7,
                steps=[
                    RedemptionStep(sk=first.sk, before=5, after=0, version=first.version),
                    RedemptionStep(sk=second.sk, before=5, after=3, version=second.version),
                ],
                created_at=datetime.now(timezone.utc),
            )
        ),
        must_not_exist=True,
    )

    await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-crash")
    await reward_service.redeem_points(store, customer.id, 7, redemption_id="r-crash")

    assert await _balances(store, customer.id) == {t2: 3, t3: 5}


@pytest.mark.asyncio
async def test_manual_update_clears_redemption_tag(store, customer) -> None:
    [entry_id] = await _seed(store, customer.id, 10)
    await reward_service.redeem_points(store, customer.id, 4, redemption_id="r-tag")
    assert (await reward_service.get_reward(store, customer.id, entry_id)).last_redemption_id == "r-tag"

    await reward_service.update_reward(store, customer.id, entry_id, 9, "type-0")

    assert (await reward_service.get_reward(store, customer.id, entry_id)).last_redemption_id is None
