# restaurant_ledger/db/sql_record_store.py
"""SQLAlchemy implementation of the record store."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import delete as sa_delete
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restaurant_ledger.core.config import settings
from restaurant_ledger.core.logging import get_logger
from restaurant_ledger.db.record_store import (
    CONDITION_FAILED,
    RECORD_TYPE_ATTRIBUTE,
    STORE_ERROR,
    UNAVAILABLE,
    BatchWriteResult,
    ConditionFailedError,
    DeleteOp,
    PutOp,
    RecordStore,
    StoredItem,
    StoreError,
    StoreUnavailableError,
    WriteOp,
)
from restaurant_ledger.db.session_async import AsyncSessionLocal, run_in_transaction
from restaurant_ledger.models.record import Record

T = TypeVar("T")

logger = get_logger("restaurant_ledger.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_item(row: Record) -> StoredItem:
    return StoredItem(pk=row.pk, sk=row.sk, attributes=dict(row.attributes or {}), version=row.version)


class SqlRecordStore(RecordStore):
    """Record store backed by a single SQL table.

    Each call runs in its own transaction and is bounded by
    ``STORE_TIMEOUT_SECONDS``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        *,
        timeout: float | None = None,
        max_cas_attempts: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout or settings.STORE_TIMEOUT_SECONDS
        self._max_cas_attempts = max_cas_attempts or settings.REDEEM_MAX_ATTEMPTS

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(
                run_in_transaction(operation, self._session_factory),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError("Record store call timed out") from exc
        except OperationalError as exc:
            raise StoreUnavailableError(str(exc.orig or exc)) from exc
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    async def get(self, pk: str, sk: str) -> StoredItem | None:
        async def _op(session: AsyncSession) -> StoredItem | None:
            row = await session.get(Record, (pk, sk))
            return _to_item(row) if row else None

        return await self._run(_op)

    async def put(
        self,
        item: StoredItem,
        *,
        expected_version: int | None = None,
        must_not_exist: bool = False,
    ) -> StoredItem:
        attributes = dict(item.attributes)
        record_type = attributes.get(RECORD_TYPE_ATTRIBUTE)

        async def _insert(session: AsyncSession) -> StoredItem:
            try:
                await session.execute(
                    insert(Record).values(
                        pk=item.pk,
                        sk=item.sk,
                        record_type=record_type,
                        attributes=attributes,
                        version=1,
                        updated_at=_utcnow(),
                    )
                )
            except IntegrityError as exc:
                raise ConditionFailedError(f"Item {item.pk}/{item.sk} already exists") from exc
            return StoredItem(item.pk, item.sk, attributes, 1)

        async def _op(session: AsyncSession) -> StoredItem:
            if must_not_exist:
                return await _insert(session)

            if expected_version is None:
                current = await session.get(Record, (item.pk, item.sk))
                if current is None:
                    return await _insert(session)
                version = current.version
            else:
                version = expected_version

            result = await session.execute(
                update(Record)
                .where(Record.pk == item.pk, Record.sk == item.sk, Record.version == version)
                .values(
                    record_type=record_type,
                    attributes=attributes,
                    version=version + 1,
                    updated_at=_utcnow(),
                )
            )
            if result.rowcount != 1:
                raise ConditionFailedError(f"Item {item.pk}/{item.sk} changed or is missing")
            return StoredItem(item.pk, item.sk, attributes, version + 1)

        return await self._run(_op)

    async def delete(self, pk: str, sk: str, *, expected_version: int | None = None) -> bool:
        async def _op(session: AsyncSession) -> bool:
            stmt = sa_delete(Record).where(Record.pk == pk, Record.sk == sk)
            if expected_version is not None:
                stmt = stmt.where(Record.version == expected_version)
            result = await session.execute(stmt)
            if result.rowcount == 0 and expected_version is not None:
                raise ConditionFailedError(f"Item {pk}/{sk} changed or is missing")
            return result.rowcount > 0

        return await self._run(_op)

    async def query_by_prefix(self, pk: str, sk_prefix: str) -> list[StoredItem]:
        async def _op(session: AsyncSession) -> list[StoredItem]:
            stmt = (
                select(Record)
                .where(Record.pk == pk, Record.sk.startswith(sk_prefix, autoescape=True))
                .order_by(Record.sk)
            )
            rows = (await session.execute(stmt)).scalars().all()
            # LIKE is case-insensitive on some backends.
            return [_to_item(row) for row in rows if row.sk.startswith(sk_prefix)]

        return await self._run(_op)

    async def query_range(self, pk: str, sk_low: str, sk_high: str) -> list[StoredItem]:
        async def _op(session: AsyncSession) -> list[StoredItem]:
            stmt = (
                select(Record)
                .where(Record.pk == pk, Record.sk >= sk_low, Record.sk <= sk_high)
                .order_by(Record.sk)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_item(row) for row in rows]

        return await self._run(_op)

    async def scan_by_attribute(self, name: str, value: Any) -> list[StoredItem]:
        async def _op(session: AsyncSession) -> list[StoredItem]:
            stmt = select(Record).order_by(Record.pk, Record.sk)
            if name == RECORD_TYPE_ATTRIBUTE:
                stmt = stmt.where(Record.record_type == value)
            rows = (await session.execute(stmt)).scalars().all()
            items = [_to_item(row) for row in rows]
            if name == RECORD_TYPE_ATTRIBUTE:
                return items
            return [item for item in items if item.attributes.get(name) == value]

        return await self._run(_op)

    async def conditional_update(
        self,
        pk: str,
        sk: str,
        *,
        deltas: dict[str, int] | None = None,
        sets: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async def _attempt(session: AsyncSession) -> dict[str, Any] | None:
            row = await session.get(Record, (pk, sk))
            if row is None:
                raise ConditionFailedError(f"Item {pk}/{sk} does not exist")
            attributes = dict(row.attributes or {})
            for name, value in (expected or {}).items():
                if attributes.get(name) != value:
                    raise ConditionFailedError(f"Attribute {name} of {pk}/{sk} does not match")
            for name, delta in (deltas or {}).items():
                attributes[name] = (attributes.get(name) or 0) + delta
            attributes.update(sets or {})

            # Compare-and-swap on the version read above.
            result = await session.execute(
                update(Record)
                .where(Record.pk == pk, Record.sk == sk, Record.version == row.version)
                .values(attributes=attributes, version=row.version + 1, updated_at=_utcnow())
            )
            if result.rowcount != 1:
                return None
            return attributes

        for attempt in range(1, self._max_cas_attempts + 1):
            attributes = await self._run(_attempt)
            if attributes is not None:
                return attributes
            logger.warning(
                "Conditional update lost a race, retrying",
                extra={"pk": pk, "sk": sk, "attempt": attempt},
            )
        raise StoreUnavailableError(f"Too much contention updating {pk}/{sk}")

    async def batch_write(self, ops: list[WriteOp]) -> BatchWriteResult:
        result = BatchWriteResult()
        for op in ops:
            try:
                if isinstance(op, PutOp):
                    await self.put(
                        op.item,
                        expected_version=op.expected_version,
                        must_not_exist=op.must_not_exist,
                    )
                elif isinstance(op, DeleteOp):
                    await self.delete(op.pk, op.sk, expected_version=op.expected_version)
                else:
                    raise TypeError(f"Unsupported write op: {op!r}")
            except ConditionFailedError:
                result.failed.append((op, CONDITION_FAILED))
            except StoreUnavailableError:
                result.failed.append((op, UNAVAILABLE))
            except StoreError:
                result.failed.append((op, STORE_ERROR))
            else:
                result.applied.append(op)

        if result.failed:
            logger.warning(
                "Batch write partially failed",
                extra={
                    "applied": len(result.applied),
                    "failed": [f"{op.key[0]}/{op.key[1]}:{reason}" for op, reason in result.failed],
                },
            )
        return result

