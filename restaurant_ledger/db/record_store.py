# restaurant_ledger/db/record_store.py
"""Record store contract shared by every service.

The store is a sorted key-value table addressed by ``(pk, sk)``. Services talk
to it only through :class:`RecordStore`, so tests and alternative backends can
be injected without touching business code.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Union

RECORD_TYPE_ATTRIBUTE = "recordType"

CONDITION_FAILED = "condition_failed"
UNAVAILABLE = "unavailable"
STORE_ERROR = "store_error"


class StoreError(Exception):
    """Base error raised by record store backends."""


class ConditionFailedError(StoreError):
    """A conditional write did not match the stored item."""


class StoreUnavailableError(StoreError):
    """The backend timed out, was throttled or could not be reached."""


@dataclass(frozen=True, slots=True)
class StoredItem:
    pk: str
    sk: str
    attributes: dict[str, Any] = field(default_factory=dict)
    version: int = 0

    @property
    def key(self) -> tuple[str, str]:
        return self.pk, self.sk


@dataclass(frozen=True, slots=True)
class PutOp:
    item: StoredItem
    expected_version: int | None = None
    must_not_exist: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return self.item.key


@dataclass(frozen=True, slots=True)
class DeleteOp:
    pk: str
    sk: str
    expected_version: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return self.pk, self.sk


WriteOp = Union[PutOp, DeleteOp]


@dataclass(slots=True)
class BatchWriteResult:
    """Outcome of a batch write; each op either applied or failed on its own."""

    applied: list[WriteOp] = field(default_factory=list)
    failed: list[tuple[WriteOp, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failure_reasons(self) -> set[str]:
        return {reason for _, reason in self.failed}


class RecordStore(abc.ABC):
    """Operations every record store backend must provide."""

    @abc.abstractmethod
    async def get(self, pk: str, sk: str) -> StoredItem | None: ...

    @abc.abstractmethod
    async def put(
        self,
        item: StoredItem,
        *,
        expected_version: int | None = None,
        must_not_exist: bool = False,
    ) -> StoredItem:
        """Write ``item``; raise ConditionFailedError when a condition does not hold."""

    @abc.abstractmethod
    async def delete(self, pk: str, sk: str, *, expected_version: int | None = None) -> bool:
        """Remove an item; returns False when nothing was stored under the key."""

    @abc.abstractmethod
    async def query_by_prefix(self, pk: str, sk_prefix: str) -> list[StoredItem]:
        """Items of ``pk`` whose sort key starts with ``sk_prefix``, ascending by sort key."""

    @abc.abstractmethod
    async def query_range(self, pk: str, sk_low: str, sk_high: str) -> list[StoredItem]:
        """Items of ``pk`` with ``sk_low <= sk <= sk_high``, ascending by sort key."""

    @abc.abstractmethod
    async def scan_by_attribute(self, name: str, value: Any) -> list[StoredItem]:
        """Full-table scan; only meant for small administrative listings."""

    @abc.abstractmethod
    async def conditional_update(
        self,
        pk: str,
        sk: str,
        *,
        deltas: dict[str, int] | None = None,
        sets: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Atomically apply increments and assignments to an existing item.

        Counters missing from the item start at zero. ``expected`` lists
        attribute values the stored item must hold for the update to apply.
        Returns the updated attribute map.
        """

    @abc.abstractmethod
    async def batch_write(self, ops: list[WriteOp]) -> BatchWriteResult:
        """Apply puts and deletes without cross-item atomicity.

        Every op is reported as applied or failed; nothing is dropped silently.
        """
