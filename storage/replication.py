"""Replicated writes: one atomic transaction on the primary, then a replay on each replica.

The primary commit is authoritative. Replicas are written afterwards, each in
its own transaction, and a replica failure is only reported: it never undoes
the primary commit and never raises past :class:`ReplicatedWriter`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from domain.errors import DomainError, StoreUnavailableError

from .base import Store
from .context import ReplicaSlot, StorageContext

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
BACKUP_WRITE_FAILED = "backup write failed"


class Replayable(Protocol[T_co]):
    def apply(self, store: Store) -> T_co:
        ...


class WriteStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_REPLICA_FAILURE = "partial_replica_failure"
    PRIMARY_FAILURE = "primary_failure"


@dataclass(frozen=True)
class ReplicaOutcome:
    replica: str
    priority: int
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class WriteResult(Generic[T]):
    status: WriteStatus
    value: T | None = None
    replicas: tuple[ReplicaOutcome, ...] = ()
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status is not WriteStatus.PRIMARY_FAILURE

    @property
    def fully_replicated(self) -> bool:
        return self.status is WriteStatus.SUCCESS

    @property
    def backup_failed(self) -> bool:
        return bool(self.replicas) and not any(outcome.success for outcome in self.replicas)

    @property
    def warning(self) -> str | None:
        return BACKUP_WRITE_FAILED if self.backup_failed else None

    def failed_replicas(self) -> list[ReplicaOutcome]:
        return [outcome for outcome in self.replicas if not outcome.success]

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class ReplicationStats:
    writes: int = 0
    primary_failures: int = 0
    backup_write_failures: int = 0
    replica_failures: dict[str, int] = field(default_factory=dict)
    last_replica_errors: dict[str, str] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        return {
            "writes": self.writes,
            "primary_failures": self.primary_failures,
            "backup_write_failures": self.backup_write_failures,
            "replica_failures": dict(self.replica_failures),
            "last_replica_errors": dict(self.last_replica_errors),
        }


class ReplicatedWriter:
    """The only component that writes to more than the primary store."""

    def __init__(self, context: StorageContext) -> None:
        self._context = context
        self._stats = ReplicationStats()
        self._stats_lock = threading.Lock()

    @property
    def stats(self) -> dict[str, Any]:
        with self._stats_lock:
            return self._stats.snapshot()

    def execute(self, mutation: Replayable[T]) -> WriteResult[T]:
        label = _describe(mutation)
        if not self._context.writable:
            error = StoreUnavailableError("Primary store is unrecoverable; writes are refused")
            self._count_primary_failure()
            return WriteResult(WriteStatus.PRIMARY_FAILURE, error=error)

        primary = self._context.primary
        try:
            with primary.transaction():
                value = mutation.apply(primary)
        except (sqlite3.Error, DomainError) as exc:
            logger.warning("Primary write failed mutation=%s: %s", label, exc)
            self._count_primary_failure()
            return WriteResult(WriteStatus.PRIMARY_FAILURE, error=exc)

        outcomes = tuple(self._replicate(slot, mutation, label) for slot in self._context.replicas)
        result = WriteResult(
            WriteStatus.SUCCESS
            if all(outcome.success for outcome in outcomes)
            else WriteStatus.PARTIAL_REPLICA_FAILURE,
            value=value,
            replicas=outcomes,
        )
        self._record(result)
        if result.backup_failed:
            logger.error(
                "%s mutation=%s replicas=%s",
                BACKUP_WRITE_FAILED,
                label,
                ", ".join(f"{o.replica}: {o.error}" for o in outcomes),
            )
        return result

    def with_replicated_write(self, mutation: Replayable[T]) -> T:
        """Apply ``mutation`` everywhere and return the primary's result.

        Primary failures are re-raised unchanged; replica failures are logged only.
        """
        return self.execute(mutation).unwrap()

    def _replicate(self, slot: ReplicaSlot, mutation: Replayable[Any], label: str) -> ReplicaOutcome:
        if not slot.is_reachable():
            logger.warning("Replica write skipped replica=%s mutation=%s: unreachable", slot.name, label)
            return ReplicaOutcome(slot.name, slot.priority, False, f"replica unreachable: {slot.path}")
        try:
            with slot.store.transaction():
                mutation.apply(slot.store)
        except Exception as exc:
            logger.warning("Replica write failed replica=%s mutation=%s: %s", slot.name, label, exc)
            return ReplicaOutcome(slot.name, slot.priority, False, f"{type(exc).__name__}: {exc}")
        return ReplicaOutcome(slot.name, slot.priority, True)

    def _count_primary_failure(self) -> None:
        with self._stats_lock:
            self._stats.writes += 1
            self._stats.primary_failures += 1

    def _record(self, result: WriteResult[Any]) -> None:
        with self._stats_lock:
            self._stats.writes += 1
            if result.backup_failed:
                self._stats.backup_write_failures += 1
            for outcome in result.failed_replicas():
                failures = self._stats.replica_failures
                failures[outcome.replica] = failures.get(outcome.replica, 0) + 1
                self._stats.last_replica_errors[outcome.replica] = outcome.error or ""


def _describe(mutation: Any) -> str:
    describe = getattr(mutation, "describe", None)
    if callable(describe):
        return describe()
    return type(mutation).__name__
