from __future__ import annotations

import logging
import os
import shutil
import sqlite3
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from domain.errors import RecoveryInProgressError

from .base import Store
from .context import ReplicaSlot, StorageContext
from .integrity import IntegrityVerdict, check_file, check_integrity
from .sqlite_storage import SQLiteStore, remove_side_files

logger = logging.getLogger(__name__)


class RecoveryState(str, Enum):
    HEALTHY = "healthy"
    CHECKING = "checking"
    RECOVERING = "recovering"
    RECOVERED = "recovered"
    UNRECOVERABLE = "unrecoverable"


@dataclass(frozen=True)
class RecoveryAttempt:
    priority: int
    replica: str
    path: str
    existed: bool
    verdict_ok: bool = False
    copied: bool = False
    detail: str = ""


@dataclass(frozen=True)
class RecoveryReport:
    success: bool
    source: str | None = None
    attempts: tuple[RecoveryAttempt, ...] = ()
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.source is not None:
            payload["source"] = self.source
        if self.message:
            payload["message" if self.success else "error"] = self.message
        payload["attempts"] = [asdict(attempt) for attempt in self.attempts]
        return payload


class RecoveryManager:
    """Verifies the primary store and promotes a verified replica when it is damaged.

    Replicas are tried in priority order. Promotion is a whole-file copy of
    the replica over the primary file. Nothing is merged or rebuilt.
    """

    def __init__(self, context: StorageContext) -> None:
        self._context = context
        self._state = RecoveryState.HEALTHY
        self._check_lock = threading.Lock()
        self._startup_checked = False
        self.last_verdict: IntegrityVerdict | None = None
        self.last_report: RecoveryReport | None = None

    @property
    def state(self) -> RecoveryState:
        return self._state

    def verify_integrity(self, store: Store | None = None) -> bool:
        if store is None:
            verdict = check_integrity(self._context.primary)
            self.last_verdict = verdict
            return verdict.ok
        return check_integrity(store).ok

    def check_and_recover(self) -> RecoveryReport:
        """Run one check cycle; recover from replicas if the primary fails it."""
        if not self._check_lock.acquire(blocking=False):
            raise RecoveryInProgressError("A storage check is already running")
        try:
            if self._state is RecoveryState.UNRECOVERABLE:
                return RecoveryReport(False, message="Primary store is unrecoverable")
            self._state = RecoveryState.CHECKING
            verdict = self._primary_verdict()
            self.last_verdict = verdict
            if verdict.ok:
                logger.info("Primary store integrity OK")
                self._state = RecoveryState.HEALTHY
                self.last_report = RecoveryReport(True, message="No recovery needed")
                return self.last_report
            logger.error("Primary store failed integrity check: %s", verdict.detail)
            return self._recover()
        finally:
            self._check_lock.release()

    def attempt_recovery(self) -> RecoveryReport:
        """Try each replica in priority order until one is promoted."""
        if not self._check_lock.acquire(blocking=False):
            raise RecoveryInProgressError("A storage check is already running")
        try:
            return self._recover()
        finally:
            self._check_lock.release()

    def restore_from_replica(self, priority: int) -> bool:
        if priority not in (1, 2):
            raise ValueError(f"Replica priority must be 1 or 2, got {priority}")
        slot = self._context.replica(priority)
        if not self._check_lock.acquire(blocking=False):
            raise RecoveryInProgressError("A storage check is already running")
        try:
            attempt = self._try_replica(slot)
            if attempt.copied:
                self._state = RecoveryState.RECOVERED
                self._context.writable = True
                self.last_report = RecoveryReport(True, source=slot.name, attempts=(attempt,))
            return attempt.copied
        finally:
            self._check_lock.release()

    def _primary_verdict(self) -> IntegrityVerdict:
        verdict = check_integrity(self._context.primary)
        first_check = not self._startup_checked
        self._startup_checked = True
        if verdict.ok and first_check and self._primary_was_missing():
            return IntegrityVerdict(
                ok=False,
                store="primary",
                detail="primary file was missing at startup while replica files exist",
            )
        return verdict

    def _primary_was_missing(self) -> bool:
        if self._context.primary_existed_at_open:
            return False
        return any(slot.existed_at_open for slot in self._context.replicas)

    def _recover(self) -> RecoveryReport:
        self._state = RecoveryState.RECOVERING
        attempts: list[RecoveryAttempt] = []
        for slot in self._context.replicas:
            attempt = self._try_replica(slot)
            attempts.append(attempt)
            if attempt.copied:
                logger.info("Primary store restored from %s", slot.name)
                self._state = RecoveryState.RECOVERED
                self.last_report = RecoveryReport(True, source=slot.name, attempts=tuple(attempts))
                return self.last_report

        logger.critical(
            "Primary store cannot be recovered: all replicas failed (%s)",
            "; ".join(f"{a.replica}: {a.detail}" for a in attempts) or "no replicas configured",
        )
        self._state = RecoveryState.UNRECOVERABLE
        self._context.mark_unwritable()
        self.last_report = RecoveryReport(
            False, attempts=tuple(attempts), message="All replicas invalid or missing"
        )
        return self.last_report

    def _try_replica(self, slot: ReplicaSlot) -> RecoveryAttempt:
        if not os.path.exists(slot.path):
            logger.error("Replica %s not found at %s", slot.name, slot.path)
            return RecoveryAttempt(slot.priority, slot.name, slot.path, existed=False,
                                   detail="replica file not found")

        verdict = check_file(slot.path, name=f"{slot.name}-candidate")
        if not verdict.ok:
            logger.error("Replica %s is corrupted: %s", slot.name, verdict.detail)
            return RecoveryAttempt(slot.priority, slot.name, slot.path, existed=True,
                                   detail=verdict.detail or "integrity check failed")

        if _table_count(slot.path) == 0:
            logger.error("Replica %s holds no tables, refusing to promote it", slot.name)
            return RecoveryAttempt(slot.priority, slot.name, slot.path, existed=True,
                                   verdict_ok=True, detail="replica is empty")

        try:
            self._promote(slot)
        except (OSError, sqlite3.Error) as exc:
            logger.exception("Restore from %s failed", slot.name)
            self._context.reopen_primary()
            return RecoveryAttempt(slot.priority, slot.name, slot.path, existed=True,
                                   verdict_ok=True, detail=f"copy failed: {exc}")
        return RecoveryAttempt(slot.priority, slot.name, slot.path, existed=True,
                               verdict_ok=True, copied=True)

    def _promote(self, slot: ReplicaSlot) -> None:
        candidate = SQLiteStore(slot.path, name=f"{slot.name}-candidate")
        try:
            candidate.checkpoint()
        finally:
            candidate.close()

        primary_path = self._context.primary_path
        self._context.primary.close()
        remove_side_files(primary_path)
        shutil.copy2(slot.path, primary_path)
        self._context.reopen_primary()
        logger.info("Copied %s over primary %s", slot.path, primary_path)


def _table_count(path: str) -> int:
    candidate = SQLiteStore(path, name="candidate")
    try:
        return int(candidate.scalar("SELECT COUNT(*) FROM sqlite_master WHERE type = 'table'"))
    except sqlite3.Error:
        return 0
    finally:
        candidate.close()
