from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from backup import sync_replicas
from domain.errors import RecoveryInProgressError
from storage.context import StorageContext
from storage.integrity import check_integrity
from storage.migrations import SchemaMigrator
from storage.recovery import RecoveryManager, RecoveryState
from storage.replication import ReplicatedWriter

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
WARNING = "warning"
CORRUPTED = "corrupted"
UNRECOVERABLE = "unrecoverable"


@dataclass
class ReplicaHealth:
    name: str
    path: str
    exists: bool = False
    integrity: bool = False


@dataclass
class HealthReport:
    status: str = HEALTHY
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    primary_integrity: bool = False
    primary_size: int = 0
    recovery_state: str = RecoveryState.HEALTHY.value
    replicas: list[ReplicaHealth] = field(default_factory=list)
    replication: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class DatabaseHealth:
    """Read-mostly view of the store for operators, plus manual recovery and backup."""

    def __init__(
        self,
        context: StorageContext,
        writer: ReplicatedWriter,
        recovery: RecoveryManager,
        migrator: SchemaMigrator | None = None,
    ) -> None:
        self._context = context
        self._writer = writer
        self._recovery = recovery
        self._migrator = migrator

    def check_health(self) -> HealthReport:
        report = HealthReport(
            recovery_state=self._recovery.state.value,
            replication=self._writer.stats,
        )
        primary = self._context.primary
        report.primary_integrity = check_integrity(primary).ok
        report.primary_size = primary.size_bytes()

        if self._recovery.state is RecoveryState.UNRECOVERABLE:
            report.status = UNRECOVERABLE
            report.errors.append("Primary store is unrecoverable; writes are refused")
        elif not report.primary_integrity:
            report.status = CORRUPTED
            report.errors.append("Main database integrity check failed")

        for slot in self._context.replicas:
            replica = ReplicaHealth(name=slot.name, path=slot.path, exists=os.path.exists(slot.path))
            if slot.is_reachable():
                replica.integrity = check_integrity(slot.store).ok
            if replica.exists and not replica.integrity:
                report.errors.append(f"{slot.name} failed its integrity check")
            report.replicas.append(replica)

        if report.replicas and not any(replica.exists for replica in report.replicas):
            report.errors.append("No backups found")
        if report.status == HEALTHY and report.errors:
            report.status = WARNING
        return report

    def get_stats(self) -> dict[str, Any] | None:
        store = self._context.primary
        try:
            return {
                "users": int(store.scalar("SELECT COUNT(*) FROM users")),
                "expenses": int(store.scalar("SELECT COUNT(*) FROM expenses")),
                "incomes": int(store.scalar("SELECT COUNT(*) FROM incomes")),
                "categories": int(store.scalar("SELECT COUNT(*) FROM categories")),
                "timestamp": datetime.now().isoformat(),
            }
        except sqlite3.Error:
            logger.exception("Failed to get database stats")
            return None

    def attempt_recovery(self) -> dict[str, Any]:
        logger.info("Attempting recovery of the primary store")
        try:
            report = self._recovery.check_and_recover()
        except RecoveryInProgressError as exc:
            return {"success": False, "error": str(exc)}
        if report.success and report.source is not None and self._migrator is not None:
            self._migrator.ensure_schema()
        return report.as_dict()

    def trigger_backup(self) -> dict[str, Any]:
        results = sync_replicas(self._context)
        success = bool(results) and all(results.values())
        return {
            "success": success,
            "timestamp": datetime.now().isoformat(),
            "message": "Backup completed successfully" if success else "Backup failed",
            "replicas": results,
        }
