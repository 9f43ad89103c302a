from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.health import DatabaseHealth
from backup import sync_replicas
from config import StorageSettings, load_settings
from domain.errors import UnrecoverableStoreError
from infrastructure.holdings import FixedDepositRepository, InvestmentRepository, PFEntryRepository
from infrastructure.repositories import (
    AccountRepository,
    CategoryRepository,
    IncomeCategoryRepository,
    UserRepository,
)
from infrastructure.transactions import ExpenseRepository, IncomeRepository
from storage.context import StorageContext
from storage.migrations import MigrationReport, SchemaMigrator
from storage.recovery import RecoveryManager, RecoveryReport
from storage.replication import ReplicatedWriter

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a running process needs, wired to one open StorageContext."""

    settings: StorageSettings
    context: StorageContext
    writer: ReplicatedWriter
    recovery: RecoveryManager
    migrator: SchemaMigrator
    health: DatabaseHealth
    migration: MigrationReport
    startup_check: RecoveryReport
    replica_sync: dict[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.users = UserRepository(self.context, self.writer)
        self.categories = CategoryRepository(self.context, self.writer)
        self.income_categories = IncomeCategoryRepository(self.context, self.writer)
        self.accounts = AccountRepository(self.context, self.writer)
        self.expenses = ExpenseRepository(self.context, self.writer)
        self.incomes = IncomeRepository(self.context, self.writer)
        self.investments = InvestmentRepository(self.context, self.writer)
        self.fixed_deposits = FixedDepositRepository(self.context, self.writer)
        self.pf_entries = PFEntryRepository(self.context, self.writer)

    @property
    def degraded(self) -> bool:
        return not self.context.writable

    def close(self) -> None:
        self.context.close()


def bootstrap_storage(settings: StorageSettings | None = None) -> Runtime:
    """Open the stores, migrate, verify the primary and recover it before serving."""
    settings = settings or load_settings()
    context = StorageContext.from_settings(settings)
    context.open()
    print(f"[bootstrap] Primary store: {settings.primary_path}")
    print(f"[bootstrap] Replicas configured: {len(settings.replica_paths)}")

    writer = ReplicatedWriter(context)
    migrator = SchemaMigrator(context, writer)
    recovery = RecoveryManager(context)

    migration = migrator.ensure_schema(seed=False)
    if migration.applied:
        print(f"[bootstrap] Schema patches applied: {len(migration.applied)}")

    startup_check = recovery.check_and_recover()
    if not startup_check.success:
        if settings.halt_on_unrecoverable:
            context.close()
            raise UnrecoverableStoreError(
                f"Primary store is corrupted and no replica could be restored: {settings.primary_path}"
            )
        print("[bootstrap] Primary store unrecoverable, continuing in read-only mode")
    elif startup_check.source is not None:
        print(f"[bootstrap] Primary store restored from {startup_check.source}")
        migration = migrator.ensure_schema(seed=False)
    else:
        print("[bootstrap] Integrity check passed")

    replica_sync: dict[str, bool] = {}
    if startup_check.success and settings.sync_replicas_on_startup and context.replicas:
        replica_sync = sync_replicas(context)
        failed = [name for name, ok in replica_sync.items() if not ok]
        if failed:
            logger.warning("Startup replica sync failed for %s", ", ".join(failed))

    if startup_check.success:
        migration = migrator.seed_defaults(migration)

    return Runtime(
        settings=settings,
        context=context,
        writer=writer,
        recovery=recovery,
        migrator=migrator,
        health=DatabaseHealth(context, writer, recovery, migrator),
        migration=migration,
        startup_check=startup_check,
        replica_sync=replica_sync,
    )
