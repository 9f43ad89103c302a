from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from domain.errors import DomainError

from .context import StorageContext
from .mutations import Insert, Lookup, Mutation, Update, quote_identifier
from .replication import ReplicatedWriter
from .sqlite_storage import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnPatch:
    table: str
    column: str
    definition: str

    def statement(self) -> str:
        return (
            f"ALTER TABLE {quote_identifier(self.table)} "
            f"ADD COLUMN {quote_identifier(self.column)} {self.definition}"
        )


COLUMN_PATCHES: tuple[ColumnPatch, ...] = (
    ColumnPatch("expenses", "whereSpent", "TEXT DEFAULT ''"),
    ColumnPatch("expenses", "userId", "INTEGER NOT NULL DEFAULT 1"),
    ColumnPatch("expenses", "accountId", "INTEGER"),
    ColumnPatch("incomes", "accountId", "INTEGER"),
    ColumnPatch("users", "pinHash", "TEXT"),
    ColumnPatch("users", "pinSalt", "TEXT"),
)

DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Food & Dining", "🍽️", "#FF6B6B"),
    ("Transportation", "🚗", "#4ECDC4"),
    ("Shopping", "🛍️", "#FFE66D"),
    ("Entertainment", "🎬", "#A8E6CF"),
    ("Bills & Utilities", "💡", "#C7CEEA"),
    ("Health", "⚕️", "#FF8B94"),
    ("Travel", "✈️", "#95E1D3"),
    ("Other", "📌", "#D4AF37"),
)

DEFAULT_INCOME_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Salary", "💼", "#4CAF50"),
    ("Freelance", "💻", "#8BC34A"),
    ("Investment", "📈", "#00BCD4"),
    ("Gift", "🎁", "#E91E63"),
    ("Refund", "↩️", "#9C27B0"),
    ("Other Income", "💰", "#FF9800"),
)

DEFAULT_ACCOUNT = {
    "name": "Cash",
    "type": "Cash",
    "icon": "💵",
    "hexColor": "#4CAF50",
}


@dataclass
class MigrationReport:
    applied: list[str] = field(default_factory=list)
    seeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class SchemaMigrator:
    """Brings the primary and the replicas up to the current table layout.

    Tables are created on the primary only. Replicas receive column patches
    for tables they already hold. Default rows are written as ordinary
    mutations so they reach the replicas too. Every step is best-effort.
    """

    def __init__(
        self,
        context: StorageContext,
        writer: ReplicatedWriter,
        schema_path: str | None = None,
        patches: tuple[ColumnPatch, ...] = COLUMN_PATCHES,
    ) -> None:
        self._context = context
        self._writer = writer
        self._schema_path = schema_path
        self._patches = patches

    def ensure_schema(self, *, seed: bool = True) -> MigrationReport:
        """Create tables and patch columns, then seed defaults unless ``seed`` is False.

        Startup passes ``seed=False`` and calls :meth:`seed_defaults` once the
        replicas have been resynced, so seed rows reach replicas that already
        hold the tables.
        """
        report = MigrationReport()
        primary = self._context.primary
        try:
            primary.initialize_schema(self._schema_path)
        except sqlite3.Error:
            logger.exception("Failed to create tables on primary store")
            report.failed.append("primary: create tables")

        self._patch_columns(primary, report, only_existing_tables=False)
        for slot in self._context.replicas:
            if slot.is_reachable():
                self._patch_columns(slot.store, report, only_existing_tables=True)

        if seed:
            return self.seed_defaults(report)
        if report.failed:
            logger.warning("Schema migration finished with failures: %s", report.failed)
        return report

    def seed_defaults(self, report: MigrationReport | None = None) -> MigrationReport:
        """Insert default categories and link accounts; idempotent."""
        report = report if report is not None else MigrationReport()
        self._seed_categories("categories", DEFAULT_CATEGORIES, report)
        self._seed_categories("income_categories", DEFAULT_INCOME_CATEGORIES, report)
        self._link_default_accounts(report)

        if report.failed:
            logger.warning("Schema migration finished with failures: %s", report.failed)
        return report

    def _patch_columns(
        self, store: SQLiteStore, report: MigrationReport, *, only_existing_tables: bool
    ) -> None:
        for patch in self._patches:
            step = f"{store.name}: {patch.table}.{patch.column}"
            try:
                if not store.table_exists(patch.table):
                    if not only_existing_tables:
                        report.failed.append(f"{step} (table missing)")
                    continue
                if patch.column in store.columns(patch.table):
                    continue
                logger.info("Migrating %s: adding %s.%s", store.name, patch.table, patch.column)
                store.execute(patch.statement())
                report.applied.append(step)
            except sqlite3.Error:
                logger.exception("Migration step failed: %s", step)
                report.failed.append(step)

    def _seed_categories(
        self, table: str, defaults: tuple[tuple[str, str, str], ...], report: MigrationReport
    ) -> None:
        try:
            count = int(self._context.primary.scalar(f"SELECT COUNT(*) FROM {table}") or 0)
        except sqlite3.Error:
            logger.exception("Could not count rows in %s", table)
            report.failed.append(f"seed {table}")
            return
        if count > 0:
            return
        mutation = Mutation.of(
            *(
                Insert(table, {"name": name, "icon": icon, "hexColor": color}, on_conflict="IGNORE")
                for name, icon, color in defaults
            ),
            label=f"seed {table}",
        )
        result = self._writer.execute(mutation)
        if not result.ok:
            logger.error("Seeding %s failed: %s", table, result.error)
            report.failed.append(f"seed {table}")
            return
        logger.info("Seeded %s default rows into %s", len(defaults), table)
        report.seeded.append(table)

    def _link_default_accounts(self, report: MigrationReport) -> None:
        try:
            rows = self._context.primary.fetch_all(
                """
                SELECT u.id AS userId
                FROM users AS u
                WHERE NOT EXISTS (SELECT 1 FROM accounts AS a WHERE a.userId = u.id)
                  AND (
                    EXISTS (SELECT 1 FROM expenses AS e
                            WHERE e.userId = u.id AND e.accountId IS NULL)
                    OR EXISTS (SELECT 1 FROM incomes AS i
                               WHERE i.userId = u.id AND i.accountId IS NULL)
                  )
                ORDER BY u.id
                """
            )
        except sqlite3.Error:
            logger.exception("Could not look up users without accounts")
            report.failed.append("link default accounts")
            return

        for row in rows:
            user_id = int(row["userId"])
            account_id = Lookup(
                "SELECT id FROM accounts WHERE userId = ? AND name = ?",
                (user_id, DEFAULT_ACCOUNT["name"]),
            )
            mutation = Mutation.of(
                Insert(
                    "accounts",
                    {**DEFAULT_ACCOUNT, "userId": user_id, "isDefault": 1},
                    on_conflict="IGNORE",
                ),
                Update("expenses", {"accountId": account_id}, {"userId": user_id, "accountId": None}),
                Update("incomes", {"accountId": account_id}, {"userId": user_id, "accountId": None}),
                label=f"default account for user {user_id}",
            )
            try:
                applied = self._writer.with_replicated_write(mutation)
            except (sqlite3.Error, DomainError):
                logger.exception("Failed to create default account for user %s", user_id)
                report.failed.append(f"default account user {user_id}")
                continue
            logger.info(
                "Created default account for user %s: linked %s expenses and %s incomes",
                user_id,
                applied.rowcount_of(1),
                applied.rowcount_of(2),
            )
            report.seeded.append(f"accounts user {user_id}")
