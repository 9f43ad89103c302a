from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from prettytable import PrettyTable

from app.health import DatabaseHealth
from backup import create_snapshot
from bootstrap import Runtime, bootstrap_storage
from config import LOG_LEVEL, StorageSettings, load_settings
from domain.errors import RecoveryInProgressError, UnrecoverableStoreError
from storage.context import StorageContext
from storage.migrations import SchemaMigrator
from storage.recovery import RecoveryManager
from storage.replication import ReplicatedWriter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Maintenance commands for the replicated finance tracker store."
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding expenses.db and backups/ (default: FINTRACK_DATA_DIR or <project>)",
    )
    parser.add_argument(
        "--replicas",
        type=int,
        choices=(0, 1, 2),
        default=None,
        help="Number of replicas to use (default: FINTRACK_REPLICA_COUNT or 2)",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("check", help="Open the store, migrate and run the startup integrity check")
    commands.add_parser("health", help="Show primary and replica health without repairing anything")
    commands.add_parser("stats", help="Show row counts")
    commands.add_parser("backup", help="Resync every replica from the primary")
    commands.add_parser("snapshot", help="Write a timestamped standalone copy of the primary")
    restore = commands.add_parser("restore", help="Copy a verified replica over the primary")
    restore.add_argument("--replica", type=int, choices=(1, 2), required=True)
    commands.add_parser("migrate", help="Apply schema patches and default rows")
    return parser.parse_args(argv)


def _settings(args: argparse.Namespace) -> StorageSettings:
    settings = load_settings()
    if args.data_dir:
        settings = StorageSettings.in_directory(
            args.data_dir,
            replica_count=settings.replica_count,
            sync_replicas_on_startup=settings.sync_replicas_on_startup,
            halt_on_unrecoverable=settings.halt_on_unrecoverable,
        )
    if args.replicas is not None:
        settings = replace(settings, replica_count=args.replicas)
    return settings


def run_check(settings: StorageSettings) -> int:
    try:
        runtime = bootstrap_storage(settings)
    except UnrecoverableStoreError as exc:
        print(f"[error] {exc}")
        return 2
    try:
        report = runtime.startup_check
        for attempt in report.attempts:
            status = "ok" if attempt.copied else "warn"
            print(f"[{status}] {attempt.replica}: {attempt.detail or 'restored'}")
        if not report.success:
            print("[error] Primary store is unrecoverable, writes are refused")
            return 1
        print(f"[ok] Startup check passed (state={runtime.recovery.state.value})")
        for name, synced in runtime.replica_sync.items():
            print(f"[{'ok' if synced else 'warn'}] {name} sync {'complete' if synced else 'failed'}")
        return 0
    finally:
        runtime.close()


def _open_runtime(settings: StorageSettings) -> Runtime:
    return bootstrap_storage(replace(settings, halt_on_unrecoverable=False))


def _open_for_inspection(settings: StorageSettings) -> StorageContext | None:
    """Open the stores as they are: no migration, no recovery, no resync."""
    if not Path(settings.primary_path).exists():
        print(f"[error] Primary store not found: {settings.primary_path}")
        return None
    context = StorageContext.from_settings(settings)
    context.open(create_missing_replicas=False)
    return context


def _inspector(context: StorageContext) -> DatabaseHealth:
    return DatabaseHealth(context, ReplicatedWriter(context), RecoveryManager(context))


def run_health(settings: StorageSettings) -> int:
    context = _open_for_inspection(settings)
    if context is None:
        return 1
    try:
        report = _inspector(context).check_health()
        table = PrettyTable()
        table.field_names = ["Store", "Path", "Exists", "Integrity"]
        table.add_row(["primary", settings.primary_path, "yes", "ok" if report.primary_integrity else "FAILED"])
        for replica in report.replicas:
            table.add_row(
                [
                    replica.name,
                    replica.path,
                    "yes" if replica.exists else "no",
                    "ok" if replica.integrity else "FAILED",
                ]
            )
        print(table)
        print(f"Status: {report.status} (recovery state: {report.recovery_state})")
        print(f"Primary size: {report.primary_size} bytes")
        for error in report.errors:
            print(f"[warn] {error}")
        return 0 if report.status in ("healthy", "warning") else 1
    finally:
        context.close()


def run_stats(settings: StorageSettings) -> int:
    context = _open_for_inspection(settings)
    if context is None:
        return 1
    try:
        stats = _inspector(context).get_stats()
        if stats is None:
            print("[error] Could not read statistics")
            return 1
        table = PrettyTable()
        table.field_names = ["Table", "Rows"]
        for name in ("users", "expenses", "incomes", "categories"):
            table.add_row([name, stats[name]])
        print(table)
        return 0
    finally:
        context.close()


def run_backup(settings: StorageSettings) -> int:
    runtime = _open_runtime(settings)
    try:
        result = runtime.health.trigger_backup()
        for name, synced in result["replicas"].items():
            print(f"[{'ok' if synced else 'error'}] {name}")
        print(f"[{'ok' if result['success'] else 'error'}] {result['message']}")
        return 0 if result["success"] else 1
    finally:
        runtime.close()


def run_snapshot(settings: StorageSettings) -> int:
    path = create_snapshot(settings.primary_path)
    if path is None:
        print(f"[error] Primary store not found: {settings.primary_path}")
        return 1
    print(f"[ok] Snapshot written: {path}")
    return 0


def run_restore(settings: StorageSettings, priority: int) -> int:
    if priority > len(settings.replica_paths):
        print(f"[error] replica{priority} is not configured")
        return 1
    with StorageContext.from_settings(settings) as context:
        recovery = RecoveryManager(context)
        try:
            restored = recovery.restore_from_replica(priority)
        except RecoveryInProgressError as exc:
            print(f"[error] {exc}")
            return 1
        if not restored:
            detail = "replica missing, unreadable or corrupted"
            print(f"[error] Restore from replica{priority} failed: {detail}")
            return 1
        SchemaMigrator(context, ReplicatedWriter(context)).ensure_schema()
    print(f"[ok] Primary restored from replica{priority}")
    return 0


def run_migrate(settings: StorageSettings) -> int:
    with StorageContext.from_settings(settings) as context:
        report = SchemaMigrator(context, ReplicatedWriter(context)).ensure_schema()
    for step in report.applied:
        print(f"[ok] {step}")
    for step in report.seeded:
        print(f"[ok] seeded {step}")
    for step in report.failed:
        print(f"[error] {step}")
    if report.ok:
        print("[ok] Schema is up to date")
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = _settings(args)
    Path(settings.primary_path).parent.mkdir(parents=True, exist_ok=True)

    if args.command == "check":
        return run_check(settings)
    if args.command == "health":
        return run_health(settings)
    if args.command == "stats":
        return run_stats(settings)
    if args.command == "backup":
        return run_backup(settings)
    if args.command == "snapshot":
        return run_snapshot(settings)
    if args.command == "restore":
        return run_restore(settings, args.replica)
    if args.command == "migrate":
        return run_migrate(settings)
    return 2


if __name__ == "__main__":
    sys.exit(main())
