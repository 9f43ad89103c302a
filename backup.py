from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime
from pathlib import Path

from storage.context import ReplicaSlot, StorageContext
from storage.integrity import check_integrity
from storage.sqlite_storage import SQLiteStore, remove_side_files

logger = logging.getLogger(__name__)


def sync_replicas(context: StorageContext) -> dict[str, bool]:
    """Overwrite every replica with a full copy of the primary.

    Uses the SQLite online backup API, so the primary stays open. A replica
    file that cannot be written or fails its check after the copy is deleted
    and rebuilt from scratch once. Only then is it reported as False.
    """
    results: dict[str, bool] = {}
    if not context.writable:
        logger.error("Replica sync skipped: primary store is unrecoverable")
        return {slot.name: False for slot in context.replicas}

    primary = context.primary
    for slot in context.replicas:
        if not slot.is_reachable():
            slot = context.reopen_replica(slot.priority)
        synced = slot.store is not None and _copy_primary(primary, slot)
        if not synced:
            logger.warning("Rebuilding %s from an empty file", slot.name)
            slot = _rebuild_replica(context, slot)
            synced = slot.store is not None and _copy_primary(primary, slot)
        results[slot.name] = synced
        if synced:
            print(f"[backup] Replica synced: {slot.path}")
        else:
            logger.error("Replica sync failed for %s", slot.name)
    return results


def _copy_primary(primary: SQLiteStore, slot: ReplicaSlot) -> bool:
    try:
        primary.backup_to(slot.store)
    except (sqlite3.Error, OSError):
        logger.exception("Backup into %s failed", slot.name)
        return False
    verdict = check_integrity(slot.store)
    if not verdict.ok:
        logger.error("%s failed its check after sync: %s", slot.name, verdict.detail)
    return verdict.ok


def _rebuild_replica(context: StorageContext, slot: ReplicaSlot) -> ReplicaSlot:
    if slot.store is not None:
        slot.store.close()
        slot.store = None
    try:
        if os.path.exists(slot.path):
            os.remove(slot.path)
        remove_side_files(slot.path)
    except OSError:
        logger.exception("Could not remove damaged replica file %s", slot.path)
    return context.reopen_replica(slot.priority)


def create_snapshot(db_path: str) -> str | None:
    """Write a timestamped standalone copy of ``db_path`` into ``backups/``."""
    source = Path(db_path)
    if not source.exists():
        return None
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_dir = source.parent / "backups"
    backup_dir.mkdir(exist_ok=True)
    snapshot_path = backup_dir / f"{source.stem}_snapshot_{stamp}{source.suffix}"

    origin = SQLiteStore(str(source), name="snapshot-source")
    target = SQLiteStore(str(snapshot_path), name="snapshot")
    try:
        origin.backup_to(target)
        target.checkpoint()
    finally:
        target.close()
        origin.close()
    print(f"[backup] SQLite snapshot created: {snapshot_path}")
    return str(snapshot_path)
