from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from config import StorageSettings
from domain.errors import StoreClosedError

from .sqlite_storage import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass
class ReplicaSlot:
    """A replica position with a fixed priority and file name.

    ``store`` is None when the replica could not be opened.
    """

    priority: int
    path: str
    store: SQLiteStore | None = None
    existed_at_open: bool = False

    @property
    def name(self) -> str:
        return f"replica{self.priority}"

    def is_reachable(self) -> bool:
        return self.store is not None and self.store.is_open and os.path.exists(self.path)


@dataclass
class StorageContext:
    """Owns the primary store handle and the replica handles for the process lifetime."""

    primary_path: str
    replica_paths: Sequence[str] = ()
    _primary: SQLiteStore | None = field(default=None, init=False, repr=False)
    _replicas: list[ReplicaSlot] = field(default_factory=list, init=False, repr=False)
    primary_existed_at_open: bool = field(default=False, init=False)
    writable: bool = field(default=True, init=False)

    def __post_init__(self) -> None:
        if len(self.replica_paths) > 2:
            raise ValueError("At most two replicas are supported")
        self.replica_paths = tuple(str(path) for path in self.replica_paths)
        self._replicas = [
            ReplicaSlot(priority=index, path=path)
            for index, path in enumerate(self.replica_paths, start=1)
        ]

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> StorageContext:
        return cls(primary_path=settings.primary_path, replica_paths=settings.replica_paths)

    def __enter__(self) -> StorageContext:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self, *, create_missing_replicas: bool = True) -> None:
        """Open the primary and every replica.

        With ``create_missing_replicas=False`` a replica file that does not
        exist is left unopened, so read-only diagnostics never create files.
        """
        Path(self.primary_path).parent.mkdir(parents=True, exist_ok=True)
        self.primary_existed_at_open = os.path.exists(self.primary_path)
        self._primary = SQLiteStore(self.primary_path, name="primary")
        for slot in self._replicas:
            if not create_missing_replicas and not os.path.exists(slot.path):
                slot.existed_at_open = False
                continue
            self._open_replica(slot)

    def _open_replica(self, slot: ReplicaSlot) -> None:
        Path(slot.path).parent.mkdir(parents=True, exist_ok=True)
        slot.existed_at_open = os.path.exists(slot.path)
        try:
            slot.store = SQLiteStore(slot.path, name=slot.name)
        except sqlite3.Error:
            logger.exception("Failed to open %s at %s", slot.name, slot.path)
            slot.store = None

    def close(self) -> None:
        if self._primary is not None:
            self._primary.close()
            self._primary = None
        for slot in self._replicas:
            if slot.store is not None:
                slot.store.close()
                slot.store = None

    @property
    def is_open(self) -> bool:
        return self._primary is not None and self._primary.is_open

    @property
    def primary(self) -> SQLiteStore:
        if self._primary is None:
            raise StoreClosedError("Storage context is not open")
        return self._primary

    @property
    def replicas(self) -> tuple[ReplicaSlot, ...]:
        return tuple(self._replicas)

    def replica(self, priority: int) -> ReplicaSlot:
        for slot in self._replicas:
            if slot.priority == priority:
                return slot
        raise ValueError(f"Unknown replica priority: {priority}")

    def reopen_primary(self) -> SQLiteStore:
        if self._primary is not None:
            self._primary.close()
        self._primary = SQLiteStore(self.primary_path, name="primary")
        return self._primary

    def reopen_replica(self, priority: int) -> ReplicaSlot:
        slot = self.replica(priority)
        if slot.store is not None:
            slot.store.close()
            slot.store = None
        self._open_replica(slot)
        return slot

    def mark_unwritable(self) -> None:
        self.writable = False
