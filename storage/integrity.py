from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime

from .base import Store
from .sqlite_storage import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrityVerdict:
    ok: bool
    store: str
    checked_at: datetime = field(default_factory=datetime.now)
    detail: str = ""

    def __bool__(self) -> bool:
        return self.ok


def check_integrity(store: Store) -> IntegrityVerdict:
    """Run ``PRAGMA integrity_check``; only a single ``ok`` row passes.

    Any failure while scanning counts as a failed verdict and is never raised.
    """
    name = getattr(store, "name", "store")
    try:
        rows = store.integrity_check()
    except Exception as exc:
        logger.warning("Integrity check on %s raised: %s", name, exc)
        return IntegrityVerdict(ok=False, store=name, detail=f"{type(exc).__name__}: {exc}")
    if rows == ["ok"]:
        return IntegrityVerdict(ok=True, store=name)
    detail = "; ".join(rows[:5]) if rows else "no result rows"
    logger.warning("Integrity check on %s failed: %s", name, detail)
    return IntegrityVerdict(ok=False, store=name, detail=detail)


def verify_integrity(store: Store) -> bool:
    return check_integrity(store).ok


def check_file(path: str, *, name: str = "candidate") -> IntegrityVerdict:
    """Open a separate handle on ``path`` and check it; a missing file fails."""
    if not os.path.exists(path):
        return IntegrityVerdict(ok=False, store=name, detail=f"file not found: {path}")
    try:
        candidate = SQLiteStore(path, name=name)
    except Exception as exc:
        return IntegrityVerdict(ok=False, store=name, detail=f"{type(exc).__name__}: {exc}")
    try:
        return check_integrity(candidate)
    finally:
        candidate.close()
