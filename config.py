import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATA_DIR = Path(os.environ.get("FINTRACK_DATA_DIR", str(PROJECT_ROOT)))
SQLITE_PATH = str(DATA_DIR / "expenses.db")
REPLICA_DIR = str(DATA_DIR / "backups")
REPLICA_FILENAMES = ("expenses_backup1.db", "expenses_backup2.db")
REPLICA_COUNT = int(os.environ.get("FINTRACK_REPLICA_COUNT", "2"))
SYNC_REPLICAS_ON_STARTUP = _env_flag("FINTRACK_SYNC_ON_STARTUP", True)
HALT_ON_UNRECOVERABLE = _env_flag("FINTRACK_HALT_ON_UNRECOVERABLE", True)
LOG_LEVEL = os.environ.get("FINTRACK_LOG_LEVEL", "INFO").upper()

USE_ONLINE_RATES = _env_flag("FINTRACK_USE_ONLINE_RATES", False)
EXCHANGE_RATE_URL = "https://open.er-api.com/v6/latest/USD"
RATES_CACHE_PATH = str(DATA_DIR / "exchange_rates.json")


@dataclass(frozen=True)
class StorageSettings:
    primary_path: str
    replica_dir: str
    replica_count: int = 2
    sync_replicas_on_startup: bool = True
    halt_on_unrecoverable: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.replica_count <= len(REPLICA_FILENAMES):
            raise ValueError(
                f"replica_count must be between 0 and {len(REPLICA_FILENAMES)}, "
                f"got {self.replica_count}"
            )

    @property
    def replica_paths(self) -> tuple[str, ...]:
        names = REPLICA_FILENAMES[: self.replica_count]
        return tuple(str(Path(self.replica_dir) / name) for name in names)

    @classmethod
    def in_directory(cls, directory: str | Path, **overrides) -> "StorageSettings":
        base = Path(directory)
        return cls(
            primary_path=str(base / "expenses.db"),
            replica_dir=str(base / "backups"),
            **overrides,
        )


def load_settings() -> StorageSettings:
    return StorageSettings(
        primary_path=SQLITE_PATH,
        replica_dir=REPLICA_DIR,
        replica_count=REPLICA_COUNT,
        sync_replicas_on_startup=SYNC_REPLICAS_ON_STARTUP,
        halt_on_unrecoverable=HALT_ON_UNRECOVERABLE,
    )
