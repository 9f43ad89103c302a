from .base import Store
from .context import ReplicaSlot, StorageContext
from .mutations import Delete, Insert, Lookup, Mutation, Update, Upsert
from .replication import ReplicatedWriter, WriteResult, WriteStatus
from .sqlite_storage import SQLiteStore

__all__ = [
    "Store",
    "SQLiteStore",
    "StorageContext",
    "ReplicaSlot",
    "Mutation",
    "Insert",
    "Upsert",
    "Update",
    "Delete",
    "Lookup",
    "ReplicatedWriter",
    "WriteResult",
    "WriteStatus",
]
