import os

import pytest

from config import StorageSettings
from storage.context import StorageContext
from storage.mutations import Insert, Mutation
from storage.replication import ReplicatedWriter


def clobber_header(path) -> None:
    """Overwrite the SQLite magic header so the file no longer opens as a database."""
    with open(path, "r+b") as f:
        f.write(b"this is not a sqlite database!!!")


def truncate_half(path) -> None:
    size = os.path.getsize(path)
    with open(path, "r+b") as f:
        f.truncate(size // 2)


@pytest.fixture
def settings(tmp_path):
    return StorageSettings.in_directory(tmp_path)


@pytest.fixture
def context(settings):
    ctx = StorageContext.from_settings(settings)
    ctx.open()
    ctx.primary.initialize_schema()
    for slot in ctx.replicas:
        slot.store.initialize_schema()
    yield ctx
    ctx.close()


@pytest.fixture
def writer(context):
    return ReplicatedWriter(context)


@pytest.fixture
def make_user(writer):
    def _make_user(user_id: int = 7, username: str | None = None) -> int:
        writer.with_replicated_write(
            Mutation.of(
                Insert(
                    "users",
                    {
                        "id": user_id,
                        "username": username or f"user{user_id}",
                        "passwordHash": "hash",
                        "salt": "salt",
                        "createdAt": "2024-01-01T00:00:00+00:00",
                    },
                )
            )
        )
        return user_id

    return _make_user


@pytest.fixture
def corrupt():
    return clobber_header


@pytest.fixture
def truncate():
    return truncate_half
