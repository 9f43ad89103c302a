import logging
import os
import sqlite3

import pytest

from config import StorageSettings
from domain.errors import StoreUnavailableError
from storage.context import StorageContext
from storage.mutations import Delete, Insert, Mutation
from storage.replication import BACKUP_WRITE_FAILED, ReplicatedWriter, WriteStatus


def _category(name="Food", category_id=1):
    return Insert("categories", {"id": category_id, "name": name, "icon": "🍽️", "hexColor": "#FF6B6B"})


def _expense(amount=42.50, user_id=7, category_id=1, timestamp=1700000000000):
    return Insert(
        "expenses",
        {
            "amount": amount,
            "date": "2024-03-15",
            "categoryId": category_id,
            "userId": user_id,
            "note": "",
            "whereSpent": "",
            "timestamp": timestamp,
        },
    )


def _count(store, table):
    return store.scalar(f"SELECT COUNT(*) FROM {table}")


def test_write_reaches_primary_and_both_replicas(context, writer, make_user):
    make_user(7)
    result = writer.execute(Mutation.of(_category(), _expense()))

    assert result.status is WriteStatus.SUCCESS
    assert result.fully_replicated
    assert [outcome.replica for outcome in result.replicas] == ["replica1", "replica2"]
    for store in (context.primary, context.replica(1).store, context.replica(2).store):
        assert store.scalar("SELECT amount FROM expenses WHERE userId = 7") == 42.50


def test_primary_failure_leaves_every_store_untouched(context, writer, make_user):
    make_user(7)
    # Second operation violates the category foreign key.
    mutation = Mutation.of(_category(), _expense(category_id=999))

    result = writer.execute(mutation)

    assert result.status is WriteStatus.PRIMARY_FAILURE
    assert isinstance(result.error, sqlite3.IntegrityError)
    assert result.replicas == ()
    for store in (context.primary, context.replica(1).store, context.replica(2).store):
        assert _count(store, "categories") == 0
        assert _count(store, "expenses") == 0


def test_with_replicated_write_reraises_primary_error_unchanged(writer, make_user):
    make_user(7)
    with pytest.raises(sqlite3.IntegrityError):
        writer.with_replicated_write(Mutation.of(_expense(category_id=999)))


def test_replica_failure_does_not_affect_primary_or_other_replica(context, writer, make_user):
    make_user(7)
    context.replica(1).store.execute("DROP TABLE expenses")

    result = writer.execute(Mutation.of(_category(), _expense()))

    assert result.ok
    assert result.status is WriteStatus.PARTIAL_REPLICA_FAILURE
    assert not result.backup_failed
    failed = result.failed_replicas()
    assert [outcome.replica for outcome in failed] == ["replica1"]
    assert "no such table" in failed[0].error
    assert _count(context.primary, "expenses") == 1
    assert _count(context.replica(2).store, "expenses") == 1
    # The failed replica rolled back its own transaction.
    assert _count(context.replica(1).store, "categories") == 0


def test_deleted_replica_file_is_reported_and_not_touched(context, writer, make_user):
    make_user(7)
    writer.with_replicated_write(Mutation.of(_category(), _expense()))
    os.remove(context.replica(2).path)

    result = writer.execute(Mutation.of(_expense(amount=10.0, timestamp=1700000000001)))

    assert result.status is WriteStatus.PARTIAL_REPLICA_FAILURE
    outcomes = {outcome.replica: outcome for outcome in result.replicas}
    assert outcomes["replica1"].success
    assert not outcomes["replica2"].success
    assert "unreachable" in outcomes["replica2"].error
    assert not os.path.exists(context.replica(2).path)
    assert _count(context.primary, "expenses") == 2
    assert _count(context.replica(1).store, "expenses") == 2


def test_all_replicas_failing_sets_backup_warning(context, writer, make_user, caplog):
    make_user(7)
    for slot in context.replicas:
        slot.store.execute("DROP TABLE expenses")

    with caplog.at_level(logging.ERROR, logger="storage.replication"):
        result = writer.execute(Mutation.of(_category(), _expense()))

    assert result.ok
    assert result.backup_failed
    assert result.warning == BACKUP_WRITE_FAILED
    assert _count(context.primary, "expenses") == 1
    assert any(BACKUP_WRITE_FAILED in record.getMessage() for record in caplog.records)
    assert writer.stats["backup_write_failures"] == 1
    assert writer.stats["replica_failures"] == {"replica1": 1, "replica2": 1}


def test_zero_replicas_is_a_valid_mode(tmp_path):
    settings = StorageSettings.in_directory(tmp_path, replica_count=0)
    with StorageContext.from_settings(settings) as context:
        context.primary.initialize_schema()
        writer = ReplicatedWriter(context)
        result = writer.execute(Mutation.of(_category()))
        assert result.status is WriteStatus.SUCCESS
        assert result.replicas == ()
        assert not result.backup_failed


def test_unwritable_context_refuses_writes(context, writer):
    context.mark_unwritable()

    result = writer.execute(Mutation.of(_category()))

    assert result.status is WriteStatus.PRIMARY_FAILURE
    assert isinstance(result.error, StoreUnavailableError)
    assert _count(context.primary, "categories") == 0
    with pytest.raises(StoreUnavailableError):
        writer.with_replicated_write(Mutation.of(_category()))


def test_delete_returns_primary_rowcount(context, writer, make_user):
    make_user(7)
    writer.with_replicated_write(Mutation.of(_category(), _expense()))
    expense_id = context.primary.scalar("SELECT id FROM expenses")

    applied = writer.with_replicated_write(Mutation.of(Delete("expenses", {"id": expense_id, "userId": 7})))

    assert applied.rowcount == 1
    assert applied.store == "primary"
    for slot in context.replicas:
        assert _count(slot.store, "expenses") == 0
