import os

import pytest

from bootstrap import bootstrap_storage
from config import StorageSettings
from main import main
from storage.integrity import check_file
from storage.migrations import DEFAULT_CATEGORIES
from storage.sqlite_storage import SQLiteStore, remove_side_files


@pytest.fixture
def runtime(settings):
    runtime = bootstrap_storage(settings)
    yield runtime
    runtime.close()


def _cli(tmp_path, *args):
    return main(["--data-dir", str(tmp_path), *args])


class TestDatabaseHealth:
    def test_healthy_store(self, runtime):
        report = runtime.health.check_health()
        assert report.status == "healthy"
        assert report.primary_integrity
        assert report.primary_size > 0
        assert report.recovery_state == "healthy"
        assert [replica.name for replica in report.replicas] == ["replica1", "replica2"]
        assert all(replica.exists and replica.integrity for replica in report.replicas)
        assert report.errors == []
        assert report.as_dict()["status"] == "healthy"

    def test_missing_replicas_are_a_warning(self, runtime):
        for slot in runtime.context.replicas:
            slot.store.close()
            os.remove(slot.path)
            remove_side_files(slot.path)

        report = runtime.health.check_health()

        assert report.status == "warning"
        assert "No backups found" in report.errors

    def test_corrupted_replica_is_a_warning(self, runtime, corrupt):
        slot = runtime.context.replica(1)
        slot.store.close()
        corrupt(slot.path)
        runtime.context.reopen_replica(1)

        report = runtime.health.check_health()

        assert report.status == "warning"
        assert "replica1 failed its integrity check" in report.errors

    def test_unrecoverable_state_is_reported(self, tmp_path, corrupt):
        settings = StorageSettings.in_directory(tmp_path, halt_on_unrecoverable=False)
        bootstrap_storage(settings).close()
        for path in (settings.primary_path, *settings.replica_paths):
            corrupt(path)

        runtime = bootstrap_storage(settings)
        try:
            report = runtime.health.check_health()
        finally:
            runtime.close()

        assert report.status == "unrecoverable"
        assert report.recovery_state == "unrecoverable"
        assert not report.primary_integrity

    def test_without_replicas_is_healthy(self, tmp_path):
        runtime = bootstrap_storage(StorageSettings.in_directory(tmp_path, replica_count=0))
        try:
            report = runtime.health.check_health()
        finally:
            runtime.close()
        assert report.status == "healthy"
        assert report.replicas == []

    def test_stats(self, runtime):
        runtime.users.create(username="ann", password_hash="hash", salt="salt")

        stats = runtime.health.get_stats()

        assert stats["users"] == 1
        assert stats["expenses"] == 0
        assert stats["categories"] == len(DEFAULT_CATEGORIES)
        assert "timestamp" in stats

    def test_trigger_backup(self, runtime):
        runtime.context.replica(2).store.execute("DELETE FROM categories")

        result = runtime.health.trigger_backup()

        assert result["success"] is True
        assert result["message"] == "Backup completed successfully"
        assert result["replicas"] == {"replica1": True, "replica2": True}
        count = runtime.context.replica(2).store.scalar("SELECT COUNT(*) FROM categories")
        assert count == len(DEFAULT_CATEGORIES)

    def test_attempt_recovery_on_healthy_store(self, runtime):
        result = runtime.health.attempt_recovery()
        assert result["success"] is True
        assert "source" not in result

    def test_attempt_recovery_while_check_running(self, runtime):
        runtime.recovery._check_lock.acquire()
        try:
            result = runtime.health.attempt_recovery()
        finally:
            runtime.recovery._check_lock.release()
        assert result["success"] is False
        assert "already running" in result["error"]


class TestCommandLine:
    def test_check_on_fresh_directory(self, tmp_path, capsys):
        assert _cli(tmp_path, "check") == 0
        out = capsys.readouterr().out
        assert "[ok] Startup check passed" in out
        assert (tmp_path / "expenses.db").exists()
        assert (tmp_path / "backups" / "expenses_backup1.db").exists()

    def test_check_restores_corrupted_primary(self, tmp_path, corrupt, capsys):
        assert _cli(tmp_path, "check") == 0
        corrupt(tmp_path / "expenses.db")

        assert _cli(tmp_path, "check") == 0
        assert "[ok] replica1: restored" in capsys.readouterr().out

    def test_check_reports_unrecoverable_store(self, tmp_path, corrupt, capsys):
        assert _cli(tmp_path, "check") == 0
        for path in (
            tmp_path / "expenses.db",
            tmp_path / "backups" / "expenses_backup1.db",
            tmp_path / "backups" / "expenses_backup2.db",
        ):
            corrupt(path)

        code = _cli(tmp_path, "check")

        assert code == 2
        assert "[error]" in capsys.readouterr().out

    def test_health_and_stats(self, tmp_path, capsys):
        assert _cli(tmp_path, "check") == 0
        capsys.readouterr()

        assert _cli(tmp_path, "health") == 0
        out = capsys.readouterr().out
        assert "Status: healthy" in out
        assert "replica2" in out

        assert _cli(tmp_path, "stats") == 0
        assert "categories" in capsys.readouterr().out

    def test_health_reports_corruption_without_repairing(self, tmp_path, corrupt, capsys):
        assert _cli(tmp_path, "check") == 0
        corrupt(tmp_path / "expenses.db")
        capsys.readouterr()

        assert _cli(tmp_path, "health") == 1
        out = capsys.readouterr().out
        assert "Status: corrupted" in out
        assert "[bootstrap]" not in out
        assert not check_file(str(tmp_path / "expenses.db")).ok

    def test_health_and_stats_need_a_primary(self, tmp_path, capsys):
        assert _cli(tmp_path, "health") == 1
        assert "[error] Primary store not found" in capsys.readouterr().out
        assert _cli(tmp_path, "stats") == 1
        assert "[error] Primary store not found" in capsys.readouterr().out
        assert not (tmp_path / "expenses.db").exists()

    def test_health_does_not_create_missing_replicas(self, tmp_path, capsys):
        assert _cli(tmp_path, "check") == 0
        replica2 = tmp_path / "backups" / "expenses_backup2.db"
        os.remove(replica2)
        remove_side_files(str(replica2))
        capsys.readouterr()

        assert _cli(tmp_path, "health") == 0
        assert "replica2" in capsys.readouterr().out
        assert not replica2.exists()

    def test_backup_and_snapshot(self, tmp_path, capsys):
        assert _cli(tmp_path, "backup") == 0
        assert "Backup completed successfully" in capsys.readouterr().out

        assert _cli(tmp_path, "snapshot") == 0
        assert "[ok] Snapshot written" in capsys.readouterr().out
        assert list((tmp_path / "backups").glob("expenses_snapshot_*.db"))

    def test_snapshot_without_primary(self, tmp_path, capsys):
        assert _cli(tmp_path, "snapshot") == 1
        assert "[error] Primary store not found" in capsys.readouterr().out

    def test_restore_from_replica(self, tmp_path, capsys):
        assert _cli(tmp_path, "check") == 0
        replica = SQLiteStore(str(tmp_path / "backups" / "expenses_backup2.db"), name="replica2")
        try:
            replica.execute("INSERT INTO categories (name, icon, hexColor) VALUES ('Pets', 'x', '#000000')")
        finally:
            replica.close()

        assert _cli(tmp_path, "restore", "--replica", "2") == 0
        assert "[ok] Primary restored from replica2" in capsys.readouterr().out

        primary = SQLiteStore(str(tmp_path / "expenses.db"))
        try:
            assert primary.scalar("SELECT COUNT(*) FROM categories WHERE name = 'Pets'") == 1
        finally:
            primary.close()

    def test_restore_unconfigured_replica(self, tmp_path, capsys):
        assert _cli(tmp_path, "--replicas", "1", "restore", "--replica", "2") == 1
        assert "not configured" in capsys.readouterr().out

    def test_migrate(self, tmp_path, capsys):
        assert _cli(tmp_path, "migrate") == 0
        out = capsys.readouterr().out
        assert "[ok] seeded categories" in out
        assert "[ok] Schema is up to date" in out
