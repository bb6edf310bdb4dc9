"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone

from arisan.storage import (
    InMemoryStorage, SQLiteStorage, StorageError, NotFoundError, create_storage
)


def make_record(record_id, **fields):
    now = datetime.now(timezone.utc).isoformat()
    return {"id": record_id, "created_at": now, "updated_at": now, **fields}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Run each test against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "arisan_test.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """CRUD behaviour shared by every backend"""

    def test_save_and_load(self, storage):
        record = make_record("m1", name="Siti", turn_order=1)
        storage.save("members", "m1", record)

        assert storage.load("members", "m1") == record
        assert storage.load("members", "missing") is None
        assert storage.exists("members", "m1")
        assert not storage.exists("members", "missing")

    def test_save_replaces_document(self, storage):
        storage.save("members", "m1", make_record("m1", name="Siti"))
        storage.save("members", "m1", make_record("m1", name="Siti Aminah"))

        assert storage.load("members", "m1")["name"] == "Siti Aminah"
        assert storage.count("members") == 1

    def test_loaded_documents_are_copies(self, storage):
        storage.save("arisans", "g1", make_record("g1", gaps=["50000"]))
        loaded = storage.load("arisans", "g1")
        loaded["gaps"].append("1")

        assert storage.load("arisans", "g1")["gaps"] == ["50000"]

    def test_find_with_filters(self, storage):
        storage.save("payments", "p1", make_record("p1", group_id="g1", round_number=1))
        storage.save("payments", "p2", make_record("p2", group_id="g1", round_number=2))
        storage.save("payments", "p3", make_record("p3", group_id="g2", round_number=1))

        assert {r["id"] for r in storage.find("payments", {"group_id": "g1"})} == {"p1", "p2"}
        assert [r["id"] for r in storage.find("payments", {"group_id": "g1", "round_number": 2})] == ["p2"]
        assert storage.find("payments", {"group_id": "nope"}) == []

    def test_delete_and_delete_where(self, storage):
        for i in range(3):
            storage.save("payments", f"p{i}", make_record(f"p{i}", group_id="g1"))
        storage.save("payments", "other", make_record("other", group_id="g2"))

        assert storage.delete("payments", "p0") is True
        assert storage.delete("payments", "p0") is False
        assert storage.delete_where("payments", {"group_id": "g1"}) == 2
        assert storage.count("payments") == 1

    def test_update_merges_fields(self, storage):
        storage.save("arisans", "g1", make_record("g1", name="Arisan RT 05", current_round=1))
        updated = storage.update("arisans", "g1", {"current_round": 2})

        assert updated["current_round"] == 2
        assert storage.load("arisans", "g1")["name"] == "Arisan RT 05"

    def test_update_missing_document(self, storage):
        with pytest.raises(NotFoundError):
            storage.update("arisans", "missing", {"name": "x"})

    def test_clear_table(self, storage):
        storage.save("rounds", "r1", make_record("r1"))
        storage.clear_table("rounds")
        assert storage.count("rounds") == 0

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("members", "m1", make_record("m1"))
            storage.save("members", "m2", make_record("m2"))
        assert storage.count("members") == 2

    def test_atomic_rolls_back_on_error(self, storage):
        storage.save("members", "m1", make_record("m1", name="Before"))

        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("members", "m1", make_record("m1", name="After"))
                storage.save("members", "m2", make_record("m2"))
                raise ValueError("boom")

        assert storage.load("members", "m1")["name"] == "Before"
        assert not storage.exists("members", "m2")

    def test_nested_atomic_blocks(self, storage):
        with storage.atomic():
            storage.save("members", "m1", make_record("m1"))
            with storage.atomic():
                storage.save("members", "m2", make_record("m2"))
        assert storage.count("members") == 2


class TestSQLiteStorage:
    """SQLite-specific behaviour"""

    def test_data_persists_across_connections(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            db_path = os.path.join(tmp_dir, "arisan.db")

            storage = SQLiteStorage(db_path)
            storage.save("arisans", "g1", make_record("g1", name="Arisan Kantor"))
            storage.close()

            reopened = SQLiteStorage(db_path)
            assert reopened.load("arisans", "g1")["name"] == "Arisan Kantor"
            reopened.close()

    def test_invalid_collection_name(self):
        storage = SQLiteStorage()
        with pytest.raises(ValueError, match="Invalid collection name"):
            storage.save("bad name; DROP", "x", make_record("x"))

    def test_closed_storage_raises_storage_error(self):
        storage = SQLiteStorage()
        storage.save("arisans", "g1", make_record("g1"))
        storage.close()
        with pytest.raises(StorageError):
            storage.load("arisans", "g1")


class TestCreateStorage:

    def test_backends_by_name(self, tmp_path):
        assert isinstance(create_storage("memory"), InMemoryStorage)
        sqlite = create_storage("sqlite", str(tmp_path / "a.db"))
        assert isinstance(sqlite, SQLiteStorage)
        sqlite.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage("postgres")
