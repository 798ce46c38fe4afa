from sqlalchemy.orm import sessionmaker

from models import StorageEntry
from storage import KeyValueStorage, MemoryStorage


def test_missing_key_returns_default(storage):
    assert storage.load("courses", []) == []
    assert storage.load("current_user") is None


def test_save_then_load(storage):
    assert storage.save("courses", [{"id": "course-1", "title": "Algebra I"}]) is True
    assert storage.load("courses", []) == [{"id": "course-1", "title": "Algebra I"}]

    assert storage.save("courses", []) is True
    assert storage.load("courses", None) == []


def test_corrupt_value_falls_back_to_default(engine, capsys):
    storage = KeyValueStorage(engine)
    Session = sessionmaker(bind=engine)
    with Session() as db:
        db.add(StorageEntry(key="users", value="{not json"))
        db.commit()

    assert storage.load("users", ["fallback"]) == ["fallback"]
    assert "corrupt" in capsys.readouterr().out


def test_unserializable_value_is_reported_not_raised(storage, capsys):
    assert storage.save("fees", [object()]) is False
    assert "Error saving state" in capsys.readouterr().out
    # the earlier (absent) value is untouched
    assert storage.load("fees", "unchanged") == "unchanged"


def test_memory_storage_contract():
    storage = MemoryStorage()
    assert storage.load("groups", []) == []
    assert storage.save("groups", [{"id": "group-1"}]) is True
    assert storage.load("groups", []) == [{"id": "group-1"}]

    storage.entries["groups"] = "]["
    assert storage.load("groups", []) == []
    assert storage.save("groups", {1, 2}) is False


def test_create_tables_builds_storage_table(engine):
    from sqlalchemy import inspect

    from create_tables import create_tables

    create_tables(bind=engine)
    assert "storage_entries" in inspect(engine).get_table_names()
