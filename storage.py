"""
Persistent key/value bridge for the entity store.
Every collection is kept as one JSON text row; reads fall back to a default and
writes are best-effort, so the in-memory store stays authoritative.
"""

import json
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database import Base, SessionLocal, engine as default_engine
from models import StorageEntry


class KeyValueStorage:
    def __init__(self, engine=None):
        """Bind the bridge to a SQLAlchemy engine and make sure the table exists"""
        self.engine = engine if engine is not None else default_engine
        if engine is None:
            self.Session = SessionLocal
        else:
            self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=self.engine)

    def load(self, key: str, default: Any = None) -> Any:
        """
        Read one collection.

        Missing rows, unreadable JSON and database errors all return `default`.
        """
        db = self.Session()
        try:
            entry = db.get(StorageEntry, key)
            if entry is None:
                return default
            return json.loads(entry.value)
        except (json.JSONDecodeError, TypeError) as e:
            print(f"⚠️ Stored value for '{key}' is corrupt, using default: {e}")
            return default
        except SQLAlchemyError as e:
            print(f"⚠️ Could not read '{key}' from storage, using default: {e}")
            return default
        finally:
            db.close()

    def save(self, key: str, value: Any) -> bool:
        """Write one collection. Returns False (and rolls back) if the write failed."""
        db = self.Session()
        try:
            text = json.dumps(value)
            entry = db.get(StorageEntry, key)
            if entry is None:
                db.add(StorageEntry(key=key, value=text))
            else:
                entry.value = text
            db.commit()
            return True
        except (SQLAlchemyError, TypeError, ValueError) as e:
            try:
                db.rollback()
            except SQLAlchemyError:
                pass
            print(f"❌ Error saving state for key '{key}': {e}")
            return False
        finally:
            db.close()


class MemoryStorage:
    """Same contract as KeyValueStorage, kept in a dict (values stored as JSON text)."""

    def __init__(self):
        self.entries: Dict[str, str] = {}

    def load(self, key: str, default: Any = None) -> Any:
        text = self.entries.get(key)
        if text is None:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            print(f"⚠️ Stored value for '{key}' is corrupt, using default: {e}")
            return default

    def save(self, key: str, value: Any) -> bool:
        try:
            self.entries[key] = json.dumps(value)
            return True
        except (TypeError, ValueError) as e:
            print(f"❌ Error saving state for key '{key}': {e}")
            return False
