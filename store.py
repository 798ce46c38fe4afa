"""
Entity store: the in-memory collections that hold all application state.

The store is an explicit context object handed to every crud/queries function.
Each collection is an immutable tuple of pydantic records; a change builds a new
tuple and swaps it in with `replace`, which bumps the collection's version and
writes the snapshot through the key/value bridge. Mutations hold `lock` from
their first check to their last replace, so writers never interleave.
"""

import threading
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

import schemas

# Collection name (also the storage key) -> record type
COLLECTIONS = {
    "users": schemas.User,
    "courses": schemas.Course,
    "assignments": schemas.Assignment,
    "submissions": schemas.Submission,
    "announcements": schemas.Announcement,
    "discussion_posts": schemas.DiscussionPost,
    "materials": schemas.CourseMaterial,
    "video_materials": schemas.VideoMaterial,
    "video_notes": schemas.VideoNote,
    "notifications": schemas.Notification,
    "groups": schemas.Group,
    "quizzes": schemas.Quiz,
    "quiz_attempts": schemas.QuizAttempt,
    "chat_messages": schemas.ChatMessage,
    "attendance_records": schemas.AttendanceRecord,
    "fees": schemas.Fee,
}

CURRENT_USER_KEY = "current_user"
SAVE_FAILED_MESSAGE = "Could not save changes. The storage might be full."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EntityStore:
    def __init__(self, storage=None, files=None, clock: Optional[Callable[[], datetime]] = None):
        self.storage = None
        self.files = files
        self.clock = clock or utc_now
        self.collections: Dict[str, tuple] = {name: () for name in COLLECTIONS}
        self.versions: Dict[str, int] = {name: 0 for name in COLLECTIONS}
        self.alerts: List[str] = []
        self.current_user_id: Optional[str] = None
        # held by every mutation across its checks and its replace
        self.lock = threading.RLock()
        if storage is not None:
            self.init(storage)

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def init(self, storage) -> None:
        """Attach a storage bridge and load every collection from it."""
        self.storage = storage
        for name, model in COLLECTIONS.items():
            raw = storage.load(name, [])
            if not isinstance(raw, list):
                print(f"⚠️ Stored '{name}' is not a list, starting empty")
                raw = []
            records = []
            for item in raw:
                try:
                    records.append(model.model_validate(item))
                except ValidationError as e:
                    print(f"⚠️ Dropping invalid record in '{name}': {e.error_count()} error(s)")
            self.collections[name] = tuple(records)
            self.versions[name] = 0

        user_id = storage.load(CURRENT_USER_KEY, None)
        if isinstance(user_id, str) and any(u.id == user_id for u in self.collections["users"]):
            self.current_user_id = user_id
        else:
            self.current_user_id = None

    def flush(self) -> bool:
        """Write every collection (and the current-user pointer) again."""
        ok = True
        for name in COLLECTIONS:
            ok = self._persist(name) and ok
        return self._persist_current_user() and ok

    # ------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------

    def replace(self, name: str, records) -> None:
        if name not in COLLECTIONS:
            raise KeyError(name)
        with self.lock:
            self.collections[name] = tuple(records)
            self.versions[name] += 1
            self._persist(name)

    def append(self, name: str, *records) -> None:
        with self.lock:
            self.replace(name, self.collections[name] + tuple(records))

    def prepend(self, name: str, *records) -> None:
        with self.lock:
            self.replace(name, tuple(records) + self.collections[name])

    def _persist(self, name: str) -> bool:
        if self.storage is None:
            return True
        payload = [record.model_dump(mode="json") for record in self.collections[name]]
        return self._save(name, payload)

    def _persist_current_user(self) -> bool:
        if self.storage is None:
            return True
        return self._save(CURRENT_USER_KEY, self.current_user_id)

    def _save(self, key, value) -> bool:
        if self.storage.save(key, value):
            return True
        # the in-memory value stays authoritative for this session
        self.alerts.append(SAVE_FAILED_MESSAGE)
        return False

    def pop_alerts(self) -> List[str]:
        with self.lock:
            alerts, self.alerts = self.alerts, []
        return alerts

    # ------------------------------------------------------------
    # Collections by name
    # ------------------------------------------------------------

    @property
    def users(self) -> Tuple[schemas.User, ...]:
        return self.collections["users"]

    @property
    def courses(self) -> Tuple[schemas.Course, ...]:
        return self.collections["courses"]

    @property
    def assignments(self) -> Tuple[schemas.Assignment, ...]:
        return self.collections["assignments"]

    @property
    def submissions(self) -> Tuple[schemas.Submission, ...]:
        return self.collections["submissions"]

    @property
    def announcements(self) -> Tuple[schemas.Announcement, ...]:
        return self.collections["announcements"]

    @property
    def discussion_posts(self) -> Tuple[schemas.DiscussionPost, ...]:
        return self.collections["discussion_posts"]

    @property
    def materials(self) -> Tuple[schemas.CourseMaterial, ...]:
        return self.collections["materials"]

    @property
    def video_materials(self) -> Tuple[schemas.VideoMaterial, ...]:
        return self.collections["video_materials"]

    @property
    def video_notes(self) -> Tuple[schemas.VideoNote, ...]:
        return self.collections["video_notes"]

    @property
    def notifications(self) -> Tuple[schemas.Notification, ...]:
        return self.collections["notifications"]

    @property
    def groups(self) -> Tuple[schemas.Group, ...]:
        return self.collections["groups"]

    @property
    def quizzes(self) -> Tuple[schemas.Quiz, ...]:
        return self.collections["quizzes"]

    @property
    def quiz_attempts(self) -> Tuple[schemas.QuizAttempt, ...]:
        return self.collections["quiz_attempts"]

    @property
    def chat_messages(self) -> Tuple[schemas.ChatMessage, ...]:
        return self.collections["chat_messages"]

    @property
    def attendance_records(self) -> Tuple[schemas.AttendanceRecord, ...]:
        return self.collections["attendance_records"]

    @property
    def fees(self) -> Tuple[schemas.Fee, ...]:
        return self.collections["fees"]

    # ------------------------------------------------------------
    # Current user
    # ------------------------------------------------------------

    @property
    def current_user(self) -> Optional[schemas.User]:
        if self.current_user_id is None:
            return None
        for user in self.collections["users"]:
            if user.id == self.current_user_id:
                return user
        return None

    def set_current_user(self, user_id: Optional[str]) -> None:
        with self.lock:
            self.current_user_id = user_id
            self._persist_current_user()

    # ------------------------------------------------------------
    # Ids and time
    # ------------------------------------------------------------

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        return self.now().date()

    def new_id(self, kind: str) -> str:
        millis = int(self.now().timestamp() * 1000)
        return f"{kind}-{millis}-{uuid.uuid4().hex[:8]}"
