from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import crud
import schemas
from ai_service import ContentService
from file_service import FileStore
from storage import KeyValueStorage
from store import EntityStore

PASSWORD = "Secret#123"
START = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = START.date()


class TickingClock:
    """Moves forward one second per reading so records get distinct timestamps."""

    def __init__(self, start=START):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(seconds=1)
        return value

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class FakeCompletions:
    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_content(reply="", error=None) -> ContentService:
    client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(reply, error)))
    return ContentService(api_key="test-key", client=client)


@pytest.fixture
def engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def storage(engine):
    return KeyValueStorage(engine)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def files(tmp_path):
    return FileStore(str(tmp_path / "uploads"))


@pytest.fixture
def store(storage, files, clock):
    return EntityStore(storage, files=files, clock=clock)


def make_user(store, name, email, role):
    error = crud.register(store, schemas.RegisterRequest(name=name, email=email, password=PASSWORD, role=role))
    assert error is None
    return store.current_user


def act_as(store, user):
    assert crud.login_with_user(store, user.id)
    return user


@pytest.fixture
def teacher(store):
    return make_user(store, "Ada Teacher", "ada@school.test", "Teacher")


@pytest.fixture
def student(store):
    return make_user(store, "Sam Student", "sam@school.test", "Student")


@pytest.fixture
def other_student(store):
    return make_user(store, "Kim Student", "kim@school.test", "Student")


@pytest.fixture
def course(store, teacher, student):
    act_as(store, teacher)
    created = crud.create_course(store, schemas.CourseCreate(
        title="Algebra I",
        description="Linear equations",
        start_date=date(2025, 1, 6),
        end_date=date(2025, 6, 30),
    ))
    act_as(store, student)
    return crud.enroll_in_course(store, created.id)
