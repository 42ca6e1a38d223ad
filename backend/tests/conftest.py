import os

# Settings are cached on first import; point them at SQLite before any app module loads.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["TENANT_ID"] = "test-tenant"
os.environ["ENVIRONMENT"] = "test"

import logging  # noqa: E402
import random  # noqa: E402
import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from lessonsync.api.deps import get_db  # noqa: E402
from lessonsync.api.routes import health  # noqa: E402
from lessonsync.core.config import get_settings  # noqa: E402
from lessonsync.core.logging import HANDLER_PREFIX  # noqa: E402
from lessonsync.db.base import Base  # noqa: E402
from lessonsync.main import app  # noqa: E402
from lessonsync.models import Student, Teacher  # noqa: E402
from lessonsync.schemas.schedule import LessonRef, TimeBlock  # noqa: E402

TENANT_ID = "test-tenant"


@pytest.fixture(autouse=True)
def detach_lessonsync_log_handlers():
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(HANDLER_PREFIX):
            root.removeHandler(handler)
            handler.close()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return get_settings().model_copy(update={"tenant_id": TENANT_ID, "random_seed": 7})


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def make_block():
    def _make(
        day: str = "Monday",
        start: str = "09:00",
        end: str = "13:00",
        *,
        block_id: str | None = None,
        lessons: list[LessonRef] | None = None,
    ) -> dict:
        block = TimeBlock(
            id=block_id or str(uuid.uuid4()),
            day=day,
            startTime=start,
            endTime=end,
            totalDuration=0,
            location="Room 1",
            assignedLessons=lessons or [],
        )
        return block.model_copy(update={"totalDuration": block.capacity_minutes}).model_dump(mode="json")

    return _make


@pytest.fixture()
def make_teacher(db_session):
    def _make(
        first_name: str = "Teacher",
        *,
        time_blocks: list[dict] | None = None,
        tenant_id: str = TENANT_ID,
        is_active: bool = True,
    ) -> Teacher:
        teacher = Teacher(
            tenant_id=tenant_id,
            is_active=is_active,
            first_name=first_name,
            last_name="Levi",
            time_blocks=time_blocks or [],
        )
        db_session.add(teacher)
        db_session.commit()
        db_session.refresh(teacher)
        return teacher

    return _make


@pytest.fixture()
def make_student(db_session):
    def _make(
        teacher: Teacher | None = None,
        first_name: str = "Student",
        *,
        assignments: list[dict] | None = None,
        tenant_id: str = TENANT_ID,
        is_active: bool = True,
    ) -> Student:
        if assignments is None:
            assignments = [{"teacherId": teacher.id}] if teacher is not None else []
        student = Student(
            tenant_id=tenant_id,
            is_active=is_active,
            first_name=first_name,
            last_name="Cohen",
            teacher_assignments=assignments,
        )
        db_session.add(student)
        db_session.commit()
        db_session.refresh(student)
        return student

    return _make


@pytest.fixture()
def client(engine, monkeypatch):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(health, "engine", engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
