"""
Shared fixtures: a fresh SQLite file database per test, an in-memory blob
store, a recording realtime subscriber and a fake SMS notifier.
"""
from typing import Any

import pytest

from printflow.database import build_engine, build_sessionmaker, create_all
from printflow.models.user import User, UserRole
from printflow.services.blob_store import InMemoryBlobStore
from printflow.services.broadcaster import RealtimeBroadcaster
from printflow.services.notification_service import NotificationResult
from printflow.services.print_spec import PrintSpec, UploadedFile
from printflow.services.queue_engine import QueueEngine, drain_background_tasks

PDF = "application/pdf"


class RecordingSubscriber:
    """Stands in for a WebSocket; keeps every message it is sent."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def send_json(self, data: Any) -> None:
        self.messages.append(data)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["type"] == event_type]

    def clear(self) -> None:
        self.messages.clear()


class FakeNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str | None, dict]] = []
        self.fail = False

    async def notify_pickup(self, phone: str | None, job_summary: dict) -> NotificationResult:
        self.calls.append((phone, job_summary))
        if self.fail:
            raise RuntimeError("sms provider down")
        return NotificationResult(success=True, message_sid="SM123", status="queued")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'printflow-test.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_sessionmaker(db_engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(session_factory) -> dict[str, User]:
    users = {
        "student": User(
            email="alice@example.edu", name="Alice", phone="9876543210",
            student_number="S1001", role=UserRole.STUDENT,
        ),
        "other_student": User(email="bob@example.edu", name="Bob", role=UserRole.STUDENT),
        "vendor": User(email="vendor@printflow.com", name="Print Vendor", role=UserRole.VENDOR),
        "other_vendor": User(email="annex@printflow.com", name="Annex Prints", role=UserRole.VENDOR),
        "admin": User(email="admin@printflow.com", name="Admin", role=UserRole.ADMIN),
    }
    async with session_factory() as session:
        session.add_all(users.values())
        await session.commit()
    return users


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
async def broadcaster():
    hub = RealtimeBroadcaster(queue_size=1000)
    yield hub
    await hub.close()


@pytest.fixture
async def events(broadcaster) -> RecordingSubscriber:
    subscriber = RecordingSubscriber()
    broadcaster.connect(subscriber, user_id="observer")
    return subscriber


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
async def make_engine(session_factory, broadcaster, blob_store, notifier):
    """Build a QueueEngine on its own session (one per simulated request)."""
    sessions = []

    def factory(require_payment_before_queue: bool = True) -> QueueEngine:
        session = session_factory()
        sessions.append(session)
        return QueueEngine(session, broadcaster, blob_store, notifier, require_payment_before_queue)

    yield factory
    await drain_background_tasks()
    for session in sessions:
        await session.close()


@pytest.fixture
async def engine(make_engine) -> QueueEngine:
    return make_engine()


@pytest.fixture
def make_upload():
    def factory(
        page_count: int = 5,
        filename: str = "notes.pdf",
        content: bytes = b"%PDF-1.4 printflow test document",
        content_type: str = PDF,
        **spec: Any,
    ) -> UploadedFile:
        return UploadedFile(
            filename=filename,
            content=content,
            content_type=content_type,
            spec=PrintSpec(page_count=page_count, **spec),
        )

    return factory
