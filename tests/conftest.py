import os
from datetime import datetime, timedelta, timezone

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from lexhold.api.deps import get_db  # noqa: E402
from lexhold.db import Base, SessionLocal  # noqa: E402
from lexhold.main import app  # noqa: E402
from lexhold.models.legal_hold import ReminderCadence  # noqa: E402
from lexhold.schemas.legal_hold import CustodianCreate, LegalHoldCreate  # noqa: E402
from lexhold.services import legal_hold as lh_service  # noqa: E402
from lexhold.services.legal_hold import LegalHolds  # noqa: E402
from lexhold.services.locks import HoldLockRegistry  # noqa: E402
from lexhold.services.notification import DeliveryAttemptResult  # noqa: E402

# A Monday, so weekday-based quiet hours are easy to reason about.
START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingNotifier:
    """Stands in for the Celery enqueue; keeps every notice request."""

    def __init__(self):
        self.requests = []

    def __call__(self, request) -> None:
        self.requests.append(request)

    def kinds(self) -> list[str]:
        return [r.kind.value for r in self.requests]

    def recipients(self) -> list[str]:
        return [r.custodian_email for r in self.requests]


class FakeDispatcher:
    def __init__(self, delivered: bool = True, raises: Exception | None = None):
        self.delivered = delivered
        self.raises = raises
        self.calls = []

    def dispatch(self, recipient_email, channel, template_ref, context):
        self.calls.append((recipient_email, channel, template_ref, context))
        if self.raises is not None:
            raise self.raises
        return DeliveryAttemptResult(
            delivered=self.delivered,
            channel=channel,
            detail="ok" if self.delivered else "mailbox unavailable",
        )


@pytest.fixture(autouse=True)
def _schema():
    engine = SessionLocal.kw["bind"]
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture()
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def service(clock, notifier):
    return LegalHolds(clock=clock, locks=HoldLockRegistry(), notifier=notifier)


@pytest.fixture()
def make_hold(db_session, service):
    def _make(
        emails=("a@x.com", "b@x.com"),
        cadence=ReminderCadence.weekly,
        issue=False,
        notify=False,
        **overrides,
    ):
        payload = LegalHoldCreate(
            name=overrides.pop("name", "Acme v. Widgets"),
            case_ref=overrides.pop("case_ref", "CASE-001"),
            created_by=overrides.pop("created_by", "counsel@x.com"),
            reminder_cadence=cadence,
            custodians=[
                CustodianCreate(email=email, name=email.split("@")[0].title())
                for email in emails
            ],
            **overrides,
        )
        hold = service.create(db_session, payload)
        if issue or notify:
            service.issue(db_session, hold.id, "counsel@x.com")
        if notify:
            service.notify_all(db_session, hold.id, "counsel@x.com")
        return hold

    return _make


@pytest.fixture()
def client(db_session, service, monkeypatch):
    def _get_db():
        yield db_session

    monkeypatch.setattr(lh_service, "legal_holds", service)
    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def dispatcher():
    return FakeDispatcher()


@pytest.fixture()
def failing_dispatcher():
    return FakeDispatcher(delivered=False)
