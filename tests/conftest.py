"""Shared fixtures for the event check-in tests."""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from checkin.modules.database_manager import DatabaseManager
from checkin.modules.errors import NotificationError
from checkin.modules.participant_store import Participant, ParticipantStore
from checkin.modules.qr_generator import DATA_URL_PREFIX

BASE_TIME = datetime(2025, 9, 15, 8, 0, 0, tzinfo=timezone.utc)


class FakeNotifier:
    """Records QR emails instead of sending them."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_qr_email(self, email, full_name, qr_code_data_url):
        if self.fail:
            raise NotificationError("SMTP server unavailable")
        self.sent.append((email, full_name, qr_code_data_url))


class FakeClock:
    """Epoch-seconds clock moved forward by hand."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(tmp_path / 'checkin.db')
    yield manager
    manager.close_all_connections()


@pytest.fixture
def store(db_manager):
    return ParticipantStore(db_manager)


@pytest.fixture
def make_participant(store):
    """Insert a participant; ``minutes`` offsets created_at from a fixed base time."""
    def _make(participant_id='p-1', full_name='Ana Gomez', email='ana@example.com',
              minutes=0, **extra):
        participant = Participant(
            id=participant_id,
            full_name=full_name,
            email=email,
            phone=extra.get('phone'),
            organization=extra.get('organization'),
            category=extra.get('category'),
            qr_code=DATA_URL_PREFIX + 'iVBORw0KGgo=',
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        return store.create_participant(participant)
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', {'DATABASE_PATH': str(tmp_path / 'app.db')})
    yield app
    app.extensions['checkin']['scanners'].stop_all()
    app.extensions['checkin']['db'].close_all_connections()


@pytest.fixture
def notifier(app):
    fake = FakeNotifier()
    app.extensions['checkin']['registration'].notifier = fake
    return fake


@pytest.fixture
def client(app):
    return app.test_client()
