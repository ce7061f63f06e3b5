import itertools
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.booking import APPROVED, Booking
from models.slot import Slot
from models.user import Role, User
from services.clock import FixedClock
from services.lifecycle import BookingLifecycle
from services.notifier import Notifier
from services.reminders import ReminderScheduler
from utils.seed import seed_roles

NOW = datetime(2026, 3, 2, 9, 0)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SEED_ON_STARTUP = False
    PUSH_ENABLED = False
    REDIS_URL = None
    LOG_LEVEL = "WARNING"


class RecordingSink:
    def __init__(self):
        self.sent = []
        self.fail = False

    def deliver(self, user_id, title, body, metadata=None):
        self.sent.append({"user_id": user_id, "title": title, "body": body, "data": metadata})
        if self.fail:
            raise RuntimeError("push gateway unreachable")
        return True

    def of_type(self, title):
        return [m for m in self.sent if m["title"] == title]


class RecordingBus:
    def __init__(self):
        self.events = []
        self.broadcasts = []

    def emit(self, user_id, event, payload):
        self.events.append((user_id, event, payload))

    def broadcast(self, event, payload):
        self.broadcasts.append((event, payload))


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def notifier(sink, bus):
    return Notifier(sink=sink, bus=bus)


@pytest.fixture
def app(clock, notifier):
    app = create_app(TestConfig, clock=clock, notifier=notifier)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def lifecycle(app, clock, notifier):
    return BookingLifecycle(clock=clock, notifier=notifier)


@pytest.fixture
def scheduler(app, clock, notifier):
    return ReminderScheduler(clock=clock, notifier=notifier)


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(*roles, name=None, push_token=None):
        n = next(counter)
        user = User(email=f"user{n}@campus.example", full_name=name or f"User {n}", push_token=push_token)
        for role in roles:
            user.roles.append(Role.query.filter_by(name=role).first())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def faculty(make_user):
    return make_user("FACULTY", name="Dr. Rao")


@pytest.fixture
def student(make_user):
    return make_user("STUDENT", name="Asha")


@pytest.fixture
def other_student(make_user):
    return make_user("STUDENT", name="Ben")


@pytest.fixture
def admin(make_user):
    return make_user("ADMIN", name="Registrar")


@pytest.fixture
def make_slot(app, faculty, clock):
    def _make(start=None, minutes=60, capacity=1, owner=None, booked_count=0):
        start = start or clock.now() + timedelta(days=1)
        slot = Slot(
            faculty_id=(owner or faculty).id,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            location="Room 101",
            capacity=capacity,
            booked_count=booked_count,
        )
        db.session.add(slot)
        db.session.commit()
        return slot

    return _make


@pytest.fixture
def make_booking(app, clock):
    """Insert a booking row directly, bypassing the lifecycle."""
    def _make(slot, student, status=APPROVED, created_at=None, **fields):
        booking = Booking(
            slot_id=slot.id,
            student_id=student.id,
            faculty_id=slot.faculty_id,
            purpose="Project review",
            status=status,
            created_at=created_at or clock.now() - timedelta(days=1),
            **fields,
        )
        db.session.add(booking)
        db.session.commit()
        return booking

    return _make
