from datetime import datetime, timedelta

import pytest

from backend.hike_store import HikeStore
from backend.main import create_app
from backend.models import User, db

T = datetime(2026, 6, 1, 12, 0, 0)


class FakeSender:
    """Records every message; `fail_for` lists contacts whose delivery fails."""

    def __init__(self, ok=True, fail_for=()):
        self.ok = ok
        self.fail_for = set(fail_for)
        self.sent = []

    def send(self, to, subject, body):
        self.sent.append((to, subject, body))
        return self.ok and to not in self.fail_for


class ManualClock:
    def __init__(self, now_ms=1_780_000_000_000):
        self.now = now_ms

    def now_ms(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


def app_config(tmp_path, **overrides):
    config = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'trailsafe-test.db'}",
        "JWT_SECRET_KEY": "test-jwt-secret-with-enough-length-for-hs256",
        "RATE_LIMIT_PER_MIN": 100000,
        "SWEEP_SCHEDULER_ENABLED": False,
        "SWEEP_TOKEN": None,
        "SENDGRID_API_KEY": None,
        "NOTIFY_FROM_EMAIL": None,
        "TWILIO_SID": None,
        "ALERT_GRACE_MINUTES": 10,
    }
    config.update(overrides)
    return config


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def app(tmp_path, sender):
    app = create_app(app_config(tmp_path), sender=sender)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return HikeStore(db.session)


@pytest.fixture
def user(app):
    u = User(email="hiker@example.com", password_hash="not-a-real-hash", name="Hiker")
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def make_hike(store, user):
    def _make(expected=T, contact="friend@example.com", trail_id="trail-42", location=True):
        hike = store.create_hike(user.id, trail_id, contact, expected, started_at=expected - timedelta(hours=3))
        if location:
            store.record_point(hike.id, 37.7749, -122.4194, expected - timedelta(minutes=30))
        return hike.id
    return _make


def register(client, email="hiker@example.com", password="s3cret-pass", name="Hiker"):
    resp = client.post("/auth/register", json={"email": email, "password": password, "name": name})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["access_token"]


def auth(token):
    return {"Authorization": f"Bearer {token}"}
