"""Shared fixtures: in-memory database, fake delivery transports, helpers."""
import threading
from types import SimpleNamespace

import pytest
from pywebpush import WebPushException

from app import create_app
from config import Config
from models import db as _db
from models.notification import NotificationPreference
from models.push_subscription import PushSubscription
from models.security_question import SecurityQuestion
from models.user import User
from security.password import hash_password

PASSWORD = "correct-horse-42"


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SITE_URL = "https://family.test"
    SITE_NAME = "Family Test"
    VAPID_PRIVATE_KEY = "test-vapid-private-key"
    VAPID_PUBLIC_KEY = "test-vapid-public-key"
    CRON_SECRET = "cron-secret"
    DIGEST_TIMEZONE = "UTC"
    NOTIFY_IN_BACKGROUND = False
    LOG_LEVEL = "DEBUG"


class FakeMailer:
    configured = True

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self._lock = threading.Lock()

    def send(self, to_email, subject, html, text=None):
        with self._lock:
            self.sent.append(SimpleNamespace(to=to_email, subject=subject, html=html, text=text))
        if to_email in self.fail_for:
            return False, "mailbox unavailable"
        return True, None

    @property
    def recipients(self):
        return sorted(m.to for m in self.sent)


class FakePushClient:
    configured = True

    def __init__(self):
        self.sent = []
        self.statuses = {}
        self._lock = threading.Lock()

    def send(self, subscription_info, payload):
        endpoint = subscription_info["endpoint"]
        with self._lock:
            self.sent.append((endpoint, payload))
        status = self.statuses.get(endpoint)
        if status:
            raise WebPushException(f"Push failed: {status}", response=SimpleNamespace(status_code=status))


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    fanout = app.extensions["fanout"]
    fanout.mailer = FakeMailer()
    fanout.push_client = FakePushClient()

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def mailer(app):
    return app.extensions["fanout"].mailer


@pytest.fixture()
def pusher(app):
    return app.extensions["fanout"].push_client


@pytest.fixture()
def make_user(app):
    def _make(email, first_name="Test", last_name="User", role="MEMBER", is_active=True):
        user = User(
            email=email,
            password_hash=hash_password(PASSWORD),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def questions(app):
    rows = [
        SecurityQuestion(question="Grandmother's first name?", answer="marie", order=0),
        SecurityQuestion(question="Where did the grandparents meet?", answer="montreal", order=1),
        SecurityQuestion(question="Favourite Christmas dish?", answer="tourtiere", order=2),
    ]
    _db.session.add_all(rows)
    _db.session.commit()
    return rows


def set_preference(user, ntype, email=False, push=False):
    _db.session.add(NotificationPreference(user_id=user.id, type=ntype, email_enabled=email, push_enabled=push))
    _db.session.commit()


def add_subscription(user, endpoint):
    sub = PushSubscription(user_id=user.id, endpoint=endpoint, p256dh="p256dh-key", auth="auth-key")
    _db.session.add(sub)
    _db.session.commit()
    return sub


def pass_portal(client, question):
    resp = client.post("/api/security/verify", json={"answers": {str(question.id): question.answer}})
    assert resp.get_json() == {"success": True}


def csrf_headers(client):
    return {"X-CSRF-Token": client.get_cookie("portal_csrf").value}


@pytest.fixture()
def login(client, questions):
    def _login(user):
        pass_portal(client, questions[0])
        resp = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return csrf_headers(client)
    return _login
