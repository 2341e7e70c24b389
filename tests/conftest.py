import os

# Keep the app from connecting to a real MongoDB at import time.
os.environ["DATABASE_URL"] = ""
os.environ.setdefault("APP_ENV", "development")

import mongomock
import pytest
from fastapi.testclient import TestClient

import queries
from auth import SessionCodec, get_codec
from config import Settings, get_settings
from database import ensure_indexes
from mailer import Mailer, MailerError, get_mailer
from main import app, get_db
from security import hash_password

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
PASSWORD = "Sup3rSecret"


class RecordingMailer(Mailer):
    """Renders the real templates but keeps messages in memory."""

    def __init__(self, settings):
        super().__init__(settings)
        self.sent = []
        self.fail = False

    def send_html(self, to, subject, html):
        if self.fail:
            raise MailerError("delivery disabled")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return "250 OK"

    def check_configuration(self):
        return {"success": not self.fail, "transport": "recording"}


@pytest.fixture
def settings():
    return Settings(app_env="development", app_url="https://shop.test")


@pytest.fixture
def mongo():
    database = mongomock.MongoClient()["hj_fashion_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def codec():
    return SessionCodec(TEST_SECRET)


@pytest.fixture
def mailer(settings):
    return RecordingMailer(settings)


@pytest.fixture
def client(mongo, codec, mailer, settings):
    app.dependency_overrides[get_db] = lambda: mongo
    app.dependency_overrides[get_codec] = lambda: codec
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(mongo):
    def _make(email="shopper@example.com", role="CUSTOMER", verified=False, first_name="Hina"):
        return queries.create_user(mongo, email, hash_password(PASSWORD), first_name=first_name,
                                   role=role, email_verified=verified)
    return _make


@pytest.fixture
def bearer(codec):
    def _bearer(user):
        return {"Authorization": f"Bearer {codec.issue(user['id'], user['email'], user['role'])}"}
    return _bearer
