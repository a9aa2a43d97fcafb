"""
Pytest configuration for the account service tests.

Points the service at a throwaway SQLite database before the application
modules are imported, and recreates the tables before each test.
"""
import os
import tempfile
from datetime import timedelta

_DB_DIR = tempfile.mkdtemp(prefix="account_service_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-for-session-tokens-0123456789"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("LOG_DIR", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from auth_platform.account_service import models  # noqa: E402,F401
from auth_platform.account_service.accounts import AccountService  # noqa: E402
from auth_platform.account_service.auth import PasswordHasher, TokenService  # noqa: E402
from auth_platform.account_service.db import Base, SessionLocal, engine  # noqa: E402
from auth_platform.account_service.directory import UserDirectory  # noqa: E402
from auth_platform.account_service.main import app, get_mailer  # noqa: E402

TEST_SECRET = os.environ["SECRET_KEY"]


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send_password_reset(self, to_email, to_name, reset_link):
        self.sent.append({"to_email": to_email, "to_name": to_name, "reset_link": reset_link})


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_password_reset_email(self, to_email, to_name, token):
        self.sent.append({"to_email": to_email, "to_name": to_name, "token": token})


@pytest.fixture(autouse=True)
def reset_database():
    # Drop all tables and recreate them before each test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(mailer):
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def hasher():
    return PasswordHasher()


@pytest.fixture
def tokens():
    return TokenService(secret_key=TEST_SECRET, session_ttl=timedelta(hours=1))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory(db_session):
    return UserDirectory(db_session)


@pytest.fixture
def accounts(directory, hasher, tokens, notifier):
    return AccountService(directory, hasher, tokens, notifier)
