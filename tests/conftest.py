"""Shared pytest fixtures for the application tests."""

from __future__ import annotations

import re
import sys
from pathlib import Path
from urllib.parse import unquote

import pytest
from flask import Flask
from flask.testing import FlaskClient

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from models import db  # noqa: E402
from models.user import User  # noqa: E402
from services import mailer, tokens  # noqa: E402

STRONG_PASSWORD = "Str0ng!Pass"
_TOKEN_PATTERN = re.compile(r"token=([A-Za-z0-9_\-%]+)")


class _BaseTestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key-with-enough-length-1234"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length-1234"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAIL_BACKEND = "memory"
    FRONTEND_URL = "https://app.example"
    GOOGLE_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
    RATE_LIMIT = "1000 per minute"
    AUTH_RATE_LIMIT = "1000 per minute"
    LEAD_RATE_LIMIT = "1000 per minute"
    CORS_ORIGINS = "*"


def build_app(**overrides) -> Flask:
    class TestConfig(_BaseTestConfig):
        pass

    for key, value in overrides.items():
        setattr(TestConfig, key, value)

    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
    return application


@pytest.fixture()
def app() -> Flask:
    """Create a Flask application instance for tests."""

    application = build_app()

    yield application

    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Return a test client for the Flask app."""

    return app.test_client()


@pytest.fixture()
def make_user(app: Flask):
    """Persist a user and return its id."""

    def _make_user(
        email: str,
        *,
        name: str = "Test User",
        role: str = "student",
        password: str | None = STRONG_PASSWORD,
        verified: bool = True,
        blocked: bool = False,
    ) -> int:
        with app.app_context():
            user = User(name=name, email=email.lower(), role=role, is_blocked=blocked)
            if password:
                user.set_password(password)
            if verified:
                user.mark_verified()
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture()
def auth_headers(app: Flask):
    """Return bearer headers carrying a fresh session for a user id."""

    def _auth_headers(user_id: int) -> dict:
        with app.app_context():
            token = tokens.issue_session(db.session.get(User, user_id))
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture()
def last_mailed_token(app: Flask):
    """Return the one-time token from the newest message sent to ``email``."""

    def _last_mailed_token(email: str) -> str:
        with app.app_context():
            messages = [m for m in mailer.outbox() if m["To"] == email]
        assert messages, f"no mail sent to {email}"
        match = _TOKEN_PATTERN.search(messages[-1].get_content())
        assert match, "message does not carry a token link"
        return unquote(match.group(1))

    return _last_mailed_token
