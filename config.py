"""Application configuration module."""

import os
from datetime import timedelta


def _hours(name: str, default: float) -> timedelta:
    return timedelta(hours=float(os.getenv(name, default)))


class Config:
    """Base configuration for the Flask application."""

    # Core
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = _hours("SESSION_TTL_HOURS", 24)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///app.db")
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # One-time tokens
    VERIFY_EMAIL_TOKEN_TTL = _hours("VERIFY_EMAIL_TOKEN_TTL_HOURS", 24)
    RESET_PASSWORD_TOKEN_TTL = _hours("RESET_PASSWORD_TOKEN_TTL_HOURS", 1)

    # CORS
    _raw_origins = os.getenv("ORIGINS", "*")
    if _raw_origins.strip() == "*":
        CORS_ORIGINS = "*"
    else:
        CORS_ORIGINS = [o.strip() for o in _raw_origins.split(",") if o.strip()]

    # Rate limiting
    RATE_LIMIT = os.getenv("RATE_LIMIT", "60 per minute")
    AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "10 per minute")
    LEAD_RATE_LIMIT = os.getenv("LEAD_RATE_LIMIT", "20 per hour")
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_KEY_PREFIX = os.getenv("RATELIMIT_KEY_PREFIX", "")

    # Google sign-in
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")

    # Outbound email: "smtp", "console" or "memory"
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
    MAIL_BACKEND = os.getenv("MAIL_BACKEND", "smtp" if os.getenv("SMTP_HOST") else "console")
    MAIL_SERVER = os.getenv("SMTP_HOST")
    MAIL_PORT = int(os.getenv("SMTP_PORT", 587))
    MAIL_USE_TLS = os.getenv("SMTP_SECURE", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("SMTP_USER")
    MAIL_PASSWORD = os.getenv("SMTP_PASS")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_FROM", "no-reply@example.com")
    MAIL_TIMEOUT = float(os.getenv("SMTP_TIMEOUT", 10))
