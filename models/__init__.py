"""Database initialization and model exports."""

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# Import models to register them with SQLAlchemy metadata.
from .user import User  # noqa: E402,F401
from .verification_token import VerificationToken  # noqa: E402,F401
from .lead import Lead  # noqa: E402,F401
from .activity_log import ActivityLogEntry  # noqa: E402,F401

__all__ = [
    "db",
    "User",
    "VerificationToken",
    "Lead",
    "ActivityLogEntry",
]
