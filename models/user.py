"""User model definition."""

from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from utils.clock import isoformat, utcnow

from . import db


ROLES = ("student", "admin", "super_admin")
STAFF_ROLES = ("admin", "super_admin")


class User(db.Model):
    """Represents a platform account."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # Always stored lower-cased so the unique index is case-insensitive.
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(80), nullable=True)
    role = db.Column(
        db.Enum(*ROLES, name="user_role"),
        nullable=False,
        default="student",
        index=True,
    )
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    email_verified_at = db.Column(db.DateTime, nullable=True)
    is_blocked = db.Column(db.Boolean, nullable=False, default=False)
    google_subject = db.Column(db.String(255), unique=True, nullable=True)
    picture = db.Column(db.String(1024), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    @property
    def is_super_admin(self) -> bool:
        return self.role == "super_admin"

    def set_password(self, password: str) -> None:
        """Hash and store the password."""

        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Verify a password against the stored hash."""

        if self.password_hash is None:
            return False
        return check_password_hash(self.password_hash, password)

    def mark_verified(self) -> None:
        """Record that the user proved ownership of their mailbox."""

        if not self.email_verified:
            self.email_verified = True
            self.email_verified_at = utcnow()

    def to_dict(self, include_admin_fields: bool = False) -> dict:
        """Serialize the user for API responses."""

        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "picture": self.picture,
            "email_verified": self.email_verified,
            "has_password": self.has_password,
            "is_google_user": self.google_subject is not None,
        }
        if include_admin_fields:
            data.update(
                {
                    "phone": self.phone,
                    "country": self.country,
                    "is_blocked": self.is_blocked,
                    "email_verified_at": isoformat(self.email_verified_at),
                    "created_at": isoformat(self.created_at),
                    "updated_at": isoformat(self.updated_at),
                }
            )
        return data

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<User {self.email}>"


def normalize_email(raw_email: Optional[str]) -> str:
    """Normalize an email string by stripping whitespace and lowering case."""

    return (raw_email or "").strip().lower()
