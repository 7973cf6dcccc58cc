"""Tests for the user model."""

from __future__ import annotations

from models import db
from models.user import User, normalize_email


def test_password_hashing(app):
    with app.app_context():
        user = User(name="Jane", email="jane@example.com")
        user.set_password("Secr3t!pw")

        assert user.password_hash != "Secr3t!pw"
        assert user.check_password("Secr3t!pw")
        assert not user.check_password("wrong")


def test_passwordless_user_never_matches(app):
    with app.app_context():
        user = User(name="Jane", email="jane@example.com")

        assert not user.has_password
        assert not user.check_password("")
        assert not user.check_password("anything")


def test_defaults_and_mark_verified(app):
    with app.app_context():
        user = User(name="Jane", email="jane@example.com")
        db.session.add(user)
        db.session.commit()

        assert user.role == "student"
        assert user.email_verified is False
        assert user.is_blocked is False

        user.mark_verified()
        first_verified_at = user.email_verified_at
        user.mark_verified()

        assert user.email_verified is True
        assert user.email_verified_at == first_verified_at


def test_to_dict_hides_admin_fields_by_default(app):
    with app.app_context():
        user = User(name="Jane", email="jane@example.com", phone="+100")
        db.session.add(user)
        db.session.commit()

        public = user.to_dict()
        assert "password_hash" not in public
        assert "phone" not in public
        assert public["has_password"] is False

        admin_view = user.to_dict(include_admin_fields=True)
        assert admin_view["phone"] == "+100"
        assert admin_view["is_blocked"] is False


def test_normalize_email():
    assert normalize_email("  Alice@X.com ") == "alice@x.com"
    assert normalize_email(None) == ""
