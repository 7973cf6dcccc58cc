"""User records: creation, credentials, and staff administration."""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import BadRequest
from werkzeug.security import check_password_hash, generate_password_hash

from errors import (
    AccountBlocked,
    EmailAlreadyExists,
    Forbidden,
    InvalidCredentials,
    NotFound,
    NotVerified,
    PasswordPolicyViolation,
)
from models import db
from models.activity_log import ActivityLogEntry
from models.user import User, normalize_email
from models.verification_token import VerificationToken
from services import activity
from utils.clock import utcnow

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ASSIGNABLE_ROLES = ("admin", "student")

_dummy_hash: str | None = None


def _timing_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = generate_password_hash("timing-equalisation-placeholder")
    return _dummy_hash


def password_policy_errors(password: str) -> list[str]:
    """Return every password rule that ``password`` breaks."""

    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        errors.append("Password must contain at least one special character")
    return errors


def validate_email(raw_email: str | None) -> str:
    email = normalize_email(raw_email)
    if not email:
        raise BadRequest("Email is required.")
    if not EMAIL_PATTERN.match(email):
        raise BadRequest("Invalid email format.")
    return email


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


def find_by_email(email: str | None) -> User | None:
    return User.query.filter(User.email == normalize_email(email)).first()


def _insert_user(user: User) -> User:
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise EmailAlreadyExists() from exc
    return user


def create_pending(
    name: str,
    email: str,
    phone: str | None = None,
    country: str | None = None,
) -> User:
    """Create an unverified student without a password."""

    name = (name or "").strip()
    if not name:
        raise BadRequest("Name is required.")
    email = validate_email(email)
    if find_by_email(email) is not None:
        raise EmailAlreadyExists()

    return _insert_user(
        User(
            name=name,
            email=email,
            phone=(phone or "").strip() or None,
            country=(country or "").strip() or None,
            role="student",
            email_verified=False,
        )
    )


def create_or_link_google(
    subject: str, email: str, name: str, picture: str | None = None
) -> tuple[User, bool]:
    """Return ``(user, created)`` for a verified Google identity.

    An existing account with the same email but no Google linkage is never
    merged silently; the owner must sign in with that account instead.
    """

    existing = User.query.filter(User.google_subject == subject).first()
    if existing is not None:
        return existing, False

    email = validate_email(email)
    if find_by_email(email) is not None:
        raise EmailAlreadyExists()

    user = _insert_user(
        User(
            name=(name or "").strip() or email.split("@")[0],
            email=email,
            google_subject=subject,
            picture=picture,
            role="student",
            email_verified=False,
        )
    )
    return user, True


def check_password_policy(password: str) -> None:
    errors = password_policy_errors(password or "")
    if errors:
        raise PasswordPolicyViolation(errors[0], errors=errors)


def apply_password(user: User, password: str) -> None:
    """Validate and hash ``password`` onto ``user`` without committing."""

    check_password_policy(password)
    user.set_password(password)


def set_password(user: User, password: str) -> None:
    """Store a new password for a verified user. Overwrites any previous one."""

    if not user.email_verified:
        raise NotVerified()
    apply_password(user, password)
    db.session.commit()
    activity.record("password_set", actor_user_id=user.id, target_email=user.email)


def authenticate(email: str, password: str) -> User:
    """Return the user for valid credentials.

    Unknown email, missing password and wrong password are indistinguishable
    to the caller, and each costs one hash verification.
    """

    user = find_by_email(email)
    if user is None or user.password_hash is None:
        check_password_hash(_timing_hash(), password or "")
        raise InvalidCredentials()
    if not user.check_password(password or ""):
        raise InvalidCredentials()
    if user.is_blocked:
        raise AccountBlocked()
    if not user.email_verified:
        raise NotVerified(
            "Please verify your email address before logging in. "
            "Check your inbox for the verification link."
        )
    return user


def update_profile(user: User, name: str) -> User:
    """Rename the caller's own account."""

    name = (name or "").strip()
    if not name:
        raise BadRequest("Name is required.")
    if len(name) > 120:
        raise BadRequest("Name must be at most 120 characters.")
    if name != user.name:
        previous = user.name
        user.name = name
        db.session.commit()
        activity.record(
            "profile_updated",
            actor_user_id=user.id,
            target_email=user.email,
            metadata={"from": previous, "to": name},
        )
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if user.password_hash is None:
        raise BadRequest("This account does not have a password set.")
    if not user.check_password(current_password or ""):
        raise BadRequest("Current password is incorrect.")
    apply_password(user, new_password)
    db.session.commit()
    activity.record("password_changed", actor_user_id=user.id, target_email=user.email)


def _ensure_can_manage(actor: User, target: User) -> None:
    if target.is_super_admin:
        raise Forbidden("Super admin accounts cannot be modified.")
    if actor.role == "admin" and target.role != "student":
        raise Forbidden("Admins can only manage student accounts.")


def set_blocked(actor: User, target: User, blocked: bool) -> User:
    _ensure_can_manage(actor, target)
    if target.is_blocked == blocked:
        return target
    target.is_blocked = blocked
    db.session.commit()
    activity.record(
        "user_blocked" if blocked else "user_unblocked",
        actor_user_id=actor.id,
        target_email=target.email,
        metadata={"updated_by": actor.email},
    )
    return target


def update_user(
    actor: User,
    target: User,
    *,
    name: str | None = None,
    role: str | None = None,
    is_blocked: bool | None = None,
) -> User:
    """Apply a staff edit. Blocking is delegated to ``set_blocked``."""

    _ensure_can_manage(actor, target)

    updates = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise BadRequest("Name must not be empty.")
        if name != target.name:
            updates["name"] = name
    if role is not None and role != target.role:
        if not actor.is_super_admin:
            raise Forbidden("Only the super admin can change roles.")
        if role not in ASSIGNABLE_ROLES:
            raise BadRequest("Role must be one of: admin, student.")
        updates["role"] = role

    if updates:
        for key, value in updates.items():
            setattr(target, key, value)
        db.session.commit()
        activity.record(
            "user_updated",
            actor_user_id=actor.id,
            target_email=target.email,
            metadata={"updated_by": actor.email, "updates": updates},
        )

    if is_blocked is not None:
        set_blocked(actor, target, is_blocked)
    return target


def _purge(user: User) -> None:
    db.session.execute(
        sa.delete(VerificationToken)
        .where(VerificationToken.user_id == user.id)
        .execution_options(synchronize_session=False)
    )
    db.session.delete(user)
    db.session.commit()


def delete_user(actor: User, target: User) -> None:
    """Irrevocably delete ``target`` and its outstanding tokens."""

    _ensure_can_manage(actor, target)
    email, user_id = target.email, target.id
    _purge(target)
    activity.record(
        "user_deleted",
        actor_user_id=actor.id,
        target_email=email,
        metadata={"deleted_by": actor.email, "user_id": user_id},
    )


def delete_own_account(user: User, email: str, confirmation_text: str) -> None:
    expected = f"{user.email}-delete"
    if confirmation_text != expected:
        raise BadRequest(f'Confirmation text does not match. Please type "{expected}" exactly.')
    if normalize_email(email) != user.email:
        raise BadRequest("Email does not match your account email.")
    if user.is_super_admin:
        raise Forbidden("Super admin accounts cannot be deleted.")
    user_email, user_id = user.email, user.id
    _purge(user)
    activity.record(
        "user_deleted",
        actor_user_id=user_id,
        target_email=user_email,
        metadata={"initiated_by": "self_service"},
    )


def create_staff_user(
    actor: User,
    name: str,
    email: str,
    password: str,
    role: str = "admin",
    email_verified: bool = True,
) -> User:
    """Create an account on behalf of the super admin."""

    if role not in ASSIGNABLE_ROLES:
        raise BadRequest("Role must be one of: admin, student.")
    name = (name or "").strip()
    if not name:
        raise BadRequest("Name is required.")
    email = validate_email(email)
    if find_by_email(email) is not None:
        raise EmailAlreadyExists()

    user = User(name=name, email=email, role=role)
    if email_verified:
        user.mark_verified()
    apply_password(user, password)
    _insert_user(user)
    activity.record(
        "user_created_superadmin",
        actor_user_id=actor.id,
        target_email=user.email,
        metadata={"created_by": actor.email, "role": role},
    )
    return user


def list_users(
    search: str | None = None,
    role: str | None = None,
    status: str | None = None,
) -> list[User]:
    query = User.query
    if role:
        query = query.filter(User.role == role)
    if status == "blocked":
        query = query.filter(User.is_blocked.is_(True))
    elif status == "active":
        query = query.filter(User.is_blocked.is_(False))
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(
            sa.or_(User.email.like(like), sa.func.lower(User.name).like(like))
        )
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def overview(days: int = 30) -> dict:
    """Account metrics and a daily registration/deletion timeline."""

    def count(*criteria) -> int:
        return db.session.scalar(sa.select(sa.func.count(User.id)).where(*criteria))

    total = count()
    google_users = count(User.google_subject.isnot(None))
    metrics = {
        "total_users": total,
        "total_admins": count(User.role == "admin"),
        "total_super_admins": count(User.role == "super_admin"),
        "total_students": count(User.role == "student"),
        "verified_users": count(User.email_verified.is_(True)),
        "unverified_users": count(User.email_verified.is_(False)),
        "blocked_users": count(User.is_blocked.is_(True)),
        "google_users": google_users,
        "local_users": total - google_users,
        "deleted_accounts": db.session.scalar(
            sa.select(sa.func.count(ActivityLogEntry.id)).where(
                ActivityLogEntry.action == "user_deleted"
            )
        ),
    }

    today = utcnow().date()
    start = today - timedelta(days=days - 1)
    timeline = {
        (start + timedelta(days=offset)).isoformat(): {"registrations": 0, "deletions": 0}
        for offset in range(days)
    }
    rows = db.session.execute(
        sa.select(ActivityLogEntry.action, ActivityLogEntry.created_at).where(
            ActivityLogEntry.action.in_(("user_registered", "user_deleted")),
            ActivityLogEntry.created_at >= datetime.combine(start, time.min),
        )
    ).all()
    for action, created_at in rows:
        bucket = timeline.get(created_at.date().isoformat())
        if bucket is None:
            continue
        bucket["registrations" if action == "user_registered" else "deletions"] += 1

    return {
        "metrics": metrics,
        "timeline": [{"date": day, **counts} for day, counts in timeline.items()],
    }
