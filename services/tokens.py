"""Session and one-time tokens.

Session tokens are stateless JWTs issued through Flask-JWT-Extended. One-time
tokens are random strings whose SHA-256 hash is persisted; the plaintext is
returned exactly once, to be mailed, and is never stored or logged.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

import sqlalchemy as sa
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from errors import (
    AccountBlocked,
    TokenAlreadyUsed,
    TokenExpired,
    TokenInvalid,
    TokenPurposeMismatch,
    Unauthenticated,
)
from models import db
from models.user import User
from models.verification_token import TOKEN_PURPOSES, VerificationToken
from utils.clock import utcnow


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_session(user: User) -> str:
    """Return a signed session token carrying the user id and role."""

    return create_access_token(identity=str(user.id), additional_claims={"role": user.role})


def validate_session(raw_token: str) -> tuple[User, dict]:
    """Verify a session token and re-check the account against the store.

    The block flag and role are read live, so blocking or demoting a user
    invalidates sessions that were issued before the change.
    """

    try:
        claims = decode_token(raw_token)
    except (JWTExtendedException, PyJWTError) as exc:
        raise Unauthenticated("Session token is invalid or expired.") from exc

    if claims.get("type") != "access":
        raise Unauthenticated("Session token is invalid or expired.")

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthenticated("Session token is invalid or expired.") from exc

    user = db.session.get(User, user_id)
    if user is None:
        raise Unauthenticated("Account no longer exists.")
    if user.is_blocked:
        raise AccountBlocked()
    if claims.get("role") != user.role:
        raise Unauthenticated("Session is outdated. Please log in again.")
    return user, claims


def issue_one_time(user_id: int, purpose: str, ttl: timedelta) -> str:
    """Persist a new one-time token for ``user_id`` and return its plaintext.

    Earlier unconsumed tokens for the same purpose are discarded so only the
    most recently mailed link works, and the user's expired tokens of any
    purpose are pruned. The caller commits.
    """

    if purpose not in TOKEN_PURPOSES:
        raise ValueError(f"Unknown token purpose: {purpose}")

    now = utcnow()
    db.session.execute(
        sa.delete(VerificationToken)
        .where(
            VerificationToken.user_id == user_id,
            sa.or_(
                sa.and_(
                    VerificationToken.purpose == purpose,
                    VerificationToken.consumed_at.is_(None),
                ),
                VerificationToken.expires_at <= now,
            ),
        )
        .execution_options(synchronize_session=False)
    )

    token = secrets.token_urlsafe(32)
    db.session.add(
        VerificationToken(
            token_hash=hash_token(token),
            user_id=user_id,
            purpose=purpose,
            expires_at=now + ttl,
        )
    )
    db.session.flush()
    return token


def _lookup(token_hash: str) -> VerificationToken | None:
    return db.session.execute(
        sa.select(VerificationToken)
        .where(VerificationToken.token_hash == token_hash)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _raise_unusable(stored: VerificationToken | None, purpose: str) -> None:
    if stored is None:
        raise TokenInvalid()
    if stored.purpose != purpose:
        raise TokenPurposeMismatch()
    if stored.consumed_at is not None:
        raise TokenAlreadyUsed()
    raise TokenExpired()


def peek(token: str, purpose: str) -> int:
    """Return the user id a usable token belongs to without consuming it."""

    if not token:
        raise TokenInvalid()

    stored = _lookup(hash_token(token))
    if stored is not None and stored.purpose == purpose and stored.is_usable():
        return stored.user_id
    _raise_unusable(stored, purpose)


def consume(token: str, purpose: str) -> int:
    """Atomically mark a one-time token consumed and return its user id.

    The check-and-set is a single conditional UPDATE, so two requests racing
    with the same token cannot both succeed. The caller commits, together
    with the state change the token authorises.
    """

    if not token:
        raise TokenInvalid()

    token_hash = hash_token(token)
    now = utcnow()
    result = db.session.execute(
        sa.update(VerificationToken)
        .where(
            VerificationToken.token_hash == token_hash,
            VerificationToken.purpose == purpose,
            VerificationToken.consumed_at.is_(None),
            VerificationToken.expires_at > now,
        )
        .values(consumed_at=now)
        .execution_options(synchronize_session=False)
    )

    stored = _lookup(token_hash)
    if result.rowcount == 1 and stored is not None:
        return stored.user_id
    _raise_unusable(stored, purpose)


def purge_expired(now=None) -> int:
    """Delete every expired token row. Returns the number removed; commits."""

    result = db.session.execute(
        sa.delete(VerificationToken)
        .where(VerificationToken.expires_at <= (now or utcnow()))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
