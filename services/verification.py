"""Email verification and deferred credential issuance.

Accounts move through three states::

    PendingVerification -> Verified (no password) -> Active (has password)

``PendingVerification`` is entered by registration (manual, Google, or lead
conversion). Following the emailed link verifies the address and signs the
user in straight away; the password is chosen afterwards. A password reset
link doubles as proof of mailbox ownership, so completing a reset also
verifies the address.
"""

from __future__ import annotations

import logging

from flask import current_app

from errors import AccountBlocked, AlreadyVerified, Forbidden, TokenError, VerificationFailed
from models import db
from models.user import User
from services import activity, identity, leads, mailer, tokens

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account exists for this email, a password reset link has been sent."
GENERIC_RESEND_MESSAGE = "If an account exists for this email, a verification link has been sent."


def request_verification(user: User, actor_user_id: int | None = None) -> bool:
    """Issue a ``verify_email`` token and mail it. Returns mail delivery success.

    The token is committed before dispatch so a failed send can be retried by
    requesting a new link.
    """

    token = tokens.issue_one_time(
        user.id, "verify_email", current_app.config["VERIFY_EMAIL_TOKEN_TTL"]
    )
    db.session.commit()

    delivered = mailer.send_verification_email(user.email, user.name, token)
    if not delivered:
        logger.warning("Verification email for user %s was not delivered", user.id)
    activity.record(
        "email_verification_sent",
        actor_user_id=actor_user_id,
        target_email=user.email,
        metadata={"delivered": delivered},
    )
    return delivered


def complete_verification(token: str) -> dict:
    """Consume a verification token and sign the user in."""

    try:
        user_id = tokens.consume(token, "verify_email")
    except TokenError as exc:
        db.session.rollback()
        raise VerificationFailed(exc) from exc

    user = db.session.get(User, user_id)
    user.mark_verified()
    db.session.commit()

    if user.is_blocked:
        raise AccountBlocked()

    activity.record("email_verified", actor_user_id=user.id, target_email=user.email)
    leads.mark_converted_by_email(user)

    return {
        "user": user,
        "session_token": tokens.issue_session(user),
        "requires_password_setup": not user.has_password,
    }


def set_password_after_verification(user: User, password: str) -> User:
    """Give a verified user their first (or a replacement) password."""

    if user.is_super_admin:
        raise Forbidden("Super admin password cannot be modified.")
    identity.set_password(user, password)
    return user


def resend_verification(email: str) -> str:
    user = identity.find_by_email(email)
    if user is None:
        return GENERIC_RESEND_MESSAGE
    if user.email_verified:
        raise AlreadyVerified()
    request_verification(user)
    return GENERIC_RESEND_MESSAGE


def request_reset(email: str) -> str:
    """Mail a ``reset_password`` token.

    The response is the same whether or not the account exists. Super admin
    credentials are managed outside the API, so no token is issued for them.
    """

    user = identity.find_by_email(email)
    if user is None or user.is_super_admin:
        return GENERIC_RESET_MESSAGE

    token = tokens.issue_one_time(
        user.id, "reset_password", current_app.config["RESET_PASSWORD_TOKEN_TTL"]
    )
    db.session.commit()

    delivered = mailer.send_password_reset_email(user.email, user.name, token)
    activity.record(
        "password_reset_requested",
        actor_user_id=user.id,
        target_email=user.email,
        metadata={"delivered": delivered},
    )
    return GENERIC_RESET_MESSAGE


def complete_reset(token: str, new_password: str) -> User:
    """Consume a reset token and store the new password in one transaction.

    The reset proves mailbox ownership, so it also verifies the address and
    converts any lead awaiting verification for it.
    """

    identity.check_password_policy(new_password)

    try:
        user_id = tokens.consume(token, "reset_password")
    except TokenError:
        db.session.rollback()
        raise

    user = db.session.get(User, user_id)
    if user.is_super_admin:
        db.session.rollback()
        raise Forbidden("Super admin password cannot be reset.")

    identity.apply_password(user, new_password)
    user.mark_verified()
    db.session.commit()

    activity.record("password_reset", actor_user_id=user.id, target_email=user.email)
    leads.mark_converted_by_email(user)
    return user


def check_reset_token(token: str) -> None:
    """Raise the matching ``TokenError`` unless ``token`` can still reset a password."""

    tokens.peek(token, "reset_password")
