"""Authentication blueprint: registration, verification, login and passwords."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from errors import AccountBlocked
from extensions import limiter
from services import activity, identity, tokens, verification
from services.google_identity import verify_google_id_token
from utils.authorization import Principal, authorize
from utils.request_validation import parse_json_request

auth_bp = Blueprint("auth", __name__)


def _auth_rate_limit() -> str:
    return current_app.config.get("AUTH_RATE_LIMIT", "10 per minute")


def _session_payload(user, session_token: str) -> dict:
    return {
        "session_token": session_token,
        "user": user.to_dict(),
        "requires_password_setup": not user.has_password,
    }


@auth_bp.route("/register", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def register():
    """Create a passwordless student account and mail a verification link."""

    payload = parse_json_request(request, required_keys=("name", "email"))
    user = identity.create_pending(
        payload.get("name"),
        payload.get("email"),
        phone=payload.get("phone"),
        country=payload.get("country"),
    )
    activity.record(
        "user_registered",
        actor_user_id=user.id,
        target_email=user.email,
        metadata={"method": "manual", "country": user.country},
    )
    verification.request_verification(user, actor_user_id=user.id)

    return (
        jsonify(
            {
                "verification_sent": True,
                "message": "Registration successful. Please check your email to verify your account.",
                "user": user.to_dict(),
            }
        ),
        HTTPStatus.CREATED,
    )


@auth_bp.route("/google", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def google_sign_in():
    """Register or sign in with a Google ID token verified server-side."""

    payload = parse_json_request(request, required_keys=("id_token",))
    profile = verify_google_id_token(payload["id_token"])
    user, created = identity.create_or_link_google(
        profile.subject, profile.email, profile.name, profile.picture
    )

    if created:
        activity.record(
            "user_registered",
            actor_user_id=user.id,
            target_email=user.email,
            metadata={"method": "google", "has_picture": bool(profile.picture)},
        )
        verification.request_verification(user, actor_user_id=user.id)
        return (
            jsonify({"verification_sent": True, "user": user.to_dict()}),
            HTTPStatus.CREATED,
        )

    if user.is_blocked:
        raise AccountBlocked()

    if not user.email_verified:
        verification.request_verification(user, actor_user_id=user.id)
        return jsonify({"verification_sent": True, "user": user.to_dict()}), HTTPStatus.OK

    activity.record(
        "user_login", actor_user_id=user.id, target_email=user.email, metadata={"method": "google"}
    )
    return jsonify(_session_payload(user, tokens.issue_session(user))), HTTPStatus.OK


@auth_bp.route("/verify", methods=["GET"])
def verify_email():
    """Consume an emailed verification token and sign the user in."""

    token = (request.args.get("token") or "").strip()
    if not token:
        raise BadRequest("Verification token is required.")

    result = verification.complete_verification(token)
    return jsonify(_session_payload(result["user"], result["session_token"])), HTTPStatus.OK


@auth_bp.route("/resend-verification", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def resend_verification():
    payload = parse_json_request(request, required_keys=("email",))
    message = verification.resend_verification(payload["email"])
    return jsonify({"message": message}), HTTPStatus.OK


@auth_bp.route("/set-password", methods=["POST"])
@authorize("auth.set_password")
def set_password(principal: Principal):
    """Choose a password after verifying the email address."""

    payload = parse_json_request(request, required_keys=("password",))
    verification.set_password_after_verification(principal.user, payload["password"])
    return (
        jsonify({"message": "Password set successfully. You can now log in with your email and password."}),
        HTTPStatus.OK,
    )


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def login():
    """Authenticate with email and password and return a session token."""

    payload = parse_json_request(request, required_keys=("email", "password"))
    user = identity.authenticate(payload["email"], payload["password"])
    activity.record(
        "user_login", actor_user_id=user.id, target_email=user.email, metadata={"method": "password"}
    )
    return (
        jsonify({"session_token": tokens.issue_session(user), "user": user.to_dict()}),
        HTTPStatus.OK,
    )


@auth_bp.route("/forgot-password", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def forgot_password():
    payload = parse_json_request(request, required_keys=("email",))
    message = verification.request_reset(payload["email"])
    return jsonify({"message": message}), HTTPStatus.OK


@auth_bp.route("/reset-password", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def reset_password():
    payload = parse_json_request(request, required_keys=("token", "password"))
    verification.complete_reset(payload["token"], payload["password"])
    return (
        jsonify({"message": "Password has been reset. You can now log in with your new password."}),
        HTTPStatus.OK,
    )


@auth_bp.route("/verify-reset-token", methods=["POST"])
@limiter.limit(_auth_rate_limit)
def verify_reset_token():
    """Report whether a reset link is still usable, without consuming it."""

    payload = parse_json_request(request, required_keys=("token",))
    verification.check_reset_token(payload["token"])
    return jsonify({"valid": True}), HTTPStatus.OK


@auth_bp.route("/me", methods=["GET"])
@authorize("auth.me")
def me(principal: Principal):
    return jsonify({"user": principal.user.to_dict()}), HTTPStatus.OK


@auth_bp.route("/change-password", methods=["POST"])
@authorize("auth.change_password")
def change_password(principal: Principal):
    payload = parse_json_request(request, required_keys=("current_password", "new_password"))
    identity.change_password(
        principal.user, payload["current_password"], payload["new_password"]
    )
    return jsonify({"message": "Password changed."}), HTTPStatus.OK


@auth_bp.route("/account", methods=["DELETE"])
@authorize("auth.delete_account")
def delete_account(principal: Principal):
    """Self-service deletion, confirmed by typing ``<email>-delete``."""

    payload = parse_json_request(request, required_keys=("email", "confirmation_text"))
    identity.delete_own_account(
        principal.user, payload["email"], payload["confirmation_text"]
    )
    return jsonify({"message": "Account deleted successfully."}), HTTPStatus.OK


def _settings_payload(user) -> dict:
    return {"profile": {"name": user.name, "email": user.email}}


@auth_bp.route("/settings", methods=["GET"])
@authorize("auth.settings")
def get_settings(principal: Principal):
    return jsonify(_settings_payload(principal.user)), HTTPStatus.OK


@auth_bp.route("/settings", methods=["PUT"])
@authorize("auth.settings")
def update_settings(principal: Principal):
    """Update the caller's profile. Only the display name is editable."""

    payload = parse_json_request(request)
    profile = payload.get("profile", payload)
    name = profile.get("name") if isinstance(profile, dict) else None
    if not isinstance(name, str):
        raise BadRequest("profile.name must be a string.")
    identity.update_profile(principal.user, name)
    return jsonify(_settings_payload(principal.user)), HTTPStatus.OK
