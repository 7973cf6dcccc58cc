"""Staff blueprints: user administration and the super admin console."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import BadRequest

from models.user import ROLES
from services import activity, identity
from utils.authorization import Principal, authorize
from utils.request_validation import parse_bool, parse_json_request, parse_positive_int

admin_bp = Blueprint("admin", __name__)
superadmin_bp = Blueprint("superadmin", __name__)

MAX_ACTIVITY_LIMIT = 200


@admin_bp.route("/users", methods=["GET"])
@authorize("users.list")
def list_users(principal: Principal):
    """List accounts, filtered by ``search``, ``role`` and ``status``."""

    role = request.args.get("role") or None
    if role and role not in ROLES:
        raise BadRequest("Invalid role filter.")
    status = request.args.get("status") or None
    if status and status not in {"active", "blocked"}:
        raise BadRequest("status must be 'active' or 'blocked'.")

    users = identity.list_users(search=request.args.get("search"), role=role, status=status)
    return jsonify(
        {
            "users": [user.to_dict(include_admin_fields=True) for user in users],
            "count": len(users),
        }
    )


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@authorize("users.read")
def get_user(principal: Principal, user_id: int):
    user = identity.get_user(user_id)
    return jsonify({"user": user.to_dict(include_admin_fields=True)})


@admin_bp.route("/users/<int:user_id>", methods=["PATCH"])
@authorize("users.update")
def update_user(principal: Principal, user_id: int):
    """Rename, re-role, block or unblock an account."""

    payload = parse_json_request(request)
    target = identity.get_user(user_id)

    is_blocked = None
    if "is_blocked" in payload:
        is_blocked = parse_bool(payload["is_blocked"])
        if is_blocked is None:
            raise BadRequest("is_blocked must be a boolean.")

    name = payload.get("name")
    if name is not None and not isinstance(name, str):
        raise BadRequest("name must be a string.")

    identity.update_user(
        principal.user,
        target,
        name=name,
        role=payload.get("role"),
        is_blocked=is_blocked,
    )
    return jsonify({"user": target.to_dict(include_admin_fields=True)})


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@authorize("users.delete")
def delete_user(principal: Principal, user_id: int):
    target = identity.get_user(user_id)
    identity.delete_user(principal.user, target)
    return jsonify({"deleted": True, "id": user_id})


@superadmin_bp.route("/users", methods=["POST"])
@authorize("superadmin.create_user")
def create_user(principal: Principal):
    """Create an admin or student account with a password."""

    payload = parse_json_request(request, required_keys=("name", "email", "password"))
    email_verified = parse_bool(payload.get("email_verified", True))
    user = identity.create_staff_user(
        principal.user,
        payload["name"],
        payload["email"],
        payload["password"],
        role=payload.get("role") or "admin",
        email_verified=True if email_verified is None else email_verified,
    )
    return jsonify({"user": user.to_dict(include_admin_fields=True)}), HTTPStatus.CREATED


@superadmin_bp.route("/overview", methods=["GET"])
@authorize("superadmin.overview")
def overview(principal: Principal):
    data = identity.overview()
    data["recent_activity"] = [entry.to_dict() for entry in activity.recent(limit=20)]
    return jsonify(data)


@superadmin_bp.route("/activity", methods=["GET"])
@authorize("superadmin.activity")
def activity_log(principal: Principal):
    limit = min(parse_positive_int(request.args.get("limit"), 50, "limit"), MAX_ACTIVITY_LIMIT)
    entries = activity.recent(limit=limit, action=request.args.get("action") or None)
    return jsonify({"entries": [entry.to_dict() for entry in entries]})
