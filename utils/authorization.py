"""Authorization guard for protected endpoints.

Every protected view is decorated with ``@authorize("<operation>")``. The
guard resolves the bearer session into an explicit ``Principal`` and passes
it to the view as the first positional argument; nothing is stored on
``flask.g``.

Roles do not inherit from one another. An operation admits exactly the roles
listed for it in ``ROLE_TABLE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Callable

from flask import Request, request

from errors import Forbidden, Unauthenticated
from models.user import User
from services import tokens

STUDENT = "student"
ADMIN = "admin"
SUPER_ADMIN = "super_admin"

ROLE_TABLE: dict[str, frozenset[str]] = {
    # Own account
    "auth.me": frozenset({STUDENT, ADMIN, SUPER_ADMIN}),
    "auth.settings": frozenset({STUDENT, ADMIN, SUPER_ADMIN}),
    "auth.set_password": frozenset({STUDENT, ADMIN}),
    "auth.change_password": frozenset({STUDENT, ADMIN}),
    "auth.delete_account": frozenset({STUDENT, ADMIN}),
    # Staff user management
    "users.list": frozenset({ADMIN, SUPER_ADMIN}),
    "users.read": frozenset({ADMIN, SUPER_ADMIN}),
    "users.update": frozenset({ADMIN, SUPER_ADMIN}),
    "users.delete": frozenset({ADMIN, SUPER_ADMIN}),
    # Super admin console
    "superadmin.create_user": frozenset({SUPER_ADMIN}),
    "superadmin.overview": frozenset({SUPER_ADMIN}),
    "superadmin.activity": frozenset({SUPER_ADMIN}),
    # Lead pipeline
    "leads.list": frozenset({ADMIN, SUPER_ADMIN}),
    "leads.read": frozenset({ADMIN, SUPER_ADMIN}),
    "leads.update": frozenset({ADMIN, SUPER_ADMIN}),
    "leads.send_verification": frozenset({ADMIN, SUPER_ADMIN}),
}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a protected operation."""

    user: User
    role: str
    claims: dict


def extract_bearer_token(req: Request) -> str:
    header = req.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    credentials = credentials.strip()
    if scheme.lower() != "bearer" or not credentials or " " in credentials:
        raise Unauthenticated()
    return credentials


def authenticate(raw_token: str) -> Principal:
    user, claims = tokens.validate_session(raw_token)
    return Principal(user=user, role=claims["role"], claims=claims)


def check_access(principal: Principal, operation: str) -> None:
    allowed = ROLE_TABLE[operation]
    if principal.role not in allowed:
        raise Forbidden()


def authorize(operation: str) -> Callable:
    """Guard a view with the roles listed for ``operation``."""

    if operation not in ROLE_TABLE:
        raise KeyError(f"No role table entry for operation {operation!r}")

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            principal = authenticate(extract_bearer_token(request))
            check_access(principal, operation)
            return view(principal, *args, **kwargs)

        return wrapper

    return decorator
