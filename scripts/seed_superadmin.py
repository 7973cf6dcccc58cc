"""Seed or reset the super admin account.

The super admin cannot be created or modified through the API, so this script
is the only way to provision it. Credentials come from ``SUPERADMIN_EMAIL``
and ``SUPERADMIN_PASSWORD``.
"""

import os
import sys

from app import create_app
from models import db
from models.user import User, normalize_email
from services import activity, identity

SUPERADMIN_EMAIL = normalize_email(os.getenv("SUPERADMIN_EMAIL", "superadmin@example.com"))
SUPERADMIN_NAME = os.getenv("SUPERADMIN_NAME", "Super Admin")


def main() -> None:
    password = os.getenv("SUPERADMIN_PASSWORD")
    if not password:
        sys.exit("SUPERADMIN_PASSWORD must be set.")
    problems = identity.password_policy_errors(password)
    if problems:
        sys.exit("Password rejected: " + "; ".join(problems))

    app = create_app()
    with app.app_context():
        user = User.query.filter_by(email=SUPERADMIN_EMAIL).first()
        if user is None:
            user = User(email=SUPERADMIN_EMAIL, name=SUPERADMIN_NAME, role="super_admin")
            db.session.add(user)
            action = "created"
        else:
            user.role = "super_admin"
            action = "updated"
        user.is_blocked = False
        user.set_password(password)
        user.mark_verified()
        db.session.commit()
        activity.record(
            "superadmin_seeded", actor_user_id=user.id, target_email=user.email, metadata={"action": action}
        )
        print(f"Super admin {action}: {SUPERADMIN_EMAIL}")


if __name__ == "__main__":
    main()
