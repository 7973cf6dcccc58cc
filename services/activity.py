"""Append-only activity log.

Writers call ``record`` after their own commit. A logging failure is rolled
back, retried once and then dropped with a log line; it never propagates to
the operation that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.activity_log import ActivityLogEntry
from models.user import normalize_email

logger = logging.getLogger(__name__)

_ATTEMPTS = 2


def record(
    action: str,
    *,
    actor_user_id: int | None = None,
    target_email: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    """Append an entry to the activity log. Never raises."""

    for attempt in range(1, _ATTEMPTS + 1):
        try:
            entry = ActivityLogEntry(
                action=action,
                actor_user_id=actor_user_id,
                target_email=normalize_email(target_email) or None,
                details=dict(metadata or {}),
            )
            db.session.add(entry)
            db.session.commit()
            return
        except (SQLAlchemyError, TypeError, ValueError):
            db.session.rollback()
            logger.warning(
                "Failed to record activity %s (attempt %s/%s)",
                action,
                attempt,
                _ATTEMPTS,
                exc_info=True,
            )
    logger.error("Dropping activity log entry %s for %s", action, target_email)


def recent(limit: int = 50, action: str | None = None) -> list[ActivityLogEntry]:
    """Return the newest entries, optionally filtered by action."""

    query = ActivityLogEntry.query
    if action:
        query = query.filter(ActivityLogEntry.action == action)
    return (
        query.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
        .all()
    )
