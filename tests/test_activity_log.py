"""Tests for the append-only activity log."""

from __future__ import annotations

from sqlalchemy.exc import OperationalError

from models import db
from models.activity_log import ActivityLogEntry
from services import activity


def test_record_and_recent(app):
    with app.app_context():
        activity.record("user_login", actor_user_id=1, target_email="A@Example.com", metadata={"method": "password"})
        activity.record("user_registered", target_email="b@example.com")

        entries = activity.recent()
        assert [entry.action for entry in entries] == ["user_registered", "user_login"]
        assert entries[1].target_email == "a@example.com"
        assert entries[1].to_dict()["metadata"] == {"method": "password"}

        assert [entry.action for entry in activity.recent(action="user_login")] == ["user_login"]


def test_record_failure_is_swallowed(app, monkeypatch):
    calls = []

    def failing_commit():
        calls.append(1)
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    with app.app_context():
        monkeypatch.setattr(db.session, "commit", failing_commit)

        activity.record("user_login", target_email="a@example.com")

        assert len(calls) == 2
        monkeypatch.undo()
        assert ActivityLogEntry.query.count() == 0
