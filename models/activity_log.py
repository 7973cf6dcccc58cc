"""Append-only audit trail model."""

from utils.clock import isoformat, utcnow

from . import db


class ActivityLogEntry(db.Model):
    """A sensitive action recorded for auditing. Rows are never updated."""

    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    target_email = db.Column(db.String(255), nullable=True, index=True)
    details = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "target_email": self.target_email,
            "metadata": self.details or {},
            "created_at": isoformat(self.created_at),
        }
