"""One-time token model."""

from utils.clock import utcnow

from . import db


TOKEN_PURPOSES = ("verify_email", "reset_password")


class VerificationToken(db.Model):
    """A single-use, time-bound credential. Only the SHA-256 hash is stored."""

    __tablename__ = "verification_tokens"

    id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    purpose = db.Column(db.Enum(*TOKEN_PURPOSES, name="token_purpose"), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    consumed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User")

    def is_usable(self, now=None) -> bool:
        now = now or utcnow()
        return self.consumed_at is None and now < self.expires_at

    def __repr__(self) -> str:
        return (
            f"<VerificationToken id={self.id} user_id={self.user_id} "
            f"purpose={self.purpose}>"
        )
