"""Lead model and its status graph."""

from utils.clock import isoformat, utcnow

from . import db


LEAD_STATUSES = (
    "new",
    "contacted",
    "in_progress",
    "verification_sent",
    "converted",
    "closed",
)
ADMISSION_STATUSES = ("not_applied", "applied", "confirmed")

# Order of the forward pipeline; "closed" sits outside it.
PIPELINE_ORDER = ("new", "contacted", "in_progress", "verification_sent", "converted")
TERMINAL_STATUSES = frozenset({"converted", "closed"})


def can_transition(current: str, target: str) -> bool:
    """Return True if ``current -> target`` moves forward along the pipeline."""

    if current in TERMINAL_STATUSES or target not in LEAD_STATUSES:
        return False
    if target == "closed":
        return True
    return PIPELINE_ORDER.index(target) > PIPELINE_ORDER.index(current)


class Lead(db.Model):
    """An eligibility-form submission not yet linked to an account."""

    __tablename__ = "leads"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    study_country = db.Column(db.String(80), nullable=False, index=True)
    admission_status = db.Column(
        db.Enum(*ADMISSION_STATUSES, name="lead_admission_status"),
        nullable=False,
        default="not_applied",
    )
    intake = db.Column(db.String(40), nullable=False)
    university_preference = db.Column(db.String(255), nullable=True)
    loan_range = db.Column(db.String(60), nullable=False)
    city = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(*LEAD_STATUSES, name="lead_status"),
        nullable=False,
        default="new",
        index=True,
    )
    last_contacted_at = db.Column(db.DateTime, nullable=True)
    verification_sent_at = db.Column(db.DateTime, nullable=True)
    verification_sent_by = db.Column(db.String(255), nullable=True)
    converted_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    converted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        """Serialize the lead."""

        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "study_country": self.study_country,
            "admission_status": self.admission_status,
            "intake": self.intake,
            "university_preference": self.university_preference,
            "loan_range": self.loan_range,
            "city": self.city,
            "notes": self.notes,
            "status": self.status,
            "last_contacted_at": isoformat(self.last_contacted_at),
            "verification_sent_at": isoformat(self.verification_sent_at),
            "verification_sent_by": self.verification_sent_by,
            "converted_user_id": self.converted_user_id,
            "converted_at": isoformat(self.converted_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Lead id={self.id} email={self.email} status={self.status}>"
