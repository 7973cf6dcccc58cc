"""Marketing-lead pipeline.

Status graph (forward only)::

    new -> contacted -> in_progress -> verification_sent -> converted
      \\________\\_____________\\_______________\\-> closed

``verification_sent`` and ``converted`` are only reachable through
``send_verification`` and ``mark_converted_by_email``; staff cannot set them
by hand.
"""

from __future__ import annotations

import sqlalchemy as sa
from werkzeug.exceptions import BadRequest

from errors import EmailAlreadyExists, InvalidStatusTransition, NotFound
from models import db
from models.lead import ADMISSION_STATUSES, LEAD_STATUSES, Lead, can_transition
from models.user import User, normalize_email
from services import activity, identity, verification
from utils.clock import utcnow

REQUIRED_FIELDS = ("full_name", "email", "study_country", "intake", "loan_range")
OPTIONAL_FIELDS = ("phone", "university_preference", "city")
MANUAL_STATUSES = frozenset({"contacted", "in_progress", "closed"})
MAX_PER_PAGE = 100
_UNCHANGED = object()


def _clean(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def submit(fields: dict) -> Lead:
    """Create a lead in ``new`` from an eligibility-form submission."""

    data = {key: _clean(fields.get(key)) for key in REQUIRED_FIELDS + OPTIONAL_FIELDS}
    missing = [key for key in REQUIRED_FIELDS if not data[key]]
    if missing:
        raise BadRequest("Missing required fields: {}.".format(", ".join(sorted(missing))))

    data["email"] = identity.validate_email(data["email"])
    if not 2 <= len(data["full_name"]) <= 120:
        raise BadRequest("full_name must be between 2 and 120 characters.")

    admission_status = _clean(fields.get("admission_status")) or "not_applied"
    if admission_status not in ADMISSION_STATUSES:
        raise BadRequest(
            "admission_status must be one of: {}.".format(", ".join(ADMISSION_STATUSES))
        )

    lead = Lead(status="new", admission_status=admission_status, **data)
    db.session.add(lead)
    db.session.commit()

    activity.record(
        "lead_submitted",
        target_email=lead.email,
        metadata={"lead_id": lead.id, "study_country": lead.study_country},
    )
    return lead


def get_lead(lead_id: int) -> Lead:
    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise NotFound("Lead not found.")
    return lead


def list_leads(
    search: str | None = None,
    status: str | None = None,
    study_country: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = sa.select(Lead)
    if status:
        if status not in LEAD_STATUSES:
            raise BadRequest("Invalid status filter.")
        query = query.where(Lead.status == status)
    if study_country:
        query = query.where(sa.func.lower(Lead.study_country) == study_country.strip().lower())
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.where(
            sa.or_(
                sa.func.lower(Lead.full_name).like(like),
                Lead.email.like(like),
                sa.func.lower(sa.func.coalesce(Lead.phone, "")).like(like),
            )
        )

    page = max(page, 1)
    per_page = min(max(per_page, 1), MAX_PER_PAGE)
    pagination = db.paginate(
        query.order_by(Lead.created_at.desc(), Lead.id.desc()),
        page=page,
        per_page=per_page,
        error_out=False,
    )
    return {
        "leads": pagination.items,
        "total": pagination.total,
        "page": page,
        "per_page": per_page,
    }


def _transition_error(lead: Lead, target: str, message: str | None = None) -> InvalidStatusTransition:
    return InvalidStatusTransition(
        message or f"Cannot move a lead from '{lead.status}' to '{target}'.",
        current_status=lead.status,
        requested_status=target,
    )


def _record_status_change(lead: Lead, previous: str, actor: User | None) -> None:
    activity.record(
        "lead_status_changed",
        actor_user_id=actor.id if actor else None,
        target_email=lead.email,
        metadata={"lead_id": lead.id, "from": previous, "to": lead.status},
    )


def _planned_status(lead: Lead, mark_contacted: bool, status: str | None) -> str:
    """Validate a staff edit against the status graph and return the final status."""

    planned = lead.status
    if mark_contacted and planned != "contacted":
        if not can_transition(planned, "contacted"):
            raise _transition_error(lead, "contacted")
        planned = "contacted"

    if status is None or status == planned:
        return planned
    if status not in LEAD_STATUSES:
        raise BadRequest("status must be one of: {}.".format(", ".join(LEAD_STATUSES)))
    if status not in MANUAL_STATUSES:
        raise _transition_error(lead, status, f"Status '{status}' is set by the verification workflow.")
    if not can_transition(planned, status):
        raise _transition_error(lead, status)
    return status


def update_lead(
    lead: Lead,
    actor: User,
    *,
    mark_contacted: bool = False,
    status: str | None = None,
    notes=_UNCHANGED,
) -> Lead:
    """Apply a staff edit as one unit: either every change is saved or none is.

    ``mark_contacted`` moves ``new`` to ``contacted`` and stamps the contact
    time, refreshing it if the lead is already contacted. ``status`` must be
    a manual status reachable from the resulting state; repeating the
    current status is a no-op.
    """

    previous = lead.status
    planned = _planned_status(lead, mark_contacted, status)

    lead.status = planned
    if mark_contacted or (planned == "contacted" and planned != previous):
        lead.last_contacted_at = utcnow()
    if notes is not _UNCHANGED:
        lead.notes = _clean(notes)
    db.session.commit()

    if mark_contacted:
        activity.record(
            "lead_contacted",
            actor_user_id=actor.id,
            target_email=lead.email,
            metadata={"lead_id": lead.id, "contacted_by": actor.email},
        )
    if previous != lead.status:
        _record_status_change(lead, previous, actor)
    if notes is not _UNCHANGED:
        activity.record(
            "lead_notes_updated",
            actor_user_id=actor.id,
            target_email=lead.email,
            metadata={"lead_id": lead.id},
        )
    return lead


def mark_contacted(lead: Lead, actor: User) -> Lead:
    return update_lead(lead, actor, mark_contacted=True)


def set_status(lead: Lead, status: str, actor: User) -> Lead:
    """Staff-driven transition, validated against the status graph."""

    return update_lead(lead, actor, status=status)


def update_notes(lead: Lead, notes: str | None, actor: User) -> Lead:
    return update_lead(lead, actor, notes=notes)


def send_verification(lead: Lead, actor: User) -> str:
    """Invite the lead into the verification flow.

    Reuses an existing account for the lead's email, so a lead may be
    re-invited. The lead becomes ``verification_sent``.
    """

    if lead.status != "verification_sent" and not can_transition(lead.status, "verification_sent"):
        raise _transition_error(
            lead, "verification_sent", f"Cannot send verification for a lead in '{lead.status}'."
        )

    user = identity.find_by_email(lead.email)
    created = False
    if user is None:
        try:
            user = identity.create_pending(lead.full_name, lead.email, lead.phone)
            created = True
        except EmailAlreadyExists:
            # registered concurrently; invite that account instead
            user = identity.find_by_email(lead.email)
            if user is None:
                raise
    if created:
        activity.record(
            "user_registered",
            actor_user_id=actor.id,
            target_email=user.email,
            metadata={"method": "lead", "lead_id": lead.id},
        )

    verification.request_verification(user, actor_user_id=actor.id)

    previous = lead.status
    lead.status = "verification_sent"
    lead.verification_sent_at = utcnow()
    lead.verification_sent_by = actor.email
    db.session.commit()

    activity.record(
        "lead_verification_sent",
        actor_user_id=actor.id,
        target_email=lead.email,
        metadata={"lead_id": lead.id, "user_id": user.id, "account_created": created},
    )
    if previous != lead.status:
        _record_status_change(lead, previous, actor)

    if created:
        return f"Verification email sent to {lead.email}. An account was created for this lead."
    return f"Verification email sent to {lead.email}."


def mark_converted_by_email(user: User) -> list[Lead]:
    """Convert every lead awaiting verification for ``user``'s email."""

    email = normalize_email(user.email)
    pending = Lead.query.filter(
        Lead.email == email, Lead.status == "verification_sent"
    ).all()
    if not pending:
        return []

    now = utcnow()
    for lead in pending:
        lead.status = "converted"
        lead.converted_user_id = user.id
        lead.converted_at = now
    db.session.commit()

    for lead in pending:
        activity.record(
            "lead_converted",
            actor_user_id=user.id,
            target_email=email,
            metadata={"lead_id": lead.id, "user_id": user.id},
        )
    return pending
