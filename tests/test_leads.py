"""Tests for the lead pipeline."""

from __future__ import annotations

import pytest
from werkzeug.exceptions import BadRequest

from errors import InvalidStatusTransition
from models import db
from models.lead import Lead, can_transition
from models.user import User
from models.verification_token import VerificationToken
from services import identity, leads, verification


def _lead_fields(**overrides) -> dict:
    fields = {
        "full_name": "Bob Builder",
        "email": "Bob@X.com",
        "phone": "+15550100",
        "study_country": "Germany",
        "intake": "Fall 2027",
        "loan_range": "10-20 lakh",
        "admission_status": "applied",
    }
    fields.update(overrides)
    return fields


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("new", "contacted", True),
        ("new", "verification_sent", True),
        ("contacted", "in_progress", True),
        ("in_progress", "contacted", False),
        ("verification_sent", "converted", True),
        ("verification_sent", "closed", True),
        ("converted", "contacted", False),
        ("converted", "closed", False),
        ("closed", "new", False),
        ("new", "archived", False),
    ],
)
def test_status_graph(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_submit_creates_new_lead(app):
    with app.app_context():
        lead = leads.submit(_lead_fields())

        assert lead.status == "new"
        assert lead.email == "bob@x.com"
        assert lead.admission_status == "applied"


def test_submit_requires_fields(app):
    with app.app_context():
        with pytest.raises(BadRequest):
            leads.submit(_lead_fields(study_country=""))
        with pytest.raises(BadRequest):
            leads.submit(_lead_fields(email="not-an-email"))
        with pytest.raises(BadRequest):
            leads.submit(_lead_fields(admission_status="maybe"))


def test_converted_lead_cannot_move_back(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())
        lead.status = "converted"
        db.session.commit()

        with pytest.raises(InvalidStatusTransition):
            leads.set_status(lead, "contacted", admin)
        with pytest.raises(InvalidStatusTransition):
            leads.mark_contacted(lead, admin)


def test_workflow_statuses_cannot_be_set_by_hand(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        for status in ("verification_sent", "converted"):
            with pytest.raises(InvalidStatusTransition):
                leads.set_status(lead, status, admin)
        assert lead.status == "new"


def test_mark_contacted_then_progress(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        leads.mark_contacted(lead, admin)
        assert lead.status == "contacted"
        assert lead.last_contacted_at is not None

        leads.set_status(lead, "in_progress", admin)
        with pytest.raises(InvalidStatusTransition):
            leads.set_status(lead, "contacted", admin)


def test_send_verification_creates_pending_user(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        message = leads.send_verification(lead, admin)

        user = User.query.filter_by(email="bob@x.com").one()
        assert "account was created" in message
        assert user.email_verified is False
        assert user.password_hash is None
        assert VerificationToken.query.filter_by(user_id=user.id, purpose="verify_email").count() == 1
        assert lead.status == "verification_sent"
        assert lead.verification_sent_by == "admin@example.com"


def test_send_verification_reuses_existing_account(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    existing_id = make_user("bob@x.com", verified=False, password=None)
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        message = leads.send_verification(lead, admin)
        leads.send_verification(lead, admin)

        assert "account was created" not in message
        assert User.query.filter_by(email="bob@x.com").count() == 1
        assert VerificationToken.query.filter_by(user_id=existing_id).count() == 1


def test_closed_lead_cannot_be_invited(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())
        leads.set_status(lead, "closed", admin)

        with pytest.raises(InvalidStatusTransition):
            leads.send_verification(lead, admin)


def test_verifying_email_converts_lead(app, make_user, last_mailed_token):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        lead = leads.submit(_lead_fields())
        lead_id = lead.id
        leads.send_verification(lead, db.session.get(User, admin_id))

    token = last_mailed_token("bob@x.com")
    with app.app_context():
        result = verification.complete_verification(token)

        lead = db.session.get(Lead, lead_id)
        assert lead.status == "converted"
        assert lead.converted_user_id == result["user"].id
        assert lead.converted_at is not None


def test_list_leads_filters_and_paginates(app):
    with app.app_context():
        leads.submit(_lead_fields(email="one@x.com"))
        leads.submit(_lead_fields(email="two@x.com", study_country="Canada"))
        leads.submit(_lead_fields(email="three@x.com", full_name="Carol Danvers"))

        assert leads.list_leads(study_country="canada")["total"] == 1
        assert leads.list_leads(search="carol")["total"] == 1

        page = leads.list_leads(page=2, per_page=2)
        assert page["total"] == 3
        assert len(page["leads"]) == 1

        with pytest.raises(BadRequest):
            leads.list_leads(status="archived")


def test_password_reset_also_converts_lead(app, make_user, last_mailed_token):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        lead = leads.submit(_lead_fields())
        lead_id = lead.id
        leads.send_verification(lead, db.session.get(User, admin_id))
        verification.request_reset("bob@x.com")

    token = last_mailed_token("bob@x.com")
    with app.app_context():
        user = verification.complete_reset(token, "Str0ng!Pass")

        lead = db.session.get(Lead, lead_id)
        assert user.email_verified is True
        assert lead.status == "converted"
        assert lead.converted_user_id == user.id


def test_rejected_edit_changes_nothing(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        with pytest.raises(InvalidStatusTransition):
            leads.update_lead(lead, admin, mark_contacted=True, status="new", notes="Called")

        db.session.expire_all()
        assert lead.status == "new"
        assert lead.last_contacted_at is None
        assert lead.notes is None


def test_combined_edit_is_applied_together(app, make_user):
    admin_id = make_user("admin@example.com", role="admin")
    with app.app_context():
        admin = db.session.get(User, admin_id)
        lead = leads.submit(_lead_fields())

        leads.update_lead(lead, admin, mark_contacted=True, status="in_progress", notes="Docs pending")

        assert lead.status == "in_progress"
        assert lead.last_contacted_at is not None
        assert lead.notes == "Docs pending"


def test_send_verification_survives_concurrent_registration(app, make_user, monkeypatch):
    admin_id = make_user("admin@example.com", role="admin")
    existing_id = make_user("bob@x.com", verified=False, password=None)
    real_find = identity.find_by_email
    lookups = []

    def stale_then_real(email):
        lookups.append(email)
        # the first two lookups run before the other registration is visible
        return None if len(lookups) <= 2 else real_find(email)

    with app.app_context():
        lead = leads.submit(_lead_fields())
        monkeypatch.setattr(identity, "find_by_email", stale_then_real)

        message = leads.send_verification(lead, db.session.get(User, admin_id))

        assert "account was created" not in message
        assert lead.status == "verification_sent"
        assert User.query.filter_by(email="bob@x.com").count() == 1
        assert VerificationToken.query.filter_by(user_id=existing_id).count() == 1
