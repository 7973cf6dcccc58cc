"""Leads blueprint: public eligibility form and the staff pipeline."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from extensions import limiter
from services import leads
from utils.authorization import Principal, authorize
from utils.request_validation import parse_bool, parse_json_request, parse_positive_int

leads_bp = Blueprint("leads", __name__)


def _submission_rate_limit() -> str:
    return current_app.config.get("LEAD_RATE_LIMIT", "20 per hour")


@leads_bp.route("", methods=["POST"])
@limiter.limit(_submission_rate_limit)
def submit_lead():
    """Accept an anonymous eligibility-form submission."""

    payload = parse_json_request(request)
    lead = leads.submit(payload)
    return jsonify({"lead": lead.to_dict()}), HTTPStatus.CREATED


@leads_bp.route("", methods=["GET"])
@authorize("leads.list")
def list_leads(principal: Principal):
    result = leads.list_leads(
        search=request.args.get("search"),
        status=request.args.get("status") or None,
        study_country=request.args.get("study_country") or None,
        page=parse_positive_int(request.args.get("page"), 1, "page"),
        per_page=parse_positive_int(request.args.get("per_page"), 20, "per_page"),
    )
    result["leads"] = [lead.to_dict() for lead in result["leads"]]
    return jsonify(result)


@leads_bp.route("/<int:lead_id>", methods=["GET"])
@authorize("leads.read")
def get_lead(principal: Principal, lead_id: int):
    return jsonify({"lead": leads.get_lead(lead_id).to_dict()})


@leads_bp.route("/<int:lead_id>", methods=["PATCH"])
@authorize("leads.update")
def update_lead(principal: Principal, lead_id: int):
    """Record contact, move the status forward, or edit notes."""

    payload = parse_json_request(request)
    lead = leads.get_lead(lead_id)

    mark_contacted = parse_bool(payload.get("mark_contacted")) or False
    status = payload.get("status")
    if not mark_contacted and status is None and "notes" not in payload:
        raise BadRequest("Provide at least one of: mark_contacted, status, notes.")

    changes = {"mark_contacted": mark_contacted, "status": status}
    if "notes" in payload:
        changes["notes"] = payload["notes"]
    leads.update_lead(lead, principal.user, **changes)

    return jsonify({"lead": lead.to_dict()})


@leads_bp.route("/<int:lead_id>/send-verification", methods=["POST"])
@authorize("leads.send_verification")
def send_verification(principal: Principal, lead_id: int):
    """Invite the lead to verify their email and activate an account."""

    lead = leads.get_lead(lead_id)
    message = leads.send_verification(lead, principal.user)
    return jsonify({"message": message, "lead": lead.to_dict()})
