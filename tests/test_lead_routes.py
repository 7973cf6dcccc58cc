"""Tests for the lead endpoints."""

from __future__ import annotations

from flask.testing import FlaskClient

LEAD = {
    "full_name": "Bob Builder",
    "email": "bob@x.com",
    "study_country": "Germany",
    "intake": "Fall 2027",
    "loan_range": "10-20 lakh",
}


def _submit(client: FlaskClient, **overrides) -> dict:
    response = client.post("/leads", json={**LEAD, **overrides})
    assert response.status_code == 201
    return response.get_json()["lead"]


def test_public_submission_and_staff_listing(client: FlaskClient, make_user, auth_headers):
    lead = _submit(client)
    assert lead["status"] == "new"
    assert lead["admission_status"] == "not_applied"

    assert client.get("/leads").status_code == 401
    assert client.get("/leads", headers=auth_headers(make_user("student@x.com"))).status_code == 403

    admin_headers = auth_headers(make_user("admin@x.com", role="admin"))
    response = client.get("/leads", query_string={"status": "new"}, headers=admin_headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["total"] == 1
    assert payload["leads"][0]["email"] == "bob@x.com"

    response = client.get(f"/leads/{lead['id']}", headers=admin_headers)
    assert response.get_json()["lead"]["full_name"] == "Bob Builder"
    assert client.get("/leads/999", headers=admin_headers).status_code == 404


def test_missing_fields_are_rejected(client: FlaskClient):
    response = client.post("/leads", json={"full_name": "Bob Builder"})
    assert response.status_code == 400
    assert "email" in response.get_json()["detail"]


def test_patch_lead(client: FlaskClient, make_user, auth_headers):
    lead_id = _submit(client)["id"]
    headers = auth_headers(make_user("admin@x.com", role="admin"))

    response = client.patch(f"/leads/{lead_id}", json={"mark_contacted": True, "notes": "Called"}, headers=headers)
    assert response.status_code == 200
    lead = response.get_json()["lead"]
    assert lead["status"] == "contacted"
    assert lead["notes"] == "Called"
    assert lead["last_contacted_at"]

    response = client.patch(f"/leads/{lead_id}", json={"status": "converted"}, headers=headers)
    assert response.status_code == 409
    payload = response.get_json()
    assert payload["code"] == "INVALID_STATUS_TRANSITION"
    assert payload["current_status"] == "contacted"

    response = client.patch(f"/leads/{lead_id}", json={"status": "closed"}, headers=headers)
    assert response.get_json()["lead"]["status"] == "closed"

    response = client.patch(f"/leads/{lead_id}", json={"status": "contacted"}, headers=headers)
    assert response.status_code == 409

    assert client.patch(f"/leads/{lead_id}", json={"other": 1}, headers=headers).status_code == 400


def test_send_verification_and_conversion(client: FlaskClient, make_user, auth_headers, last_mailed_token):
    lead_id = _submit(client, email="Bob@X.com")["id"]
    headers = auth_headers(make_user("admin@x.com", role="admin"))

    response = client.post(f"/leads/{lead_id}/send-verification", headers=headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["lead"]["status"] == "verification_sent"
    assert "bob@x.com" in payload["message"]

    verify = client.get("/auth/verify", query_string={"token": last_mailed_token("bob@x.com")})
    assert verify.status_code == 200
    user_id = verify.get_json()["user"]["id"]

    lead = client.get(f"/leads/{lead_id}", headers=headers).get_json()["lead"]
    assert lead["status"] == "converted"
    assert lead["converted_user_id"] == user_id

    response = client.post(f"/leads/{lead_id}/send-verification", headers=headers)
    assert response.status_code == 409


def test_failed_patch_leaves_lead_untouched(client: FlaskClient, make_user, auth_headers):
    lead_id = _submit(client)["id"]
    headers = auth_headers(make_user("admin@x.com", role="admin"))

    response = client.patch(
        f"/leads/{lead_id}", json={"mark_contacted": True, "status": "new", "notes": "Called"}, headers=headers
    )
    assert response.status_code == 409

    lead = client.get(f"/leads/{lead_id}", headers=headers).get_json()["lead"]
    assert lead["status"] == "new"
    assert lead["last_contacted_at"] is None
    assert lead["notes"] is None
