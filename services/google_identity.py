"""Server-side verification of Google ID tokens."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from errors import TransientError, Unauthenticated

GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


@dataclass(frozen=True)
class GoogleProfile:
    subject: str
    email: str
    name: str
    picture: str | None


def verify_google_id_token(raw_token: str) -> GoogleProfile:
    """Check signature, audience and issuer, then return the trusted claims."""

    client_id = current_app.config.get("GOOGLE_CLIENT_ID")
    if not client_id:
        raise Unauthenticated("Google sign-in is not configured.")
    if not raw_token:
        raise Unauthenticated("A Google ID token is required.")

    try:
        claims = google_id_token.verify_oauth2_token(
            raw_token, google_requests.Request(), client_id
        )
    except google_exceptions.TransportError as exc:
        raise TransientError("Could not reach Google to verify the sign-in.") from exc
    except (ValueError, google_exceptions.GoogleAuthError) as exc:
        raise Unauthenticated("Invalid Google ID token.") from exc

    if claims.get("iss") not in GOOGLE_ISSUERS:
        raise Unauthenticated("Invalid Google ID token.")

    subject = claims.get("sub")
    email = claims.get("email")
    if not subject or not email:
        raise Unauthenticated("Google ID token is missing the account identity.")

    return GoogleProfile(
        subject=subject,
        email=email,
        name=claims.get("name") or email.split("@")[0],
        picture=claims.get("picture"),
    )
