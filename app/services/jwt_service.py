"""
JWT Service — committee access tokens and media upload grants.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Upload grant:  60 seconds (configurable via UPLOAD_GRANT_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <member_id>,
    "committee_role": "editor" | "chief_editor",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Token payload (upload):
{
    "sub": <member_id>,
    "type": "upload",
    "storage_path": "questions/<parent_id>/<file_id>.<ext>",
    "file_id": <file_id>,
    "stage_id" | "question_id": <parent_id>,
    "mime_type": ..., "file_size": ...,
    "iat", "exp", "jti"
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
DEFAULT_UPLOAD_EXPIRES = 60        # 1 minute
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_upload_expires():
    return current_app.config.get("UPLOAD_GRANT_EXPIRES", DEFAULT_UPLOAD_EXPIRES)


def _encode(payload: dict, expires_in: int) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(payload)
    payload.update({
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(member_id: str, committee_role: str) -> str:
    """Generate a short-lived access token for a committee member."""
    return _encode(
        {"sub": member_id, "committee_role": committee_role, "type": "access"},
        _get_access_expires(),
    )


def generate_upload_grant(member_id: str, claims: dict) -> str:
    """Sign an upload grant describing exactly one pending file."""
    payload = {"sub": member_id, "type": "upload"}
    payload.update(claims)
    return _encode(payload, _get_upload_expires())


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    # Verify token type
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def decode_upload_grant(token: str) -> dict:
    return decode_token(token, expected_type="upload")
