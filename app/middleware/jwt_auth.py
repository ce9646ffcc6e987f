"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.member_id.

Every /api/v1/ route except health checks expects
``Authorization: Bearer <access token>``.  The middleware only resolves the
caller; blueprints decide whether an anonymous request is rejected (401).

    g.member_id       sub claim of a valid access token, else None
    g.committee_role  "editor" | "chief_editor" from the token, else None
    g.auth_error      "expired" | "invalid" when a token was sent but rejected
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.member_id = None
        g.committee_role = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            g.auth_error = "expired"
            return
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            g.auth_error = "invalid"
            return

        g.member_id = payload.get("sub")
        g.committee_role = payload.get("committee_role")
