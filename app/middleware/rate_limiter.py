"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

COMMITTEE_LIMIT = "60/minute"


def member_or_ip_key():
    """Rate limit key: the authenticated member if known, else remote IP."""
    member_id = getattr(g, "member_id", None)
    if member_id:
        return f"member:{member_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per member, falling back to remote IP):
        - Committee, catalog and media endpoints: 60/minute
        - Health check:                  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("committee")
    if bp:
        limiter.limit(COMMITTEE_LIMIT, key_func=member_or_ip_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — committee: %s", COMMITTEE_LIMIT
    )
