"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database reachability and committee tables
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

_REQUIRED_TABLES = (
    "committee_members",
    "tags",
    "competencies",
    "competency_questions",
    "competencies_stage",
    "competency_questions_stage",
    "committee_ballots",
    "proposal_outcomes",
    "question_media",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Schema ───────────────────────────────────────────────────────
    if overall:
        existing = set(sa_inspect(db.engine).get_table_names())
        missing = [t for t in _REQUIRED_TABLES if t not in existing]
        if missing:
            checks["schema"] = {"status": "missing_tables", "missing": missing}
            overall = False
        else:
            checks["schema"] = {"status": "ok", "tables": len(_REQUIRED_TABLES)}

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Competency Committee Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
        "quorum": current_app.config.get("COMMITTEE_QUORUM"),
        "threshold": current_app.config.get("COMMITTEE_APPROVAL_THRESHOLD"),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
