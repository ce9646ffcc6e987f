"""
Catalog ordering and live-catalog reads.

reorder() takes the full permutation of live competency ids and rewrites
``position`` to 1..N in one transaction.  Because ``position`` is unique,
rows are first parked on negative values and then moved to their final
slot, so no intermediate state collides.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    InvalidReferenceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import db
from app.models.catalog import Competency, CompetencyQuestion
from app.models.committee import CommitteeMember
from app.services import tag_service

logger = logging.getLogger(__name__)


def list_competencies() -> list[Competency]:
    return list(db.session.execute(
        select(Competency)
        .options(selectinload(Competency.tags))
        .order_by(Competency.position)
    ).scalars())


def list_questions(competency_id: str) -> list[CompetencyQuestion]:
    if db.session.get(Competency, competency_id) is None:
        raise NotFoundError(resource="Competency", resource_id=competency_id)
    return list(db.session.execute(
        select(CompetencyQuestion)
        .where(CompetencyQuestion.competency_id == competency_id)
        .options(selectinload(CompetencyQuestion.options))
        .order_by(CompetencyQuestion.created_at)
    ).scalars())


def reorder(actor: CommitteeMember, ordered_ids: list[str]) -> list[Competency]:
    """Persist a new display order for the whole catalog.

    Chair only.  The list must contain every live competency exactly once.

    Raises:
        PermissionDeniedError: actor is not the chair.
        ValidationError: not a list, duplicates, or missing/extra ids.
    """
    if not actor.is_chair:
        raise PermissionDeniedError("reorder the catalog")
    if not isinstance(ordered_ids, list) or not all(isinstance(i, str) for i in ordered_ids):
        raise ValidationError("order must be a list of competency ids", details={"order": "invalid"})
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("order contains duplicate ids", details={"order": "duplicates"})

    current = {
        cid: pos for cid, pos in db.session.execute(
            select(Competency.id, Competency.position).with_for_update()
        ).all()
    }
    missing = sorted(set(current) - set(ordered_ids))
    unknown = sorted(set(ordered_ids) - set(current))
    if missing or unknown:
        db.session.rollback()
        raise ValidationError(
            "order must list every competency exactly once",
            details={"missing": missing, "unknown": unknown},
        )

    try:
        for idx, cid in enumerate(ordered_ids, start=1):
            db.session.execute(
                update(Competency).where(Competency.id == cid).values(position=-idx)
                .execution_options(synchronize_session=False)
            )
        for idx, cid in enumerate(ordered_ids, start=1):
            db.session.execute(
                update(Competency).where(Competency.id == cid).values(position=idx)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Reorder failed")
        raise

    db.session.expire_all()
    logger.info(
        "Catalog reordered",
        extra={"event_type": "catalog.reordered", "member_id": actor.id, "count": len(ordered_ids)},
    )
    return list_competencies()


def set_competency_tags(actor: CommitteeMember, competency_id: str, tag_ids: list[str]) -> Competency:
    """Replace a live competency's tag set.

    Raises:
        PermissionDeniedError: actor is not the chair.
        NotFoundError: competency does not exist.
        InvalidReferenceError: a tag id does not exist.
    """
    if not actor.is_chair:
        raise PermissionDeniedError("edit competency tags")
    competency = db.session.get(Competency, competency_id)
    if competency is None:
        raise NotFoundError(resource="Competency", resource_id=competency_id)

    try:
        tags = tag_service.load_tags(tag_ids)
    except InvalidReferenceError:
        db.session.rollback()
        raise
    competency.tags = tags
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Tag assignment failed competency_id=%s", competency_id)
        raise

    logger.info(
        "Competency tags updated",
        extra={"event_type": "catalog.tags", "member_id": actor.id, "live_id": competency_id},
    )
    return competency
