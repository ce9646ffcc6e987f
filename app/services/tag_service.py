"""
Tag Catalog Service — chair-managed tag vocabulary.

Competencies (live and staged) reference tags by id.  The tag name is
display data only: renaming a tag never touches a competency row, and
deleting a tag removes its membership everywhere in the same transaction.

Uniqueness is case-insensitive and enforced twice: a pre-check that raises
ConflictError with a readable message, and the unique index on
``name_normalized`` for the concurrent case.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models import db
from app.models.catalog import Tag, competency_tags, normalize_tag_name
from app.models.committee import CommitteeMember
from app.models.staging import staged_competency_tags

logger = logging.getLogger(__name__)

MAX_TAG_NAME_LENGTH = 100


# ── Private helpers ────────────────────────────────────────────────────────────


def _require_chair(actor: CommitteeMember, action: str) -> None:
    if not actor.is_chair:
        raise PermissionDeniedError(action)


def _clean_name(name: str | None) -> str:
    clean = " ".join((name or "").split())
    if not clean:
        raise ValidationError("Tag name is required", details={"name": "required"})
    if len(clean) > MAX_TAG_NAME_LENGTH:
        raise ValidationError(
            f"Tag name must be ≤ {MAX_TAG_NAME_LENGTH} characters",
            details={"name": "too_long"},
        )
    return clean


def _assert_name_free(clean: str, exclude_id: str | None = None) -> None:
    stmt = select(Tag.id).where(Tag.name_normalized == normalize_tag_name(clean))
    if exclude_id is not None:
        stmt = stmt.where(Tag.id != exclude_id)
    if db.session.execute(stmt).first() is not None:
        raise ConflictError("Tag", "name", clean)


def _commit_tag(clean: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Tag", "name", clean)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Tag catalog write failed")
        raise


def _get_tag(tag_id: str) -> Tag:
    tag = db.session.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError(resource="Tag", resource_id=tag_id)
    return tag


# ── Public API ─────────────────────────────────────────────────────────────────


def list_tags() -> list[Tag]:
    return list(db.session.execute(select(Tag).order_by(Tag.name)).scalars())


def create_tag(actor: CommitteeMember, name: str) -> Tag:
    """Add a tag to the shared vocabulary.

    Raises:
        PermissionDeniedError: actor is not the chair.
        ValidationError: empty or overlong name.
        ConflictError: a tag with the same name (case-insensitive) exists.
    """
    _require_chair(actor, "create tags")
    clean = _clean_name(name)
    _assert_name_free(clean)

    tag = Tag(name=clean, name_normalized=normalize_tag_name(clean), created_by=actor.id)
    db.session.add(tag)
    _commit_tag(clean)

    logger.info(
        "Tag created",
        extra={"event_type": "tag.created", "member_id": actor.id, "subject_id": tag.id},
    )
    return tag


def rename_tag(actor: CommitteeMember, tag_id: str, new_name: str) -> Tag:
    """Rename a tag.  Competencies keep referencing it by id."""
    _require_chair(actor, "rename tags")
    tag = _get_tag(tag_id)
    clean = _clean_name(new_name)
    _assert_name_free(clean, exclude_id=tag.id)

    tag.name = clean
    tag.name_normalized = normalize_tag_name(clean)
    _commit_tag(clean)

    logger.info(
        "Tag renamed",
        extra={"event_type": "tag.renamed", "member_id": actor.id, "subject_id": tag.id},
    )
    return tag


def delete_tag(actor: CommitteeMember, tag_id: str) -> None:
    """Delete a tag and strip it from every live and staged competency."""
    _require_chair(actor, "delete tags")
    tag = _get_tag(tag_id)

    try:
        db.session.execute(delete(competency_tags).where(competency_tags.c.tag_id == tag.id))
        db.session.execute(
            delete(staged_competency_tags).where(staged_competency_tags.c.tag_id == tag.id)
        )
        db.session.delete(tag)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Tag delete failed tag_id=%s", tag_id)
        raise

    # Loaded competencies may still hold the tag in their collections.
    db.session.expire_all()

    logger.info(
        "Tag deleted",
        extra={"event_type": "tag.deleted", "member_id": actor.id, "subject_id": tag_id},
    )


def load_tags(tag_ids: list[str] | None) -> list[Tag]:
    """Resolve tag ids to Tag rows, preserving input order.

    Raises:
        ValidationError: tag_ids is not a list of strings.
        InvalidReferenceError: an id does not exist in the catalog.
    """
    if tag_ids is None:
        return []
    if not isinstance(tag_ids, (list, tuple)) or not all(isinstance(t, str) for t in tag_ids):
        raise ValidationError("tagIds must be a list of tag ids", details={"tagIds": "invalid"})

    unique_ids = list(dict.fromkeys(tag_ids))
    if not unique_ids:
        return []
    found = {
        t.id: t
        for t in db.session.execute(select(Tag).where(Tag.id.in_(unique_ids))).scalars()
    }
    for tid in unique_ids:
        if tid not in found:
            raise InvalidReferenceError("Tag", tid)
    return [found[tid] for tid in unique_ids]


def resolve_tag_names(tag_ids: list[str]) -> list[str]:
    """Current display names for tag ids; ids no longer in the catalog are dropped."""
    if not tag_ids:
        return []
    names = dict(db.session.execute(select(Tag.id, Tag.name).where(Tag.id.in_(tag_ids))).all())
    return [names[tid] for tid in tag_ids if tid in names]
