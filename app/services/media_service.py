"""
Question media service — the metadata side of the two-phase upload flow.

Phase 1  request_upload_grant: validate the declared file and its parent,
         reserve a scoped storage path and hand back a signed grant.
Phase 2  confirm_upload: after the bytes were PUT to storage out-of-band,
         verify the grant and persist a MediaAttachment row.

Byte transfer and signed storage URLs belong to the storage provider and
are not handled here.  The merge step calls reassign_media() to move
ownership from a staged question to its live counterpart.
"""

from __future__ import annotations

import logging
import uuid

import jwt
from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, InvalidReferenceError, NotFoundError, ValidationError
from app.models import db
from app.models.catalog import CompetencyQuestion
from app.models.committee import CommitteeMember
from app.models.media import MediaAttachment
from app.models.staging import StagedQuestion
from app.services import jwt_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _validate_file(file_name: str | None, mime_type: str | None, file_size) -> tuple[str, str, int]:
    file_name = (file_name or "").strip()
    mime_type = (mime_type or "").strip().lower()
    if not file_name or not mime_type or not file_size:
        raise ValidationError(
            "fileName, mimeType and fileSize are required",
            details={"fields": ["fileName", "mimeType", "fileSize"]},
        )
    try:
        file_size = int(file_size)
    except (TypeError, ValueError):
        raise ValidationError("fileSize must be an integer", details={"fileSize": "invalid"})
    if file_size <= 0:
        raise ValidationError("fileSize must be positive", details={"fileSize": "invalid"})

    allowed = current_app.config["MEDIA_ALLOWED_MIME_TYPES"]
    if mime_type not in allowed:
        raise ValidationError(
            "File type not allowed",
            details={"mimeType": mime_type, "allowed": list(allowed)},
        )
    max_size = current_app.config["MEDIA_MAX_FILE_SIZE"]
    if file_size > max_size:
        raise ValidationError(
            f"File exceeds {max_size // (1024 * 1024)}MB limit",
            details={"fileSize": file_size, "max": max_size},
        )
    return file_name, mime_type, file_size


def _validate_parent(stage_id: str | None, question_id: str | None) -> tuple[str | None, str | None]:
    """Exactly one parent, and it must exist."""
    if bool(stage_id) == bool(question_id):
        raise ValidationError(
            "Provide either stageId or questionId, not both",
            details={"stageId": stage_id, "questionId": question_id},
        )
    if stage_id and db.session.get(StagedQuestion, stage_id) is None:
        raise InvalidReferenceError("StagedQuestion", stage_id)
    if question_id and db.session.get(CompetencyQuestion, question_id) is None:
        raise InvalidReferenceError("CompetencyQuestion", question_id)
    return stage_id or None, question_id or None


def _extension(file_name: str) -> str:
    if "." not in file_name:
        return "bin"
    return file_name.rsplit(".", 1)[-1].lower() or "bin"


# ── Public API ─────────────────────────────────────────────────────────────────


def request_upload_grant(
    actor: CommitteeMember,
    file_name: str,
    mime_type: str,
    file_size,
    stage_id: str | None = None,
    question_id: str | None = None,
) -> dict:
    """Validate an upload request and return a signed, short-lived grant.

    Returns:
        {"uploadToken", "storagePath", "fileId", "bucket", "expiresIn"}
    """
    file_name, mime_type, file_size = _validate_file(file_name, mime_type, file_size)
    stage_id, question_id = _validate_parent(stage_id, question_id)

    parent_id = stage_id or question_id
    file_id = str(uuid.uuid4())
    storage_path = f"questions/{parent_id}/{file_id}.{_extension(file_name)}"

    claims = {
        "file_id": file_id,
        "storage_path": storage_path,
        "mime_type": mime_type,
        "file_size": file_size,
    }
    if stage_id:
        claims["stage_id"] = stage_id
    else:
        claims["question_id"] = question_id

    token = jwt_service.generate_upload_grant(actor.id, claims)
    logger.info(
        "Upload grant issued",
        extra={"event_type": "media.grant", "member_id": actor.id, "subject_id": parent_id},
    )
    return {
        "uploadToken": token,
        "storagePath": storage_path,
        "fileId": file_id,
        "bucket": current_app.config["MEDIA_BUCKET"],
        "expiresIn": current_app.config["UPLOAD_GRANT_EXPIRES"],
    }


def confirm_upload(
    actor: CommitteeMember,
    upload_token: str,
    file_name: str,
    mime_type: str,
    file_size,
) -> MediaAttachment:
    """Persist the metadata row for a completed upload.

    The grant fixes the storage path, parent, MIME type and size; the
    confirmation must match it and come from the member it was issued to.
    """
    if not upload_token:
        raise ValidationError("uploadToken is required", details={"uploadToken": "required"})
    try:
        grant = jwt_service.decode_upload_grant(upload_token)
    except jwt.ExpiredSignatureError:
        raise ValidationError("Upload grant has expired", details={"uploadToken": "expired"})
    except jwt.InvalidTokenError:
        raise ValidationError("Upload grant is invalid", details={"uploadToken": "invalid"})

    if grant.get("sub") != actor.id:
        raise ValidationError("Upload grant was issued to another member", details={"uploadToken": "foreign"})

    file_name, mime_type, file_size = _validate_file(file_name, mime_type, file_size)
    if mime_type != grant.get("mime_type") or file_size != grant.get("file_size"):
        raise ValidationError(
            "Confirmed file does not match the upload grant",
            details={"mimeType": mime_type, "fileSize": file_size},
        )

    # The parent may have been merged or rejected since the grant was issued.
    stage_id, question_id = _validate_parent(grant.get("stage_id"), grant.get("question_id"))

    media = MediaAttachment(
        id=grant["file_id"],
        staged_question_id=stage_id,
        question_id=question_id,
        file_name=file_name,
        mime_type=mime_type,
        file_size=file_size,
        storage_path=grant["storage_path"],
        uploaded_by=actor.id,
    )
    db.session.add(media)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("MediaAttachment", "storage_path", grant["storage_path"])
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Media confirm failed storage_path=%s", grant["storage_path"])
        raise

    logger.info(
        "Upload confirmed",
        extra={
            "event_type": "media.confirmed",
            "member_id": actor.id,
            "subject_id": stage_id or question_id,
        },
    )
    return media


def get_media(file_id: str) -> MediaAttachment:
    media = db.session.get(MediaAttachment, file_id)
    if media is None:
        raise NotFoundError(resource="MediaAttachment", resource_id=file_id)
    return media


def list_media(stage_id: str | None = None, question_id: str | None = None) -> list[MediaAttachment]:
    """Attachments of one staged or live question, oldest first.

    Raises:
        ValidationError: neither or both parents given.
    """
    if bool(stage_id) == bool(question_id):
        raise ValidationError(
            "Exactly one of stageId or questionId is required",
            details={"stageId": stage_id, "questionId": question_id},
        )
    stmt = select(MediaAttachment).order_by(MediaAttachment.created_at)
    if stage_id:
        stmt = stmt.where(MediaAttachment.staged_question_id == stage_id)
    if question_id:
        stmt = stmt.where(MediaAttachment.question_id == question_id)
    return list(db.session.execute(stmt).scalars())


def reassign_media(from_stage_id: str, to_question_id: str) -> int:
    """Move every attachment of a staged question to a live question.

    Runs inside the caller's transaction (merge); returns the row count.
    """
    result = db.session.execute(
        update(MediaAttachment)
        .where(MediaAttachment.staged_question_id == from_stage_id)
        .values(staged_question_id=None, question_id=to_question_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def attach_uploaded_media(
    actor: CommitteeMember,
    media_ids: list[str],
    stage_id: str | None = None,
    question_id: str | None = None,
) -> list[MediaAttachment]:
    """Re-associate the caller's own attachments to a newly submitted question.

    Only media still parked on a staged question the caller proposed may
    move; media on a live question stays put until a merge.  Runs inside
    the caller's transaction (submission).

    Raises:
        InvalidReferenceError: an id is unknown, uploaded by someone else,
            or not owned by one of the caller's staged questions.
    """
    if not media_ids:
        return []
    if not isinstance(media_ids, (list, tuple)) or not all(isinstance(m, str) for m in media_ids):
        raise ValidationError("mediaIds must be a list of media ids", details={"mediaIds": "invalid"})

    rows = {
        m.id: m
        for m in db.session.execute(
            select(MediaAttachment).where(MediaAttachment.id.in_(list(media_ids)))
        ).scalars()
    }
    stage_ids = {m.staged_question_id for m in rows.values() if m.staged_question_id}
    proposers = dict(db.session.execute(
        select(StagedQuestion.id, StagedQuestion.proposer_id).where(StagedQuestion.id.in_(list(stage_ids)))
    ).all()) if stage_ids else {}

    attached = []
    for media_id in dict.fromkeys(media_ids):
        media = rows.get(media_id)
        if (
            media is None
            or media.uploaded_by != actor.id
            or media.question_id is not None
            or proposers.get(media.staged_question_id) != actor.id
        ):
            raise InvalidReferenceError("MediaAttachment", media_id)
        media.staged_question_id = stage_id
        media.question_id = question_id
        attached.append(media)
    return attached
