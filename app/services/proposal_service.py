"""
Proposal Submission Service — the single entry point for new catalog content.

One submission path, parameterised by the caller's committee role:

    editor        → staged proposal (competencies_stage / competency_questions_stage),
                    decided later by committee ballots
    chief_editor  → live entry created immediately through catalog_writer,
                    i.e. a completed merge with zero ballots

Both paths validate identically; chair submissions leave no staged row and
no ballots behind.

Review-queue listings (staged proposals with tallies and the viewer's own
ballot) live here as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import InvalidReferenceError, ValidationError
from app.models import db
from app.models.catalog import DIFFICULTIES, OPTION_COUNT, Competency
from app.models.committee import CommitteeMember
from app.models.staging import StagedCompetency, StagedQuestion, StagedQuestionOption
from app.services import ballot_service, catalog_writer, media_service, tag_service
from app.services.tally import compute_tallies

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255

# Chair submissions append to the catalog; a concurrent append may take the
# same position, in which case the insert is retried.
_POSITION_ATTEMPTS = 3


@dataclass(frozen=True)
class SubmissionResult:
    id: str
    merged: bool

    def to_dict(self) -> dict:
        return {"id": self.id, "merged": self.merged}


# ── Validation ─────────────────────────────────────────────────────────────────


def _validate_competency(name, difficulty, justification) -> tuple[str, str, str | None]:
    name = (name or "").strip() if isinstance(name, str) or name is None else None
    if name is None:
        raise ValidationError("name must be a string", details={"name": "invalid"})
    if not name:
        raise ValidationError("Please enter a competency name.", details={"name": "required"})
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"name must be ≤ {MAX_NAME_LENGTH} characters", details={"name": "too_long"}
        )
    if difficulty not in DIFFICULTIES:
        raise ValidationError(
            f"Invalid difficulty '{difficulty}'. Must be one of: {', '.join(DIFFICULTIES)}",
            details={"difficulty": difficulty},
        )
    if justification is not None and not isinstance(justification, str):
        raise ValidationError("justification must be text", details={"justification": "invalid"})
    justification = (justification or "").strip() or None
    return name, difficulty, justification


def _validate_question(prompt_text, options, correct_index) -> tuple[str, list[tuple[str, bool]]]:
    prompt = prompt_text.strip() if isinstance(prompt_text, str) else ""
    if not prompt:
        raise ValidationError("Please enter the question text.", details={"promptText": "required"})

    if not isinstance(options, (list, tuple)) or len(options) != OPTION_COUNT:
        raise ValidationError(
            f"Exactly {OPTION_COUNT} answer options are required",
            details={"options": "count"},
        )
    bodies = [o.strip() if isinstance(o, str) else "" for o in options]
    if any(not b for b in bodies):
        raise ValidationError("Please fill all four answer options.", details={"options": "empty"})

    if isinstance(correct_index, bool) or not isinstance(correct_index, int) \
            or not 0 <= correct_index < OPTION_COUNT:
        raise ValidationError(
            f"correct option must be between 1 and {OPTION_COUNT}",
            details={"correctIndex": correct_index},
        )
    return prompt, [(body, idx == correct_index) for idx, body in enumerate(bodies)]


def _require_live_competency(competency_id) -> Competency:
    if not isinstance(competency_id, str) or not competency_id.strip():
        raise ValidationError("Please choose a competency.", details={"competencyId": "required"})
    competency = db.session.get(Competency, competency_id.strip())
    if competency is None:
        raise InvalidReferenceError("Competency", competency_id)
    return competency


# ── Submission ─────────────────────────────────────────────────────────────────


def _create_live_competency(name: str, difficulty: str, tag_ids: list[str]) -> str:
    for attempt in range(1, _POSITION_ATTEMPTS + 1):
        tags = tag_service.load_tags(tag_ids)
        try:
            competency = catalog_writer.materialize_competency(name, difficulty, tags)
            db.session.commit()
            return competency.id
        except IntegrityError:
            db.session.rollback()
            if attempt == _POSITION_ATTEMPTS:
                logger.error("Competency position still colliding after %d attempts", attempt)
                raise
            logger.warning("Competency position collision, retrying (attempt %d)", attempt)


def submit_competency(
    actor: CommitteeMember,
    name: str,
    difficulty: str,
    tag_ids: list[str] | None = None,
    justification: str | None = None,
) -> SubmissionResult:
    """Propose a competency, or add it directly when the actor is the chair.

    Raises:
        ValidationError: empty name, unknown difficulty, malformed tag list.
        InvalidReferenceError: a tag id does not exist.
    """
    name, difficulty, justification = _validate_competency(name, difficulty, justification)
    tags = tag_service.load_tags(tag_ids)

    if actor.is_chair:
        try:
            live_id = _create_live_competency(name, difficulty, [t.id for t in tags])
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Chair competency insert failed")
            raise
        logger.info(
            "Competency added by chair",
            extra={"event_type": "proposal.direct", "member_id": actor.id, "live_id": live_id},
        )
        return SubmissionResult(id=live_id, merged=True)

    staged = StagedCompetency(
        name=name,
        difficulty=difficulty,
        justification=justification,
        proposer_id=actor.id,
    )
    staged.tags = tags
    db.session.add(staged)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Competency proposal insert failed")
        raise

    logger.info(
        "Competency proposal staged",
        extra={"event_type": "proposal.staged", "member_id": actor.id, "subject_id": staged.id},
    )
    return SubmissionResult(id=staged.id, merged=False)


def submit_question(
    actor: CommitteeMember,
    competency_id: str,
    prompt_text: str,
    options: list[str],
    correct_index: int,
    media_ids: list[str] | None = None,
) -> SubmissionResult:
    """Propose a test question, or add it directly when the actor is the chair.

    Args:
        options: the four answer bodies, in display order (A–D).
        correct_index: 0-based index of the correct option.
        media_ids: attachments already uploaded by the actor to re-associate
            with the new question.

    Raises:
        ValidationError: empty prompt/options, wrong option count, bad index.
        InvalidReferenceError: target competency or a media id does not exist.
    """
    prompt, option_rows = _validate_question(prompt_text, options, correct_index)
    competency = _require_live_competency(competency_id)

    try:
        if actor.is_chair:
            question = catalog_writer.materialize_question(competency.id, prompt, option_rows)
            media_service.attach_uploaded_media(actor, media_ids, question_id=question.id)
            new_id, merged = question.id, True
        else:
            staged = StagedQuestion(
                competency_id=competency.id,
                prompt_text=prompt,
                proposer_id=actor.id,
            )
            staged.options = [
                StagedQuestionOption(sort_order=idx, body=body, is_correct=is_correct)
                for idx, (body, is_correct) in enumerate(option_rows)
            ]
            db.session.add(staged)
            db.session.flush()
            media_service.attach_uploaded_media(actor, media_ids, stage_id=staged.id)
            new_id, merged = staged.id, False
        db.session.commit()
    except (ValidationError, SQLAlchemyError) as exc:
        db.session.rollback()
        if isinstance(exc, SQLAlchemyError):
            logger.exception("Question submission failed competency_id=%s", competency_id)
        raise

    logger.info(
        "Question added by chair" if merged else "Question proposal staged",
        extra={
            "event_type": "proposal.direct" if merged else "proposal.staged",
            "member_id": actor.id,
            "subject_id": None if merged else new_id,
            "live_id": new_id if merged else None,
        },
    )
    return SubmissionResult(id=new_id, merged=merged)


# ── Review queue ───────────────────────────────────────────────────────────────


def list_staged_competencies(viewer: CommitteeMember) -> list[dict]:
    rows = list(db.session.execute(
        select(StagedCompetency).order_by(StagedCompetency.name)
    ).scalars())
    ids = [r.id for r in rows]
    tallies = compute_tallies(ids)
    mine = ballot_service.get_voter_ballots(viewer.id, ids)

    items = []
    for row in rows:
        d = row.to_dict()
        d["tag_names"] = tag_service.resolve_tag_names(row.tag_ids)
        d["tally"] = tallies[row.id].to_dict()
        d["my_vote"] = mine.get(row.id)
        items.append(d)
    return items


def list_staged_questions(viewer: CommitteeMember) -> list[dict]:
    rows = list(db.session.execute(
        select(StagedQuestion).order_by(StagedQuestion.created_at.desc())
    ).scalars())
    ids = [r.id for r in rows]
    tallies = compute_tallies(ids)
    mine = ballot_service.get_voter_ballots(viewer.id, ids)

    items = []
    for row in rows:
        d = row.to_dict()
        d["tally"] = tallies[row.id].to_dict()
        d["my_vote"] = mine.get(row.id)
        items.append(d)
    return items
