"""
Merge Coordinator — promotes a staged proposal into the live catalog.

Called synchronously after every ballot.  The check-and-act sequence

    claim subject → re-read staged row → recompute tally → create live entity
    → reassign media → delete ballots + staged row → commit

runs as one transaction.  Concurrency contract:

    - The claim is the INSERT of the subject's ``proposal_outcomes`` row,
      issued before anything else is written.  Its primary key lets only one
      transaction per subject commit a merge (or rejection); a loser gets an
      IntegrityError, rolls back in full and reports ``already_merged``.
    - The staged row is locked FOR UPDATE (PostgreSQL) and re-read inside
      the transaction.  On SQLite the claim INSERT takes the database write
      lock, so the re-read observes every committed ballot and merge.
    - No global lock: subjects are claimed independently.

Proposal states (no status column on the staged tables):

    Pending(tally)     staged row present, no outcome
    Merged(live_id)    outcome status="merged"
    Rejected(reason)   outcome status="rejected"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models import db
from app.models.committee import (
    OUTCOME_MERGED,
    OUTCOME_REJECTED,
    SUBJECT_COMPETENCY,
    Ballot,
    CommitteeMember,
    ProposalOutcome,
)
from app.models.media import MediaAttachment
from app.services import catalog_writer, media_service
from app.services.tally import Tally, compute_tally, find_staged

logger = logging.getLogger(__name__)

STATUS_MERGED = "merged"
STATUS_ALREADY_MERGED = "already_merged"
STATUS_PENDING = "pending"
STATUS_REJECTED = "rejected"


# ── Result and state types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class MergeResult:
    status: str
    live_id: str | None = None
    tally: Tally = field(default_factory=Tally)

    @property
    def merged(self) -> bool:
        return self.status in (STATUS_MERGED, STATUS_ALREADY_MERGED)


@dataclass(frozen=True)
class Pending:
    subject_type: str
    tally: Tally
    state: str = "pending"

    def to_dict(self) -> dict:
        return {"state": self.state, "subject_type": self.subject_type, "tally": self.tally.to_dict()}


@dataclass(frozen=True)
class Merged:
    subject_type: str
    live_id: str
    state: str = "merged"

    def to_dict(self) -> dict:
        return {"state": self.state, "subject_type": self.subject_type, "live_id": self.live_id}


@dataclass(frozen=True)
class Rejected:
    subject_type: str
    reason: str | None
    state: str = "rejected"

    def to_dict(self) -> dict:
        return {"state": self.state, "subject_type": self.subject_type, "reason": self.reason}


class MergeConflictError(Exception):
    """A write other than the claim kept colliding (e.g. catalog position)."""


# ── Predicate ──────────────────────────────────────────────────────────────────


def is_eligible(tally: Tally) -> bool:
    """Quorum-weighted majority: total ≥ QUORUM and approval ≥ THRESHOLD."""
    quorum = current_app.config.get("COMMITTEE_QUORUM", 4)
    threshold = current_app.config.get("COMMITTEE_APPROVAL_THRESHOLD", 0.5)
    return tally.total >= quorum and tally.approval >= threshold


# ── Private helpers ────────────────────────────────────────────────────────────


def _resolved_result(subject_id: str) -> MergeResult:
    """Result for a subject whose staged row is gone."""
    outcome = db.session.get(ProposalOutcome, subject_id)
    if outcome is None:
        raise NotFoundError(resource="Proposal", resource_id=subject_id)
    if outcome.status == OUTCOME_MERGED:
        return MergeResult(status=STATUS_ALREADY_MERGED, live_id=outcome.live_id)
    return MergeResult(status=STATUS_REJECTED)


def _promote(subject_type: str, staged) -> str:
    """Create the live counterpart of a staged row; returns the live id."""
    if subject_type == SUBJECT_COMPETENCY:
        live = catalog_writer.materialize_competency(staged.name, staged.difficulty, staged.tags)
        return live.id

    live = catalog_writer.materialize_question(
        staged.competency_id,
        staged.prompt_text,
        [(opt.body, opt.is_correct) for opt in staged.options],
    )
    media_service.reassign_media(staged.id, live.id)
    return live.id


def _merge_once(subject_id: str) -> MergeResult:
    subject_type, staged = find_staged(subject_id)
    if staged is None or db.session.get(ProposalOutcome, subject_id) is not None:
        return _resolved_result(subject_id)

    tally = compute_tally(subject_id)
    if not is_eligible(tally):
        return MergeResult(status=STATUS_PENDING, tally=tally)

    # Claim first: on SQLite this write also takes the database lock.
    outcome = ProposalOutcome(
        subject_id=subject_id,
        subject_type=subject_type,
        status=OUTCOME_MERGED,
    )
    db.session.add(outcome)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            "Merge skipped — proposal already resolved",
            extra={"event_type": "proposal.merge_race", "subject_id": subject_id},
        )
        return _resolved_result(subject_id)

    try:
        subject_type, staged = find_staged(subject_id, lock=True)
        if staged is None:
            db.session.rollback()
            return _resolved_result(subject_id)

        tally = compute_tally(subject_id)
        if not is_eligible(tally):
            db.session.rollback()
            return MergeResult(status=STATUS_PENDING, tally=tally)

        live_id = _promote(subject_type, staged)
        outcome.live_id = live_id

        db.session.execute(delete(Ballot).where(Ballot.subject_id == subject_id))
        db.session.delete(staged)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise MergeConflictError(str(exc.orig)) from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Merge transaction failed subject_id=%s", subject_id)
        raise

    logger.info(
        "Proposal merged",
        extra={
            "event_type": "proposal.merged",
            "subject_id": subject_id,
            "live_id": live_id,
        },
    )
    return MergeResult(status=STATUS_MERGED, live_id=live_id, tally=tally)


# ── Public API ─────────────────────────────────────────────────────────────────


def try_merge(subject_id: str) -> MergeResult:
    """Merge a staged proposal if it meets quorum and threshold.

    Idempotent: a subject already merged (by this or a racing call) returns
    ``already_merged`` with the live id; an ineligible one returns ``pending``.

    Raises:
        NotFoundError: subject_id never referred to a proposal.
    """
    attempts = max(1, int(current_app.config.get("MERGE_MAX_ATTEMPTS", 3)))
    attempt = 1
    while True:
        try:
            return _merge_once(subject_id)
        except MergeConflictError as exc:
            if attempt >= attempts:
                logger.error(
                    "Merge gave up after %d attempts subject_id=%s: %s",
                    attempts, subject_id, exc,
                )
                raise
            logger.warning(
                "Merge write conflict, retrying (attempt %d/%d) subject_id=%s",
                attempt, attempts, subject_id,
            )
            attempt += 1


def get_proposal_state(subject_id: str) -> Pending | Merged | Rejected:
    subject_type, staged = find_staged(subject_id)
    if staged is not None:
        return Pending(subject_type=subject_type, tally=compute_tally(subject_id))

    outcome = db.session.get(ProposalOutcome, subject_id)
    if outcome is None:
        raise NotFoundError(resource="Proposal", resource_id=subject_id)
    if outcome.status == OUTCOME_MERGED:
        return Merged(subject_type=outcome.subject_type, live_id=outcome.live_id)
    return Rejected(subject_type=outcome.subject_type, reason=outcome.reason)


def reject_proposal(actor: CommitteeMember, subject_id: str, reason: str | None = None) -> Rejected:
    """Close a pending proposal without merging it (chair only).

    Deletes the staged row, its ballots and its media metadata in one
    transaction and records a ``rejected`` outcome.

    Raises:
        PermissionDeniedError: actor is not the chair.
        NotFoundError: the proposal is not pending (unknown, merged or rejected).
    """
    if not actor.is_chair:
        raise PermissionDeniedError("reject proposals")

    subject_type, staged = find_staged(subject_id)
    if staged is None or db.session.get(ProposalOutcome, subject_id) is not None:
        raise NotFoundError(resource="Proposal", resource_id=subject_id)

    reason = (reason or "").strip() or None
    outcome = ProposalOutcome(
        subject_id=subject_id,
        subject_type=subject_type,
        status=OUTCOME_REJECTED,
        decided_by=actor.id,
        reason=reason,
    )
    db.session.add(outcome)
    try:
        db.session.flush()
        subject_type, staged = find_staged(subject_id, lock=True)
        if staged is None:
            db.session.rollback()
            raise NotFoundError(resource="Proposal", resource_id=subject_id)

        db.session.execute(delete(Ballot).where(Ballot.subject_id == subject_id))
        if subject_type != SUBJECT_COMPETENCY:
            db.session.execute(
                delete(MediaAttachment)
                .where(MediaAttachment.staged_question_id == subject_id)
                .execution_options(synchronize_session=False)
            )
        db.session.delete(staged)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise NotFoundError(resource="Proposal", resource_id=subject_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Reject transaction failed subject_id=%s", subject_id)
        raise

    logger.info(
        "Proposal rejected",
        extra={"event_type": "proposal.rejected", "subject_id": subject_id, "member_id": actor.id},
    )
    return Rejected(subject_type=subject_type, reason=reason)
