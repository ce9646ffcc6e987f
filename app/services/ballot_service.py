"""
Ballot Tally Engine — one ballot per (voter, proposal), merge check after each.

cast_ballot() upserts the caller's ballot, commits, then synchronously asks
the Merge Coordinator whether the proposal now qualifies.  The caller may
therefore see the merge (and the new live id) in the same response.

A ballot never outlives its proposal: the staged row is locked before the
ballot is written and re-checked after, inside the same transaction, so a
ballot racing a merge is rolled back with NotFoundError instead of being
left behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.committee import Ballot, CommitteeMember, _utcnow
from app.services import merge_service
from app.services.tally import Tally, compute_tally, find_staged

logger = logging.getLogger(__name__)

# One retry covers a concurrent first ballot from the same voter.
_UPSERT_ATTEMPTS = 2


@dataclass(frozen=True)
class BallotResult:
    accepted: bool
    merged: bool
    live_id: str | None
    tally: Tally

    def to_dict(self) -> dict:
        d = {
            "accepted": self.accepted,
            "merged": self.merged,
            "tally": self.tally.to_dict(),
        }
        if self.live_id:
            d["liveId"] = self.live_id
        return d


# ── Private helpers ────────────────────────────────────────────────────────────


def _write_ballot(subject_type: str, subject_id: str, voter_id: str, value: bool) -> None:
    """Insert or update the (subject, voter) ballot and flush."""
    ballot = db.session.execute(
        select(Ballot).where(Ballot.subject_id == subject_id, Ballot.voter_id == voter_id)
    ).scalar_one_or_none()
    if ballot is None:
        db.session.add(Ballot(
            subject_type=subject_type,
            subject_id=subject_id,
            voter_id=voter_id,
            value=value,
        ))
    else:
        ballot.value = value
        ballot.updated_at = _utcnow()
    db.session.flush()


def _record_ballot(subject_id: str, voter_id: str, value: bool) -> str:
    """Upsert and commit; returns the subject type."""
    for attempt in range(1, _UPSERT_ATTEMPTS + 1):
        subject_type, staged = find_staged(subject_id, lock=True)
        if staged is None:
            db.session.rollback()
            raise NotFoundError(resource="Proposal", resource_id=subject_id)
        try:
            _write_ballot(subject_type, subject_id, voter_id, value)
        except IntegrityError:
            db.session.rollback()
            if attempt == _UPSERT_ATTEMPTS:
                raise
            continue

        try:
            # Re-check inside the write transaction: a merge may have
            # committed between the lookup above and our first write.
            _, staged = find_staged(subject_id, lock=True)
            if staged is None:
                db.session.rollback()
                raise NotFoundError(resource="Proposal", resource_id=subject_id)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Ballot commit failed subject_id=%s", subject_id)
            raise
        return subject_type


# ── Public API ─────────────────────────────────────────────────────────────────


def cast_ballot(voter: CommitteeMember, subject_id: str, value) -> BallotResult:
    """Record the voter's current position and evaluate the merge predicate.

    Re-voting replaces the earlier value in place.

    Raises:
        ValidationError: value is not a boolean.
        NotFoundError: subject is unknown or no longer pending.

    A merge that keeps colliding is reported as not merged; the ballot
    itself stays recorded.
    """
    if not isinstance(value, bool):
        raise ValidationError("value must be true (for) or false (against)", details={"value": value})

    subject_type = _record_ballot(subject_id, voter.id, value)
    logger.info(
        "Ballot cast",
        extra={
            "event_type": "ballot.cast",
            "subject_id": subject_id,
            "member_id": voter.id,
            "value": value,
            "subject_type": subject_type,
        },
    )

    try:
        result = merge_service.try_merge(subject_id)
    except merge_service.MergeConflictError:
        # The ballot is committed; the next ballot re-runs the merge check.
        logger.error(
            "Merge deferred after repeated write conflicts",
            extra={"event_type": "proposal.merge_deferred", "subject_id": subject_id, "member_id": voter.id},
        )
        return BallotResult(accepted=True, merged=False, live_id=None, tally=compute_tally(subject_id))

    return BallotResult(
        accepted=True,
        merged=result.merged,
        live_id=result.live_id,
        tally=result.tally,
    )


def get_ballot(subject_id: str, voter_id: str) -> Ballot | None:
    return db.session.execute(
        select(Ballot).where(Ballot.subject_id == subject_id, Ballot.voter_id == voter_id)
    ).scalar_one_or_none()


def get_voter_ballots(voter_id: str, subject_ids: list[str]) -> dict[str, bool]:
    """The voter's current value per subject, for review-queue listings."""
    if not subject_ids:
        return {}
    rows = db.session.execute(
        select(Ballot.subject_id, Ballot.value)
        .where(Ballot.voter_id == voter_id, Ballot.subject_id.in_(subject_ids))
    ).all()
    return {sid: bool(value) for sid, value in rows}
