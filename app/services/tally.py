"""
Ballot tally and staged-subject lookup shared by the ballot and merge services.

The tally is a pure function of the current one-ballot-per-voter rows for
a subject; the history of calls that produced them does not matter.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from app.models import db
from app.models.committee import SUBJECT_COMPETENCY, SUBJECT_QUESTION, Ballot
from app.models.staging import StagedCompetency, StagedQuestion

_STAGED_MODELS = (
    (SUBJECT_COMPETENCY, StagedCompetency),
    (SUBJECT_QUESTION, StagedQuestion),
)


@dataclass(frozen=True)
class Tally:
    for_count: int = 0
    against_count: int = 0

    @property
    def total(self) -> int:
        return self.for_count + self.against_count

    @property
    def approval(self) -> float:
        if self.total == 0:
            return 0.0
        return self.for_count / self.total

    def to_dict(self) -> dict:
        return {
            "for": self.for_count,
            "against": self.against_count,
            "total": self.total,
            "approval": round(self.approval, 4),
        }


def compute_tally(subject_id: str) -> Tally:
    rows = db.session.execute(
        select(Ballot.value, func.count(Ballot.id))
        .where(Ballot.subject_id == subject_id)
        .group_by(Ballot.value)
    ).all()
    counts = {bool(value): count for value, count in rows}
    return Tally(for_count=counts.get(True, 0), against_count=counts.get(False, 0))


def compute_tallies(subject_ids: list[str]) -> dict[str, Tally]:
    """Batch variant for review-queue listings."""
    if not subject_ids:
        return {}
    counts: dict[str, dict[bool, int]] = {}
    rows = db.session.execute(
        select(Ballot.subject_id, Ballot.value, func.count(Ballot.id))
        .where(Ballot.subject_id.in_(subject_ids))
        .group_by(Ballot.subject_id, Ballot.value)
    ).all()
    for subject_id, value, count in rows:
        counts.setdefault(subject_id, {})[bool(value)] = count
    return {
        sid: Tally(
            for_count=counts.get(sid, {}).get(True, 0),
            against_count=counts.get(sid, {}).get(False, 0),
        )
        for sid in subject_ids
    }


def find_staged(subject_id: str, lock: bool = False):
    """Return ``(subject_type, staged_row)`` or ``(None, None)``.

    With ``lock=True`` the row is re-read from the database and locked
    (SELECT ... FOR UPDATE where the backend supports it), bypassing any
    stale copy in the identity map.
    """
    if not subject_id:
        return None, None
    for subject_type, model in _STAGED_MODELS:
        stmt = select(model).where(model.id == subject_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = db.session.execute(stmt).scalar_one_or_none()
        if row is not None:
            return subject_type, row
    return None, None
