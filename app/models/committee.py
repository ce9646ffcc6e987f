"""
Committee Models — members, ballots and proposal outcomes.

CommitteeMember carries the committee role that decides whether a caller
may bypass voting (chief_editor = Chair of Committee).

Ballot and ProposalOutcome use the polymorphic subject pattern:
    subject_type + subject_id together identify a staged proposal
    (competency or question).  subject_id is the staged row's UUID, which
    is unique across both staged tables.
"""

import uuid
from datetime import datetime, timezone

from app.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

ROLE_EDITOR = "editor"
ROLE_CHAIR = "chief_editor"

COMMITTEE_ROLES = frozenset({ROLE_EDITOR, ROLE_CHAIR})

COMMITTEE_ROLE_LABEL = {
    ROLE_EDITOR: "Committee Member",
    ROLE_CHAIR: "Chair of Committee",
}

SUBJECT_COMPETENCY = "competency"
SUBJECT_QUESTION = "question"

VALID_SUBJECT_TYPES = frozenset({SUBJECT_COMPETENCY, SUBJECT_QUESTION})

OUTCOME_MERGED = "merged"
OUTCOME_REJECTED = "rejected"

VALID_OUTCOMES = frozenset({OUTCOME_MERGED, OUTCOME_REJECTED})


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. COMMITTEE MEMBERS
# ═══════════════════════════════════════════════════════════════
class CommitteeMember(db.Model):
    __tablename__ = "committee_members"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    committee_role = db.Column(
        db.String(20),
        nullable=False,
        default=ROLE_EDITOR,
        comment="editor | chief_editor",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_chair(self) -> bool:
        return self.committee_role == ROLE_CHAIR

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Committee member"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "committee_role": self.committee_role,
            "role_label": COMMITTEE_ROLE_LABEL.get(self.committee_role, self.committee_role),
            "is_chair": self.is_chair,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CommitteeMember {self.email} ({self.committee_role})>"


# ═══════════════════════════════════════════════════════════════
# 2. BALLOTS
# ═══════════════════════════════════════════════════════════════
class Ballot(db.Model):
    """
    One voter's current position on a staged proposal.

    Business rules:
    - Unique per (subject_id, voter_id): re-voting updates ``value`` in place.
    - Deleted together with the staged proposal when it is merged or rejected.
    """

    __tablename__ = "committee_ballots"

    id = db.Column(db.Integer, primary_key=True)
    subject_type = db.Column(
        db.String(20),
        nullable=False,
        comment="competency | question",
    )
    subject_id = db.Column(
        db.String(36),
        nullable=False,
        comment="UUID of the staged competency or staged question",
    )
    voter_id = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value = db.Column(db.Boolean, nullable=False, comment="True = for, False = against")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        db.UniqueConstraint("subject_id", "voter_id", name="uq_ballot_subject_voter"),
        db.Index("ix_ballot_subject", "subject_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "voter_id": self.voter_id,
            "value": self.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Ballot {self.subject_id[:8]} by {self.voter_id[:8]}: {'for' if self.value else 'against'}>"


# ═══════════════════════════════════════════════════════════════
# 3. PROPOSAL OUTCOMES
# ═══════════════════════════════════════════════════════════════
class ProposalOutcome(db.Model):
    """
    Terminal state of a staged proposal.

    A pending proposal has a staged row and no outcome.  Once merged or
    rejected the staged row is gone and exactly one outcome row remains.
    The primary key on subject_id is the claim that lets only one merge
    (or rejection) win for a given proposal.
    """

    __tablename__ = "proposal_outcomes"

    subject_id = db.Column(db.String(36), primary_key=True)
    subject_type = db.Column(db.String(20), nullable=False, comment="competency | question")
    status = db.Column(db.String(20), nullable=False, comment="merged | rejected")
    live_id = db.Column(
        db.String(36),
        nullable=True,
        comment="Live competency or question created by the merge",
    )
    decided_by = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="SET NULL"),
        nullable=True,
        comment="Chair who rejected the proposal; NULL for vote-driven merges",
    )
    reason = db.Column(db.Text, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_type": self.subject_type,
            "status": self.status,
            "live_id": self.live_id,
            "decided_by": self.decided_by,
            "reason": self.reason,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self):
        return f"<ProposalOutcome {self.subject_type}/{self.subject_id[:8]} {self.status}>"
