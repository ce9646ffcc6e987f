"""
Staging Models — committee proposals awaiting consensus.

StagedCompetency (+ competencies_stage_tags), StagedQuestion,
StagedQuestionOption.

Presence of a staged row means the proposal is pending.  Merge or rejection
deletes it; the terminal state is recorded in ``proposal_outcomes``.
Staged questions always target a competency that is already live.
"""

from app.models import db
from app.models.catalog import OPTION_LABELS
from app.models.committee import _utcnow, _uuid

__all__ = [
    "StagedCompetency",
    "StagedQuestion",
    "StagedQuestionOption",
    "staged_competency_tags",
]


staged_competency_tags = db.Table(
    "competencies_stage_tags",
    db.Column(
        "stage_id",
        db.String(36),
        db.ForeignKey("competencies_stage.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "tag_id",
        db.String(36),
        db.ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class StagedCompetency(db.Model):
    __tablename__ = "competencies_stage"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    difficulty = db.Column(db.String(20), nullable=False)
    justification = db.Column(db.Text, nullable=True)
    proposer_id = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    tags = db.relationship("Tag", secondary=staged_competency_tags, order_by="Tag.name")
    proposer = db.relationship("CommitteeMember", foreign_keys=[proposer_id])

    @property
    def tag_ids(self) -> list[str]:
        return [t.id for t in self.tags]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty,
            "justification": self.justification,
            "tag_ids": self.tag_ids,
            "tags": [{"id": t.id, "name": t.name} for t in self.tags],
            "proposer_id": self.proposer_id,
            "proposer_name": self.proposer.display_name if self.proposer else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StagedCompetency {self.id[:8]} {self.name[:40]}>"


class StagedQuestion(db.Model):
    __tablename__ = "competency_questions_stage"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    competency_id = db.Column(
        db.String(36),
        db.ForeignKey("competencies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Target live competency",
    )
    prompt_text = db.Column(db.Text, nullable=False)
    proposer_id = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    competency = db.relationship("Competency")
    proposer = db.relationship("CommitteeMember", foreign_keys=[proposer_id])
    options = db.relationship(
        "StagedQuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="StagedQuestionOption.sort_order",
    )
    media = db.relationship(
        "MediaAttachment",
        foreign_keys="MediaAttachment.staged_question_id",
        order_by="MediaAttachment.created_at",
        viewonly=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "competency_id": self.competency_id,
            "competency_name": self.competency.name if self.competency else None,
            "prompt_text": self.prompt_text,
            "options": [o.to_dict() for o in self.options],
            "media": [m.to_dict() for m in self.media],
            "proposer_id": self.proposer_id,
            "proposer_name": self.proposer.display_name if self.proposer else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StagedQuestion {self.id[:8]} → {self.competency_id[:8]}>"


class StagedQuestionOption(db.Model):
    __tablename__ = "competency_question_options_stage"
    __table_args__ = (
        db.UniqueConstraint("stage_question_id", "sort_order", name="uq_stage_option_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    stage_question_id = db.Column(
        db.String(36),
        db.ForeignKey("competency_questions_stage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sort_order = db.Column(db.Integer, nullable=False)
    body = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship("StagedQuestion", back_populates="options")

    @property
    def label(self) -> str:
        return OPTION_LABELS[self.sort_order]

    def to_dict(self):
        return {
            "label": self.label,
            "body": self.body,
            "is_correct": self.is_correct,
        }
