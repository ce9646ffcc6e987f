"""
Catalog Models — the live competency catalog.

Tag, Competency (+ competency_tags), CompetencyQuestion, CompetencyQuestionOption.

Live rows are created only by a committee merge or the chair bypass path.
After creation a competency changes only its ``position`` and tag membership;
questions and options never change.
"""

from app.models import db
from app.models.committee import _utcnow, _uuid

__all__ = [
    "DIFFICULTIES",
    "OPTION_COUNT",
    "OPTION_LABELS",
    "Tag",
    "Competency",
    "CompetencyQuestion",
    "CompetencyQuestionOption",
    "competency_tags",
    "normalize_tag_name",
]

# ── Constants ─────────────────────────────────────────────────────────────────

DIFFICULTIES = ("Beginner", "Intermediate", "Expert")

OPTION_COUNT = 4
OPTION_LABELS = ("A", "B", "C", "D")


def normalize_tag_name(name: str) -> str:
    """Case-insensitive key used for tag uniqueness."""
    return " ".join((name or "").split()).lower()


competency_tags = db.Table(
    "competency_tags",
    db.Column(
        "competency_id",
        db.String(36),
        db.ForeignKey("competencies.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "tag_id",
        db.String(36),
        db.ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Tag: chair-managed vocabulary
# ═════════════════════════════════════════════════════════════════════════════

class Tag(db.Model):
    """
    Shared tag vocabulary.  Competencies reference tags by id only; the
    name is display data and is always read from this table.
    """

    __tablename__ = "tags"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(100), nullable=False)
    name_normalized = db.Column(
        db.String(100),
        nullable=False,
        unique=True,
        comment="lower(collapsed whitespace name) — case-insensitive uniqueness key",
    )
    created_by = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Tag {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Competency: live catalog entry
# ═════════════════════════════════════════════════════════════════════════════

class Competency(db.Model):
    __tablename__ = "competencies"
    __table_args__ = (
        db.UniqueConstraint("position", name="uq_competencies_position"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    difficulty = db.Column(
        db.String(20),
        nullable=False,
        comment="Beginner | Intermediate | Expert",
    )
    position = db.Column(
        db.Integer,
        nullable=False,
        comment="Display order; contiguous 1..N across the catalog",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    tags = db.relationship("Tag", secondary=competency_tags, order_by="Tag.name")
    questions = db.relationship(
        "CompetencyQuestion",
        back_populates="competency",
        cascade="all, delete-orphan",
        order_by="CompetencyQuestion.created_at",
    )

    @property
    def tag_ids(self) -> list[str]:
        return [t.id for t in self.tags]

    def to_dict(self, include_questions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "difficulty": self.difficulty,
            "position": self.position,
            "tag_ids": self.tag_ids,
            "tags": [{"id": t.id, "name": t.name} for t in self.tags],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_questions:
            d["questions"] = [q.to_dict() for q in self.questions]
        return d

    def __repr__(self):
        return f"<Competency #{self.position} {self.name[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. CompetencyQuestion + options: live test questions
# ═════════════════════════════════════════════════════════════════════════════

class CompetencyQuestion(db.Model):
    __tablename__ = "competency_questions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    competency_id = db.Column(
        db.String(36),
        db.ForeignKey("competencies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prompt_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    competency = db.relationship("Competency", back_populates="questions")
    options = db.relationship(
        "CompetencyQuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="CompetencyQuestionOption.sort_order",
    )
    media = db.relationship(
        "MediaAttachment",
        foreign_keys="MediaAttachment.question_id",
        order_by="MediaAttachment.created_at",
        viewonly=True,
    )

    @property
    def correct_index(self) -> int | None:
        for opt in self.options:
            if opt.is_correct:
                return opt.sort_order
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "competency_id": self.competency_id,
            "prompt_text": self.prompt_text,
            "options": [o.to_dict() for o in self.options],
            "media": [m.to_dict() for m in self.media],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CompetencyQuestion {self.id[:8]} → {self.competency_id[:8]}>"


class CompetencyQuestionOption(db.Model):
    __tablename__ = "competency_question_options"
    __table_args__ = (
        db.UniqueConstraint("question_id", "sort_order", name="uq_question_option_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.String(36),
        db.ForeignKey("competency_questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sort_order = db.Column(db.Integer, nullable=False, comment="0..3 — label A..D")
    body = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship("CompetencyQuestion", back_populates="options")

    @property
    def label(self) -> str:
        return OPTION_LABELS[self.sort_order]

    def to_dict(self):
        return {
            "label": self.label,
            "body": self.body,
            "is_correct": self.is_correct,
        }
