"""
Question media — metadata rows for files uploaded through the signed-grant flow.

Each attachment belongs to exactly one parent: a staged question OR a live
question, never both and never neither.  The merge step moves ownership from
the staged question to its live counterpart; rows are never duplicated.
"""

from app.models import db
from app.models.committee import _utcnow, _uuid


class MediaAttachment(db.Model):
    __tablename__ = "question_media"
    __table_args__ = (
        db.CheckConstraint(
            "(staged_question_id IS NULL) <> (question_id IS NULL)",
            name="ck_question_media_single_owner",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    staged_question_id = db.Column(
        db.String(36),
        db.ForeignKey("competency_questions_stage.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    question_id = db.Column(
        db.String(36),
        db.ForeignKey("competency_questions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100), nullable=False)
    file_size = db.Column(db.Integer, nullable=False)
    storage_path = db.Column(db.String(500), nullable=False, unique=True)
    uploaded_by = db.Column(
        db.String(36),
        db.ForeignKey("committee_members.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def file_type(self) -> str:
        return (self.mime_type or "").split("/", 1)[0]

    def to_dict(self):
        return {
            "id": self.id,
            "stage_id": self.staged_question_id,
            "question_id": self.question_id,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "storage_path": self.storage_path,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        owner = self.question_id or self.staged_question_id or "?"
        return f"<MediaAttachment {self.file_name} → {owner[:8]}>"
