"""Committee consensus workflow: members, catalog, staging, ballots, outcomes, media

Revision ID: c0m1t2e3e401
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "c0m1t2e3e401"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "committee_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(200), nullable=False, unique=True),
        sa.Column("full_name", sa.String(200)),
        sa.Column("committee_role", sa.String(20), nullable=False, server_default="editor"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Live catalog ─────────────────────────────────────────────────────
    op.create_table(
        "tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("name_normalized", sa.String(100), nullable=False, unique=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "competencies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("position", name="uq_competencies_position"),
    )

    op.create_table(
        "competency_tags",
        sa.Column("competency_id", sa.String(36), sa.ForeignKey("competencies.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.String(36), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "competency_questions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("competency_id", sa.String(36), sa.ForeignKey("competencies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "competency_question_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("question_id", sa.String(36), sa.ForeignKey("competency_questions.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("question_id", "sort_order", name="uq_question_option_order"),
    )

    # ── Staged proposals ─────────────────────────────────────────────────
    op.create_table(
        "competencies_stage",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("justification", sa.Text()),
        sa.Column("proposer_id", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="SET NULL"), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "competencies_stage_tags",
        sa.Column("stage_id", sa.String(36), sa.ForeignKey("competencies_stage.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.String(36), sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "competency_questions_stage",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("competency_id", sa.String(36), sa.ForeignKey("competencies.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("proposer_id", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="SET NULL"), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "competency_question_options_stage",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("stage_question_id", sa.String(36), sa.ForeignKey("competency_questions_stage.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("stage_question_id", "sort_order", name="uq_stage_option_order"),
    )

    # ── Voting ───────────────────────────────────────────────────────────
    op.create_table(
        "committee_ballots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("subject_type", sa.String(20), nullable=False),
        sa.Column("subject_id", sa.String(36), nullable=False),
        sa.Column("voter_id", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("value", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("subject_id", "voter_id", name="uq_ballot_subject_voter"),
    )
    op.create_index("ix_ballot_subject", "committee_ballots", ["subject_id"])

    op.create_table(
        "proposal_outcomes",
        sa.Column("subject_id", sa.String(36), primary_key=True),
        sa.Column("subject_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("live_id", sa.String(36)),
        sa.Column("decided_by", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="SET NULL")),
        sa.Column("reason", sa.Text()),
        sa.Column("decided_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── Media ────────────────────────────────────────────────────────────
    op.create_table(
        "question_media",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("staged_question_id", sa.String(36), sa.ForeignKey("competency_questions_stage.id", ondelete="CASCADE"), index=True),
        sa.Column("question_id", sa.String(36), sa.ForeignKey("competency_questions.id", ondelete="CASCADE"), index=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("storage_path", sa.String(500), nullable=False, unique=True),
        sa.Column("uploaded_by", sa.String(36), sa.ForeignKey("committee_members.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(staged_question_id IS NULL) <> (question_id IS NULL)",
            name="ck_question_media_single_owner",
        ),
    )


def downgrade():
    op.drop_table("question_media")
    op.drop_table("proposal_outcomes")
    op.drop_index("ix_ballot_subject", table_name="committee_ballots")
    op.drop_table("committee_ballots")
    op.drop_table("competency_question_options_stage")
    op.drop_table("competency_questions_stage")
    op.drop_table("competencies_stage_tags")
    op.drop_table("competencies_stage")
    op.drop_table("competency_question_options")
    op.drop_table("competency_questions")
    op.drop_table("competency_tags")
    op.drop_table("competencies")
    op.drop_table("tags")
    op.drop_table("committee_members")
