"""
Catalog writer — the single constructor for live catalog entries.

Both ways into the live catalog go through here:
  - chair submissions (proposal_service, "submit directly into the merged state")
  - committee merges (merge_service, promotion of a staged proposal)

so a chair-created competency and a voted-in one are built identically.

Functions in this module add and flush but never commit; the caller owns
the transaction.
"""

from sqlalchemy import select

from app.models import db
from app.models.catalog import Competency, CompetencyQuestion, CompetencyQuestionOption, Tag


def next_position() -> int:
    """Position for a competency appended to the end of the catalog.

    Race-safe together with the unique constraint on ``position``: the last
    row is locked where the backend supports SELECT ... FOR UPDATE, and a
    concurrent writer that still collides gets an IntegrityError the caller
    retries.
    """
    last = db.session.execute(
        select(Competency.position)
        .order_by(Competency.position.desc())
        .limit(1)
        .with_for_update()
    ).scalar()
    return (last or 0) + 1


def materialize_competency(name: str, difficulty: str, tags: list[Tag]) -> Competency:
    competency = Competency(
        name=name,
        difficulty=difficulty,
        position=next_position(),
    )
    competency.tags = list(tags)
    db.session.add(competency)
    db.session.flush()
    return competency


def materialize_question(
    competency_id: str,
    prompt_text: str,
    options: list[tuple[str, bool]],
) -> CompetencyQuestion:
    """Create a live question with its options copied in the given order.

    Args:
        options: ``(body, is_correct)`` pairs; index becomes sort_order.
    """
    question = CompetencyQuestion(competency_id=competency_id, prompt_text=prompt_text)
    question.options = [
        CompetencyQuestionOption(sort_order=idx, body=body, is_correct=is_correct)
        for idx, (body, is_correct) in enumerate(options)
    ]
    db.session.add(question)
    db.session.flush()
    return question
