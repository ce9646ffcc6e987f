"""
Committee membership — who may propose, vote and chair.

Authentication is external: members are provisioned from the CLI
(``flask add-member``) and identified by the ``sub`` claim of their access
token.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.committee import ROLE_CHAIR, ROLE_EDITOR, CommitteeMember

logger = logging.getLogger(__name__)


def list_members() -> list[CommitteeMember]:
    return list(db.session.execute(
        select(CommitteeMember).order_by(CommitteeMember.full_name, CommitteeMember.email)
    ).scalars())


def get_member(member_id: str | None) -> CommitteeMember | None:
    if not member_id:
        return None
    return db.session.get(CommitteeMember, member_id)


def add_member(email: str, full_name: str | None = None, chair: bool = False) -> CommitteeMember:
    """Provision a committee member.

    Raises:
        ValidationError: missing or malformed email.
        ConflictError: the email is already registered.
    """
    email = (email or "").strip().lower()
    try:
        email = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})
    role = ROLE_CHAIR if chair else ROLE_EDITOR

    member = CommitteeMember(
        email=email,
        full_name=(full_name or "").strip() or None,
        committee_role=role,
    )
    db.session.add(member)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("CommitteeMember", "email", email)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Member insert failed email=%s", email)
        raise

    logger.info(
        "Committee member added",
        extra={"event_type": "member.added", "member_id": member.id},
    )
    return member
