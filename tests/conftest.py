"""
Shared pytest fixtures for the Competency Committee test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - chair / editor / voters: pre-created committee members
    - auth_headers: builds a Bearer header for a member
    - tag / competency: pre-created catalog entries
    - make_member / make_tag / make_competency: factories for extra rows
"""

import pytest

from app import create_app
from app.models import db as _db
from app.models.catalog import Competency, Tag, normalize_tag_name
from app.models.committee import ROLE_CHAIR, ROLE_EDITOR, CommitteeMember
from app.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Committee fixtures ───────────────────────────────────────────────────


def _make_member(email: str, role: str = ROLE_EDITOR, name: str | None = None) -> CommitteeMember:
    m = CommitteeMember(email=email, full_name=name or email.split("@")[0].title(), committee_role=role)
    _db.session.add(m)
    _db.session.commit()
    return m


def _make_tag(name: str) -> Tag:
    t = Tag(name=name, name_normalized=normalize_tag_name(name))
    _db.session.add(t)
    _db.session.commit()
    return t


def _make_competency(name: str, position: int, difficulty: str = "Beginner") -> Competency:
    c = Competency(name=name, difficulty=difficulty, position=position)
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def chair():
    return _make_member("chair@committee.test", ROLE_CHAIR, "Chair Person")


@pytest.fixture()
def editor():
    return _make_member("editor@committee.test")


@pytest.fixture()
def voters():
    """Five editors — one more than the default quorum."""
    return [_make_member(f"voter{i}@committee.test") for i in range(1, 6)]


@pytest.fixture()
def tag():
    return _make_tag("IVUS")


@pytest.fixture()
def competency():
    return _make_competency("Coronary angiography", position=1)


@pytest.fixture()
def auth_headers():
    """Return a function building the Authorization header for a member."""

    def _headers(member: CommitteeMember) -> dict:
        token = generate_access_token(member.id, member.committee_role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def make_member():
    return _make_member


@pytest.fixture()
def make_tag():
    return _make_tag


@pytest.fixture()
def make_competency():
    return _make_competency
