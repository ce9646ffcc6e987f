"""
Tests: exactly-once merge under concurrent ballots.

Runs against a file-backed SQLite database (the in-memory test database is
a single shared connection) with one app context, and therefore one
session, per thread.  Two voters push a 3-ballot proposal over quorum at
the same time; exactly one live competency must come out of it.
"""

import threading

import pytest

from app import create_app
from app.config import TestingConfig
from app.config import config as config_map
from app.core.exceptions import NotFoundError
from app.models import db as _db
from app.models.catalog import Competency
from app.models.committee import Ballot, CommitteeMember, ProposalOutcome
from app.models.staging import StagedCompetency
from app.services import ballot_service, merge_service, proposal_service


@pytest.fixture()
def race_app(tmp_path, monkeypatch):
    class RaceConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}}

    monkeypatch.setitem(config_map, "race", RaceConfig)
    application = create_app("race")
    with application.app_context():
        _db.create_all()
    yield application
    with application.app_context():
        _db.drop_all()
        _db.engine.dispose()


def _seed(race_app):
    with race_app.app_context():
        members = []
        for i in range(6):
            m = CommitteeMember(email=f"m{i}@committee.test", full_name=f"Member {i}")
            _db.session.add(m)
            members.append(m)
        _db.session.commit()
        member_ids = [m.id for m in members]

        proposal = proposal_service.submit_competency(members[0], "Bifurcation stenting", "Expert")
        for voter, value in zip(members[1:4], [True, True, False]):
            ballot_service.cast_ballot(voter, proposal.id, value)
        return proposal.id, member_ids


def test_concurrent_deciding_ballots_merge_once(race_app):
    subject_id, member_ids = _seed(race_app)
    racers = member_ids[4:6]
    barrier = threading.Barrier(len(racers))
    outcomes = []
    errors = []

    def _cast(voter_id):
        with race_app.app_context():
            voter = _db.session.get(CommitteeMember, voter_id)
            barrier.wait(timeout=10)
            try:
                result = ballot_service.cast_ballot(voter, subject_id, True)
                outcomes.append(("ballot", result.merged, result.live_id))
            except NotFoundError:
                # The other ballot merged the proposal first.
                outcomes.append(("late", True, None))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

    threads = [threading.Thread(target=_cast, args=(vid,)) for vid in racers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert not errors, errors
    assert len(outcomes) == 2

    with race_app.app_context():
        live = Competency.query.all()
        assert len(live) == 1
        assert live[0].name == "Bifurcation stenting"
        assert StagedCompetency.query.count() == 0
        assert Ballot.query.count() == 0

        outcome = _db.session.get(ProposalOutcome, subject_id)
        assert outcome.status == "merged"
        assert outcome.live_id == live[0].id

        live_ids = {live_id for _, _, live_id in outcomes if live_id}
        assert live_ids == {live[0].id}

        again = merge_service.try_merge(subject_id)
        assert again.status == merge_service.STATUS_ALREADY_MERGED
        assert Competency.query.count() == 1
