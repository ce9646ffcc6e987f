"""
Tests: Merge Coordinator.

Quorum 4, threshold 0.5 (TestingConfig inherits the defaults).  A merge
creates the live entity, moves media, and leaves no staged row or ballots.
"""

import pytest

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models import db as _db
from app.models.catalog import Competency, CompetencyQuestion
from app.models.committee import Ballot, ProposalOutcome
from app.models.media import MediaAttachment
from app.models.staging import StagedCompetency, StagedQuestion, StagedQuestionOption
from app.services import ballot_service, media_service, merge_service, proposal_service
from app.services.tally import Tally

OPTIONS = ["Aspirin", "Heparin", "Bivalirudin", "Tirofiban"]


def _vote(voters, subject_id, values):
    result = None
    for voter, value in zip(voters, values):
        result = ballot_service.cast_ballot(voter, subject_id, value)
    return result


def _comparable(competency: Competency) -> dict:
    d = competency.to_dict()
    for key in ("id", "position", "created_at"):
        d.pop(key)
    return d


class TestPredicate:
    @pytest.mark.parametrize(
        "for_count, against_count, eligible",
        [
            (2, 2, True),
            (4, 0, True),
            (3, 1, True),
            (1, 2, False),
            (3, 0, False),
            (1, 3, False),
        ],
    )
    def test_quorum_and_threshold(self, for_count, against_count, eligible):
        assert merge_service.is_eligible(Tally(for_count, against_count)) is eligible

    def test_threshold_is_configurable(self, app):
        app.config["COMMITTEE_APPROVAL_THRESHOLD"] = 0.75
        try:
            assert merge_service.is_eligible(Tally(2, 2)) is False
            assert merge_service.is_eligible(Tally(3, 1)) is True
        finally:
            app.config["COMMITTEE_APPROVAL_THRESHOLD"] = 0.5


class TestCompetencyMerge:
    def test_split_vote_at_quorum_merges(self, editor, voters, tag):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner", [tag.id])

        result = _vote(voters, proposal.id, [True, False, True, False])

        assert result.merged is True
        live = _db.session.get(Competency, result.live_id)
        assert live.name == "Radial access"
        assert live.tag_ids == [tag.id]
        assert live.position == 1
        assert StagedCompetency.query.count() == 0
        assert Ballot.query.count() == 0
        outcome = _db.session.get(ProposalOutcome, proposal.id)
        assert outcome.status == "merged"
        assert outcome.live_id == live.id

    def test_below_quorum_stays_pending(self, editor, voters):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")

        result = _vote(voters, proposal.id, [True, False, False])

        assert result.merged is False
        assert Competency.query.count() == 0
        state = merge_service.get_proposal_state(proposal.id)
        assert isinstance(state, merge_service.Pending)
        assert state.tally == Tally(1, 2)

    def test_majority_against_stays_pending(self, editor, voters):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")

        result = _vote(voters, proposal.id, [False, False, False, True, True])

        assert result.merged is False
        assert Ballot.query.filter_by(subject_id=proposal.id).count() == 5

    def test_merged_competency_appends_to_catalog(self, editor, voters, competency):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        result = _vote(voters, proposal.id, [True] * 4)
        assert _db.session.get(Competency, result.live_id).position == competency.position + 1

    def test_chair_bypass_is_equivalent_to_voted_merge(self, chair, editor, voters, tag):
        direct = proposal_service.submit_competency(chair, "Radial access", "Intermediate", [tag.id])
        staged = proposal_service.submit_competency(editor, "Radial access", "Intermediate", [tag.id])
        voted = _vote(voters, staged.id, [True] * 4)

        a = _db.session.get(Competency, direct.id)
        b = _db.session.get(Competency, voted.live_id)
        assert _comparable(a) == _comparable(b)
        assert {a.position, b.position} == {1, 2}
        assert StagedCompetency.query.count() == 0
        assert Ballot.query.count() == 0


class TestQuestionMerge:
    def test_question_merge_copies_options_in_order(self, editor, voters, competency):
        proposal = proposal_service.submit_question(editor, competency.id, "Which is a GP IIb/IIIa inhibitor?", OPTIONS, 3)

        result = _vote(voters, proposal.id, [True] * 4)

        live = _db.session.get(CompetencyQuestion, result.live_id)
        assert live.competency_id == competency.id
        assert [o.body for o in live.options] == OPTIONS
        assert [o.is_correct for o in live.options] == [False, False, False, True]
        assert StagedQuestion.query.count() == 0
        assert StagedQuestionOption.query.count() == 0

    def test_media_is_reassigned_at_merge(self, editor, voters, competency):
        proposal = proposal_service.submit_question(editor, competency.id, "Identify the lesion", OPTIONS, 0)
        grant = media_service.request_upload_grant(editor, "angio.png", "image/png", 2048, stage_id=proposal.id)
        media = media_service.confirm_upload(editor, grant["uploadToken"], "angio.png", "image/png", 2048)
        media_id = media.id

        result = _vote(voters, proposal.id, [True] * 4)

        moved = _db.session.get(MediaAttachment, media_id)
        assert moved.question_id == result.live_id
        assert moved.staged_question_id is None
        assert MediaAttachment.query.count() == 1


class TestIdempotence:
    def test_try_merge_after_merge_reports_already_merged(self, editor, voters):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        merged = _vote(voters, proposal.id, [True] * 4)

        again = merge_service.try_merge(proposal.id)

        assert again.status == merge_service.STATUS_ALREADY_MERGED
        assert again.live_id == merged.live_id
        assert Competency.query.count() == 1

    def test_recorded_outcome_wins_over_staged_row(self, editor, voters):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        for voter in voters[:4]:
            _db.session.add(Ballot(subject_type="competency", subject_id=proposal.id, voter_id=voter.id, value=True))
        _db.session.add(ProposalOutcome(
            subject_id=proposal.id, subject_type="competency", status="merged", live_id="winner-id",
        ))
        _db.session.commit()

        result = merge_service.try_merge(proposal.id)

        assert result.status == merge_service.STATUS_ALREADY_MERGED
        assert result.live_id == "winner-id"
        assert Competency.query.count() == 0

    def test_ballot_after_merge_is_not_found(self, editor, voters, make_member):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        _vote(voters, proposal.id, [True] * 4)
        late = make_member("late@committee.test")

        with pytest.raises(NotFoundError):
            ballot_service.cast_ballot(late, proposal.id, True)
        assert Ballot.query.count() == 0

    def test_unknown_subject_state(self):
        with pytest.raises(NotFoundError):
            merge_service.get_proposal_state("never-existed")


class TestRejectProposal:
    def test_chair_rejects_pending_question(self, chair, editor, voters, competency):
        proposal = proposal_service.submit_question(editor, competency.id, "Prompt", OPTIONS, 1)
        grant = media_service.request_upload_grant(editor, "clip.mp4", "video/mp4", 4096, stage_id=proposal.id)
        media_service.confirm_upload(editor, grant["uploadToken"], "clip.mp4", "video/mp4", 4096)
        _vote(voters, proposal.id, [False, False])

        rejected = merge_service.reject_proposal(chair, proposal.id, "Duplicate of Q12")

        assert rejected.reason == "Duplicate of Q12"
        assert StagedQuestion.query.count() == 0
        assert Ballot.query.count() == 0
        assert MediaAttachment.query.count() == 0
        state = merge_service.get_proposal_state(proposal.id)
        assert isinstance(state, merge_service.Rejected)
        assert merge_service.try_merge(proposal.id).status == merge_service.STATUS_REJECTED

    def test_editor_cannot_reject(self, editor):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        with pytest.raises(PermissionDeniedError):
            merge_service.reject_proposal(editor, proposal.id)
        assert StagedCompetency.query.count() == 1

    def test_reject_merged_proposal_is_not_found(self, chair, editor, voters):
        proposal = proposal_service.submit_competency(editor, "Radial access", "Beginner")
        _vote(voters, proposal.id, [True] * 4)
        with pytest.raises(NotFoundError):
            merge_service.reject_proposal(chair, proposal.id)
