"""
Tests: Proposal Submission Service.

One entry point; the caller's role decides whether the result is a staged
proposal or a live catalog entry.
"""

import pytest

from app.core.exceptions import InvalidReferenceError, ValidationError
from app.models import db as _db
from app.models.catalog import Competency, CompetencyQuestion
from app.models.committee import Ballot
from app.models.staging import StagedCompetency, StagedQuestion
from app.services import ballot_service, proposal_service

OPTIONS = ["Left main", "LAD", "Circumflex", "RCA"]


# ── Competencies ──────────────────────────────────────────────────────────────


class TestSubmitCompetency:
    def test_editor_submission_is_staged(self, editor, tag):
        result = proposal_service.submit_competency(
            editor, "Rotational atherectomy", "Expert", [tag.id], justification="Needed for CTO"
        )

        assert result.merged is False
        staged = _db.session.get(StagedCompetency, result.id)
        assert staged.name == "Rotational atherectomy"
        assert staged.tag_ids == [tag.id]
        assert staged.justification == "Needed for CTO"
        assert staged.proposer_id == editor.id
        assert Competency.query.count() == 0

    def test_chair_submission_goes_live(self, chair, tag, competency):
        result = proposal_service.submit_competency(chair, "Rotational atherectomy", "Expert", [tag.id])

        assert result.merged is True
        live = _db.session.get(Competency, result.id)
        assert live.position == 2
        assert live.tag_ids == [tag.id]
        assert StagedCompetency.query.count() == 0
        assert Ballot.query.count() == 0

    def test_first_chair_competency_gets_position_one(self, chair):
        result = proposal_service.submit_competency(chair, "Femoral access", "Beginner")
        assert _db.session.get(Competency, result.id).position == 1

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_name_required(self, editor, name):
        with pytest.raises(ValidationError):
            proposal_service.submit_competency(editor, name, "Beginner")

    def test_unknown_difficulty(self, editor):
        with pytest.raises(ValidationError, match="difficulty"):
            proposal_service.submit_competency(editor, "Femoral access", "Novice")

    def test_unknown_tag_is_reference_error(self, editor):
        with pytest.raises(InvalidReferenceError):
            proposal_service.submit_competency(editor, "Femoral access", "Beginner", ["ghost"])
        assert StagedCompetency.query.count() == 0


# ── Questions ─────────────────────────────────────────────────────────────────


class TestSubmitQuestion:
    def test_editor_question_is_staged_with_ordered_options(self, editor, competency):
        result = proposal_service.submit_question(
            editor, competency.id, "Which artery supplies the SA node most often?", OPTIONS, 3
        )

        assert result.merged is False
        staged = _db.session.get(StagedQuestion, result.id)
        assert [o.body for o in staged.options] == OPTIONS
        assert [o.label for o in staged.options] == ["A", "B", "C", "D"]
        assert [o.is_correct for o in staged.options] == [False, False, False, True]

    def test_correct_index_two_marks_option_c(self, chair, competency):
        result = proposal_service.submit_question(chair, competency.id, "Pick C", ["A", "B", "C", "D"], 2)

        live = _db.session.get(CompetencyQuestion, result.id)
        correct = [o for o in live.options if o.is_correct]
        assert len(correct) == 1
        assert correct[0].label == "C"
        assert correct[0].body == "C"
        assert live.correct_index == 2

    def test_chair_question_goes_live(self, chair, competency):
        result = proposal_service.submit_question(chair, competency.id, "Prompt", OPTIONS, 0)
        assert result.merged is True
        assert StagedQuestion.query.count() == 0
        assert _db.session.get(CompetencyQuestion, result.id).competency_id == competency.id

    def test_target_competency_must_be_live(self, editor):
        with pytest.raises(InvalidReferenceError):
            proposal_service.submit_question(editor, "not-a-competency", "Prompt", OPTIONS, 0)

    @pytest.mark.parametrize(
        "options, correct_index",
        [
            (OPTIONS[:3], 0),
            (OPTIONS + ["Extra"], 0),
            (["A", "", "C", "D"], 0),
            (OPTIONS, 4),
            (OPTIONS, -1),
            (OPTIONS, True),
        ],
    )
    def test_option_rules(self, editor, competency, options, correct_index):
        with pytest.raises(ValidationError):
            proposal_service.submit_question(editor, competency.id, "Prompt", options, correct_index)
        assert StagedQuestion.query.count() == 0

    def test_prompt_required(self, editor, competency):
        with pytest.raises(ValidationError):
            proposal_service.submit_question(editor, competency.id, "  ", OPTIONS, 0)


# ── Review queue ──────────────────────────────────────────────────────────────


class TestReviewQueue:
    def test_listing_carries_tally_and_viewer_ballot(self, editor, voters, tag):
        first = proposal_service.submit_competency(editor, "Alpha", "Beginner", [tag.id])
        proposal_service.submit_competency(editor, "Beta", "Expert")
        ballot_service.cast_ballot(voters[0], first.id, True)
        ballot_service.cast_ballot(voters[1], first.id, False)

        items = proposal_service.list_staged_competencies(voters[0])

        assert [i["name"] for i in items] == ["Alpha", "Beta"]
        alpha, beta = items
        assert alpha["tally"] == {"for": 1, "against": 1, "total": 2, "approval": 0.5}
        assert alpha["my_vote"] is True
        assert alpha["tags"] == [{"id": tag.id, "name": "IVUS"}]
        assert beta["tally"]["total"] == 0
        assert beta["my_vote"] is None

    def test_question_listing_includes_options(self, editor, competency):
        proposal_service.submit_question(editor, competency.id, "Prompt", OPTIONS, 1)

        items = proposal_service.list_staged_questions(editor)

        assert len(items) == 1
        assert items[0]["competency_name"] == "Coronary angiography"
        assert [o["is_correct"] for o in items[0]["options"]] == [False, True, False, False]
        assert items[0]["my_vote"] is None
