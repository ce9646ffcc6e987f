"""
Tests: Ordering Manager and live-catalog reads.
"""

import pytest

from app.core.exceptions import InvalidReferenceError, NotFoundError, PermissionDeniedError, ValidationError
from app.models import db as _db
from app.models.catalog import Competency
from app.services import ordering_service, proposal_service


@pytest.fixture()
def catalog(make_competency):
    return [
        make_competency("Femoral access", 1),
        make_competency("Radial access", 2),
        make_competency("Closure devices", 3),
    ]


def _positions(ids):
    return [_db.session.get(Competency, cid).position for cid in ids]


class TestReorder:
    def test_reorder_assigns_contiguous_positions(self, chair, catalog):
        first, second, third = (c.id for c in catalog)

        ordering_service.reorder(chair, [third, first, second])

        assert _positions([third, first, second]) == [1, 2, 3]
        assert [c.id for c in ordering_service.list_competencies()] == [third, first, second]

    def test_missing_id_rejected_and_positions_unchanged(self, chair, catalog):
        first, second, third = (c.id for c in catalog)

        with pytest.raises(ValidationError) as exc:
            ordering_service.reorder(chair, [third, first])

        assert exc.value.details["missing"] == [second]
        assert _positions([first, second, third]) == [1, 2, 3]

    def test_unknown_id_rejected(self, chair, catalog):
        ids = [c.id for c in catalog]
        with pytest.raises(ValidationError):
            ordering_service.reorder(chair, ids + ["stranger"])
        assert _positions(ids) == [1, 2, 3]

    def test_duplicate_id_rejected(self, chair, catalog):
        first, second, _ = (c.id for c in catalog)
        with pytest.raises(ValidationError, match="duplicate"):
            ordering_service.reorder(chair, [first, second, first])

    def test_editor_cannot_reorder(self, editor, catalog):
        with pytest.raises(PermissionDeniedError):
            ordering_service.reorder(editor, [c.id for c in reversed(catalog)])
        assert _positions([c.id for c in catalog]) == [1, 2, 3]

    def test_new_competency_appends_after_reorder(self, chair, catalog):
        ids = [c.id for c in catalog]
        ordering_service.reorder(chair, list(reversed(ids)))

        result = proposal_service.submit_competency(chair, "Hemostasis", "Beginner")

        assert _db.session.get(Competency, result.id).position == 4


class TestCompetencyTags:
    def test_chair_replaces_tag_set(self, chair, competency, tag, make_tag):
        other = make_tag("OCT")
        updated = ordering_service.set_competency_tags(chair, competency.id, [other.id, tag.id])
        assert set(updated.tag_ids) == {other.id, tag.id}

        updated = ordering_service.set_competency_tags(chair, competency.id, [])
        assert updated.tag_ids == []

    def test_unknown_tag(self, chair, competency):
        with pytest.raises(InvalidReferenceError):
            ordering_service.set_competency_tags(chair, competency.id, ["ghost"])

    def test_unknown_competency(self, chair):
        with pytest.raises(NotFoundError):
            ordering_service.set_competency_tags(chair, "ghost", [])

    def test_editor_cannot_edit_tags(self, editor, competency, tag):
        with pytest.raises(PermissionDeniedError):
            ordering_service.set_competency_tags(editor, competency.id, [tag.id])


class TestListQuestions:
    def test_lists_live_questions_for_competency(self, chair, competency):
        proposal_service.submit_question(chair, competency.id, "Q1", ["a", "b", "c", "d"], 0)

        questions = ordering_service.list_questions(competency.id)

        assert [q.prompt_text for q in questions] == ["Q1"]
        assert [o.label for o in questions[0].options] == ["A", "B", "C", "D"]

    def test_unknown_competency(self):
        with pytest.raises(NotFoundError):
            ordering_service.list_questions("ghost")
