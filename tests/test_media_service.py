"""
Tests: question media metadata (upload grants, confirmation, re-association).
"""

import jwt
import pytest

from app.core.exceptions import InvalidReferenceError, ValidationError
from app.models import db as _db
from app.models.media import MediaAttachment
from app.services import jwt_service, media_service, proposal_service

OPTIONS = ["a", "b", "c", "d"]


@pytest.fixture()
def staged_question(editor, competency):
    return proposal_service.submit_question(editor, competency.id, "Identify the view", OPTIONS, 0)


class TestUploadGrant:
    def test_grant_is_scoped_to_parent(self, app, editor, staged_question):
        grant = media_service.request_upload_grant(
            editor, "LAO Cranial.PNG", "image/png", 1024, stage_id=staged_question.id
        )

        assert grant["storagePath"] == f"questions/{staged_question.id}/{grant['fileId']}.png"
        assert grant["bucket"] == app.config["MEDIA_BUCKET"]
        claims = jwt_service.decode_upload_grant(grant["uploadToken"])
        assert claims["sub"] == editor.id
        assert claims["stage_id"] == staged_question.id
        assert "question_id" not in claims

    @pytest.mark.parametrize("mime", ["application/pdf", "text/html", ""])
    def test_mime_allow_list(self, editor, staged_question, mime):
        with pytest.raises(ValidationError):
            media_service.request_upload_grant(editor, "file.bin", mime, 10, stage_id=staged_question.id)

    def test_size_ceiling(self, app, editor, staged_question):
        too_big = app.config["MEDIA_MAX_FILE_SIZE"] + 1
        with pytest.raises(ValidationError, match="limit"):
            media_service.request_upload_grant(editor, "big.mp4", "video/mp4", too_big, stage_id=staged_question.id)

    def test_parent_must_be_exactly_one(self, chair, editor, competency, staged_question):
        live = proposal_service.submit_question(chair, competency.id, "Live", OPTIONS, 1)
        with pytest.raises(ValidationError):
            media_service.request_upload_grant(
                editor, "a.png", "image/png", 10, stage_id=staged_question.id, question_id=live.id
            )
        with pytest.raises(ValidationError):
            media_service.request_upload_grant(editor, "a.png", "image/png", 10)

    def test_parent_must_exist(self, editor):
        with pytest.raises(InvalidReferenceError):
            media_service.request_upload_grant(editor, "a.png", "image/png", 10, stage_id="ghost")


class TestConfirmUpload:
    def test_confirm_persists_metadata(self, editor, staged_question):
        grant = media_service.request_upload_grant(editor, "view.jpg", "image/jpeg", 512, stage_id=staged_question.id)

        media = media_service.confirm_upload(editor, grant["uploadToken"], "view.jpg", "image/jpeg", 512)

        assert media.id == grant["fileId"]
        assert media.storage_path == grant["storagePath"]
        assert media.staged_question_id == staged_question.id
        assert media.question_id is None
        assert media.file_type == "image"
        assert [m.id for m in media_service.list_media(stage_id=staged_question.id)] == [media.id]

    def test_confirm_must_match_grant(self, editor, staged_question):
        grant = media_service.request_upload_grant(editor, "view.jpg", "image/jpeg", 512, stage_id=staged_question.id)
        with pytest.raises(ValidationError, match="does not match"):
            media_service.confirm_upload(editor, grant["uploadToken"], "view.jpg", "image/jpeg", 999)

    def test_grant_belongs_to_requester(self, editor, chair, staged_question):
        grant = media_service.request_upload_grant(editor, "view.jpg", "image/jpeg", 512, stage_id=staged_question.id)
        with pytest.raises(ValidationError, match="another member"):
            media_service.confirm_upload(chair, grant["uploadToken"], "view.jpg", "image/jpeg", 512)

    def test_tampered_grant(self, editor, staged_question):
        forged = jwt.encode({"sub": editor.id, "type": "upload"}, "wrong-secret-wrong-secret-wrong-secret", algorithm="HS256")
        with pytest.raises(ValidationError, match="invalid"):
            media_service.confirm_upload(editor, forged, "view.jpg", "image/jpeg", 512)

    def test_expired_grant(self, app, editor, staged_question):
        app.config["UPLOAD_GRANT_EXPIRES"] = -1
        try:
            grant = media_service.request_upload_grant(
                editor, "view.jpg", "image/jpeg", 512, stage_id=staged_question.id
            )
        finally:
            app.config["UPLOAD_GRANT_EXPIRES"] = 60
        with pytest.raises(ValidationError, match="expired"):
            media_service.confirm_upload(editor, grant["uploadToken"], "view.jpg", "image/jpeg", 512)


class TestAttachOnSubmit:
    def test_media_ids_follow_new_submission(self, editor, competency, staged_question):
        grant = media_service.request_upload_grant(editor, "v.webm", "video/webm", 64, stage_id=staged_question.id)
        media = media_service.confirm_upload(editor, grant["uploadToken"], "v.webm", "video/webm", 64)
        media_id = media.id

        second = proposal_service.submit_question(
            editor, competency.id, "Second take", OPTIONS, 2, media_ids=[media_id]
        )

        assert _db.session.get(MediaAttachment, media_id).staged_question_id == second.id

    def test_foreign_media_ids_rejected(self, chair, editor, competency, staged_question):
        grant = media_service.request_upload_grant(editor, "v.webm", "video/webm", 64, stage_id=staged_question.id)
        media = media_service.confirm_upload(editor, grant["uploadToken"], "v.webm", "video/webm", 64)

        with pytest.raises(InvalidReferenceError):
            proposal_service.submit_question(chair, competency.id, "Steal", OPTIONS, 0, media_ids=[media.id])
        assert _db.session.get(MediaAttachment, media.id).staged_question_id == staged_question.id

    def test_media_on_live_question_cannot_move(self, chair, editor, competency):
        live = proposal_service.submit_question(chair, competency.id, "Live view", OPTIONS, 1)
        grant = media_service.request_upload_grant(editor, "v.png", "image/png", 64, question_id=live.id)
        media = media_service.confirm_upload(editor, grant["uploadToken"], "v.png", "image/png", 64)
        media_id = media.id

        with pytest.raises(InvalidReferenceError):
            proposal_service.submit_question(editor, competency.id, "Take it", OPTIONS, 0, media_ids=[media_id])

        reloaded = _db.session.get(MediaAttachment, media_id)
        assert reloaded.question_id == live.id
        assert reloaded.staged_question_id is None
        assert len(proposal_service.list_staged_questions(editor)) == 0

    def test_media_on_another_members_proposal_cannot_move(self, editor, make_member, competency, staged_question):
        other = make_member("other@committee.test")
        grant = media_service.request_upload_grant(other, "v.png", "image/png", 64, stage_id=staged_question.id)
        media = media_service.confirm_upload(other, grant["uploadToken"], "v.png", "image/png", 64)
        media_id = media.id

        with pytest.raises(InvalidReferenceError):
            proposal_service.submit_question(other, competency.id, "Mine now", OPTIONS, 0, media_ids=[media_id])
        assert _db.session.get(MediaAttachment, media_id).staged_question_id == staged_question.id
