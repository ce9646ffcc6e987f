"""
Committee Blueprint — proposals, ballots, tags, catalog ordering and media.

Every route needs a committee member: the JWT middleware resolves
``g.member_id`` and the blueprint's before_request hook loads the member or
answers 401.

Endpoints (all under /api/v1):
    GET    /committee/members
    GET    /committee/tags                         list tags
    POST   /committee/tags                         { "name" }            (chair)
    PUT    /committee/tags/<tag_id>                { "newName" }         (chair)
    DELETE /committee/tags/<tag_id>                                      (chair)

    POST   /committee/proposals/competencies       { name, difficulty, tagIds[], justification? }
    GET    /committee/proposals/competencies       review queue
    POST   /committee/proposals/questions          { competencyId, promptText,
                                                     options[4] (strings or {body,isCorrect}),
                                                     correctOption? (1-based), mediaIds? }
    GET    /committee/proposals/questions          review queue
    GET    /committee/proposals/<subject_id>       pending | merged | rejected
    POST   /committee/proposals/<subject_id>/ballots   { "value": bool }
    POST   /committee/proposals/<subject_id>/reject    { "reason"? }    (chair)

    GET    /catalog/competencies
    PUT    /catalog/competencies/order             { "orderedIds": [...] }  (chair)
    PUT    /catalog/competencies/<id>/tags         { "tagIds": [...] }      (chair)
    GET    /catalog/competencies/<id>/questions

    POST   /media/upload-grants                    { fileName, mimeType, fileSize, stageId | questionId }
    POST   /media                                  { uploadToken, fileName, mimeType, fileSize }
    GET    /media?stageId=...|questionId=...       attachments of one question
    GET    /media/<file_id>                        one attachment

Layer contract:
    - Blueprint: parse the camelCase body, call the service, camelCase the result.
    - NO db.session writes here — services own every transaction.
    - NO role checks here — chair-only guards live in the services.
"""

import logging

from flask import Blueprint, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.models.catalog import OPTION_COUNT
from app.services import (
    ballot_service,
    media_service,
    member_service,
    merge_service,
    ordering_service,
    proposal_service,
    tag_service,
)
from app.utils.errors import E, api_error
from app.utils.helpers import camel_keys, json_body

logger = logging.getLogger(__name__)

committee_bp = Blueprint("committee", __name__, url_prefix="/api/v1")


# ── Authentication + error handlers ────────────────────────────────────────────


@committee_bp.before_request
def _load_member():
    member = member_service.get_member(getattr(g, "member_id", None))
    if member is None:
        reason = getattr(g, "auth_error", None)
        message = "Access token expired" if reason == "expired" else "Committee member authentication required"
        return api_error(E.UNAUTHORIZED, message)
    g.member = member
    return None


@committee_bp.errorhandler(InvalidReferenceError)
def _handle_reference(error: InvalidReferenceError):
    return api_error(E.VALIDATION_REFERENCE, str(error), details=error.details)


@committee_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@committee_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@committee_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})


@committee_bp.errorhandler(PermissionDeniedError)
def _handle_forbidden(error: PermissionDeniedError):
    return api_error(E.FORBIDDEN, str(error))


@committee_bp.errorhandler(SQLAlchemyError)
def _handle_database(error: SQLAlchemyError):
    logger.error("Database error in committee_bp: %s", error)
    return api_error(E.DATABASE, "The change could not be saved. Nothing was applied.")


@committee_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in committee_bp")
    return api_error(E.INTERNAL, "Internal server error")


# ── Body parsing ───────────────────────────────────────────────────────────────


def _parse_options(data: dict) -> tuple[list, int]:
    """Accept options as strings or ``{body, isCorrect}`` objects.

    ``correctOption`` is 1-based; without it exactly one option object must
    carry ``isCorrect: true``.  When both are sent they must agree.
    Returns bodies and the 0-based correct index.
    """
    options = data.get("options")
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        raise ValidationError(
            f"Exactly {OPTION_COUNT} answer options are required",
            details={"options": "count"},
        )

    flags = []
    bodies = []
    for opt in options:
        if isinstance(opt, dict):
            bodies.append(opt.get("body"))
            flags.append(opt.get("isCorrect") is True)
        else:
            bodies.append(opt)
            flags.append(False)

    correct_option = data.get("correctOption")
    if correct_option is not None:
        if isinstance(correct_option, bool) or not isinstance(correct_option, int):
            raise ValidationError(
                "correctOption must be a number between 1 and 4",
                details={"correctOption": correct_option},
            )
        if any(flags) and (flags.count(True) != 1 or flags.index(True) != correct_option - 1):
            raise ValidationError(
                "correctOption disagrees with the options marked isCorrect",
                details={"correctOption": correct_option},
            )
        return bodies, correct_option - 1

    if flags.count(True) != 1:
        raise ValidationError(
            "Mark exactly one option as correct",
            details={"options": "correct_count"},
        )
    return bodies, flags.index(True)


# ═════════════════════════════════════════════════════════════════════════
# Members + tags
# ═════════════════════════════════════════════════════════════════════════


@committee_bp.route("/committee/members", methods=["GET"])
def list_members():
    return jsonify(camel_keys([m.to_dict() for m in member_service.list_members()])), 200


@committee_bp.route("/committee/tags", methods=["GET"])
def list_tags():
    return jsonify(camel_keys([t.to_dict() for t in tag_service.list_tags()])), 200


@committee_bp.route("/committee/tags", methods=["POST"])
def create_tag():
    data = json_body()
    tag = tag_service.create_tag(g.member, data.get("name"))
    return jsonify(camel_keys(tag.to_dict())), 201


@committee_bp.route("/committee/tags/<tag_id>", methods=["PUT"])
def rename_tag(tag_id):
    data = json_body()
    tag = tag_service.rename_tag(g.member, tag_id, data.get("newName", data.get("name")))
    return jsonify(camel_keys(tag.to_dict())), 200


@committee_bp.route("/committee/tags/<tag_id>", methods=["DELETE"])
def delete_tag(tag_id):
    tag_service.delete_tag(g.member, tag_id)
    return jsonify({"ok": True}), 200


# ═════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════


@committee_bp.route("/committee/proposals/competencies", methods=["POST"])
def submit_competency():
    data = json_body()
    result = proposal_service.submit_competency(
        g.member,
        name=data.get("name"),
        difficulty=data.get("difficulty"),
        tag_ids=data.get("tagIds"),
        justification=data.get("justification"),
    )
    return jsonify(result.to_dict()), 201


@committee_bp.route("/committee/proposals/competencies", methods=["GET"])
def list_competency_proposals():
    return jsonify(camel_keys(proposal_service.list_staged_competencies(g.member))), 200


@committee_bp.route("/committee/proposals/questions", methods=["POST"])
def submit_question():
    data = json_body()
    bodies, correct_index = _parse_options(data)
    result = proposal_service.submit_question(
        g.member,
        competency_id=data.get("competencyId"),
        prompt_text=data.get("promptText"),
        options=bodies,
        correct_index=correct_index,
        media_ids=data.get("mediaIds"),
    )
    return jsonify(result.to_dict()), 201


@committee_bp.route("/committee/proposals/questions", methods=["GET"])
def list_question_proposals():
    return jsonify(camel_keys(proposal_service.list_staged_questions(g.member))), 200


@committee_bp.route("/committee/proposals/<subject_id>", methods=["GET"])
def get_proposal(subject_id):
    state = merge_service.get_proposal_state(subject_id)
    body = state.to_dict()
    if isinstance(state, merge_service.Pending):
        ballot = ballot_service.get_ballot(subject_id, g.member.id)
        body["my_vote"] = ballot.value if ballot else None
    return jsonify(camel_keys(body)), 200


@committee_bp.route("/committee/proposals/<subject_id>/ballots", methods=["POST"])
def cast_ballot(subject_id):
    data = json_body()
    if "value" not in data:
        return api_error(E.VALIDATION_REQUIRED, "value is required")

    try:
        result = ballot_service.cast_ballot(g.member, subject_id, data["value"])
    except NotFoundError:
        # Merged by a concurrent ballot: benign for the voter.
        state = merge_service.get_proposal_state(subject_id)
        if isinstance(state, merge_service.Merged):
            return jsonify({"accepted": False, "merged": True, "liveId": state.live_id}), 200
        raise
    return jsonify(result.to_dict()), 200


@committee_bp.route("/committee/proposals/<subject_id>/reject", methods=["POST"])
def reject_proposal(subject_id):
    data = json_body()
    state = merge_service.reject_proposal(g.member, subject_id, data.get("reason"))
    return jsonify(camel_keys(state.to_dict())), 200


# ═════════════════════════════════════════════════════════════════════════
# Live catalog
# ═════════════════════════════════════════════════════════════════════════


@committee_bp.route("/catalog/competencies", methods=["GET"])
def list_competencies():
    items = [c.to_dict() for c in ordering_service.list_competencies()]
    return jsonify(camel_keys(items)), 200


@committee_bp.route("/catalog/competencies/order", methods=["PUT"])
def reorder_competencies():
    data = json_body()
    if "orderedIds" not in data:
        return api_error(E.VALIDATION_REQUIRED, "orderedIds is required")
    ordering_service.reorder(g.member, data["orderedIds"])
    return jsonify({"ok": True}), 200


@committee_bp.route("/catalog/competencies/<competency_id>/tags", methods=["PUT"])
def set_competency_tags(competency_id):
    data = json_body()
    competency = ordering_service.set_competency_tags(g.member, competency_id, data.get("tagIds") or [])
    return jsonify(camel_keys(competency.to_dict())), 200


@committee_bp.route("/catalog/competencies/<competency_id>/questions", methods=["GET"])
def list_questions(competency_id):
    items = [q.to_dict() for q in ordering_service.list_questions(competency_id)]
    return jsonify(camel_keys(items)), 200


# ═════════════════════════════════════════════════════════════════════════
# Media (metadata side of the signed-upload flow)
# ═════════════════════════════════════════════════════════════════════════


@committee_bp.route("/media/upload-grants", methods=["POST"])
def request_upload_grant():
    data = json_body()
    grant = media_service.request_upload_grant(
        g.member,
        file_name=data.get("fileName"),
        mime_type=data.get("mimeType"),
        file_size=data.get("fileSize"),
        stage_id=data.get("stageId"),
        question_id=data.get("questionId"),
    )
    return jsonify(grant), 201


@committee_bp.route("/media", methods=["POST"])
def confirm_upload():
    data = json_body()
    media = media_service.confirm_upload(
        g.member,
        upload_token=data.get("uploadToken"),
        file_name=data.get("fileName"),
        mime_type=data.get("mimeType"),
        file_size=data.get("fileSize"),
    )
    return jsonify(camel_keys(media.to_dict())), 201


@committee_bp.route("/media", methods=["GET"])
def list_media():
    media = media_service.list_media(
        stage_id=request.args.get("stageId"),
        question_id=request.args.get("questionId"),
    )
    return jsonify(camel_keys([m.to_dict() for m in media])), 200


@committee_bp.route("/media/<file_id>", methods=["GET"])
def get_media(file_id):
    return jsonify(camel_keys(media_service.get_media(file_id).to_dict())), 200
