"""Shared request helpers for the committee blueprints.

json_body:       request.get_json(silent=True) or {}, but only objects
camel_keys:      snake_case dict keys → camelCase for API responses
"""
import logging

from flask import request

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """Return the request's JSON object, or {} when no body was sent.

    Raises:
        ValidationError: the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "invalid"})
    return data


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_keys(value):
    """Recursively rename dict keys from snake_case to camelCase.

    Model ``to_dict()`` methods stay snake_case (they double as log and
    test payloads); the HTTP boundary speaks camelCase.
    """
    if isinstance(value, dict):
        return {_camel(k) if isinstance(k, str) else k: camel_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camel_keys(v) for v in value]
    return value
