"""
Tests: structured log formatting of committee events.
"""

import json
import logging

from app.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord("app.services.merge_service", logging.INFO, __file__, 1, "Proposal merged", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_carries_event_fields():
    line = JSONFormatter().format(_record(event_type="proposal.merged", subject_id="s-1", live_id="c-1"))

    entry = json.loads(line)
    assert entry["message"] == "Proposal merged"
    assert entry["event_type"] == "proposal.merged"
    assert entry["subject_id"] == "s-1"
    assert entry["live_id"] == "c-1"
    assert "member_id" not in entry


def test_json_keeps_false_ballot_value():
    entry = json.loads(JSONFormatter().format(_record(event_type="ballot.cast", value=False)))
    assert entry["value"] is False


def test_readable_shows_event_and_subject():
    line = ReadableFormatter().format(_record(event_type="proposal.merged", subject_id="abcdef123456"))
    assert "Proposal merged <proposal.merged abcdef12>" in line
