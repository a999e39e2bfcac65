"""Tests for buildmq.formatter module."""

import json

import pytest

from buildmq.errors import InvalidTemplate, UnsupportedMode
from buildmq.formatter import (
    MODE_JSON,
    MODE_RAW,
    expand_placeholders,
    format_message,
    render_event_message,
)
from buildmq.validation import validate_parameter_spec


class TestExpandPlaceholders:
    """Tests for placeholder expansion."""

    def test_braced_and_bare(self):
        params = {"VALUE_NAME": "value_test", "USER": "ci"}
        assert expand_placeholders("a=${VALUE_NAME} by $USER", params) == "a=value_test by ci"

    def test_unresolved_left_literal(self):
        assert expand_placeholders("x=${MISSING}/$ALSO_MISSING", {}) == "x=${MISSING}/$ALSO_MISSING"

    def test_none_value_expands_to_empty(self):
        assert expand_placeholders("k=${NULL}", {"NULL": None}) == "k="

    def test_braces_without_dollar_untouched(self):
        assert expand_placeholders("k={EMPTY}", {"EMPTY": "x"}) == "k={EMPTY}"


def test_json_mode_with_empty_parameters():
    """A key=value template renders exactly its own fields."""
    body = format_message("k1=v1\nk2=v2", {}, MODE_JSON)
    assert json.loads(body) == {"k1": "v1", "k2": "v2"}


def test_raw_mode_is_verbatim():
    body = format_message("k1=v1\nk2=v2", {}, MODE_RAW)
    assert body == b"k1=v1\nk2=v2"


def test_malformed_template_fails_in_json_mode_only():
    with pytest.raises(InvalidTemplate):
        format_message("badline", {}, MODE_JSON)
    assert format_message("badline", {}, MODE_RAW) == b"badline"


def test_json_mode_template_keys_override_parameters():
    params = {"status": "inQueue", "taskName": "job"}
    body = format_message("status=${STATE}\nextra=1", dict(params, STATE="done"), MODE_JSON)
    decoded = json.loads(body)
    assert decoded["status"] == "done"
    assert decoded["taskName"] == "job"
    assert decoded["extra"] == "1"


def test_json_mode_keeps_insertion_order():
    body = format_message("z=1\na=2", {"m": "0"}, MODE_JSON)
    assert list(json.loads(body)) == ["m", "z", "a"]


def test_json_mode_is_deterministic():
    params = {"a": "1", "b": "2"}
    assert format_message("c=3", params, MODE_JSON) == format_message("c=3", params, MODE_JSON)


def test_expansion_happens_before_grammar_check():
    """A placeholder that expands into a second '=' breaks the line."""
    with pytest.raises(InvalidTemplate):
        format_message("k=${V}", {"V": "a=b"}, MODE_JSON)


def test_raw_mode_expands_placeholders():
    assert format_message("job ${JOB} failed", {"JOB": "deploy"}, MODE_RAW) == b"job deploy failed"


def test_unknown_mode_rejected():
    with pytest.raises(UnsupportedMode) as excinfo:
        format_message("a=1", {}, "xml")
    assert excinfo.value.mode == "xml"


def test_json_fields_separate_from_expansion_context():
    body = format_message(
        "user=$USER",
        {"USER": "ci", "SECRET": "hidden", "BRANCH": "main"},
        MODE_JSON,
        fields={"BRANCH": "main"},
    )
    assert json.loads(body) == {"BRANCH": "main", "user": "ci"}


@pytest.mark.parametrize(
    "spec",
    ["a=1", "a=1\nb=", "", "   ", "=x", "nope", "a=b=c", "a=1\r\n\r\nb=2", "${X}=1"],
)
def test_validator_agrees_with_json_formatting(spec):
    """The validator accepts exactly the specs JSON formatting accepts."""
    try:
        format_message(spec, {}, MODE_JSON)
        formatted = True
    except InvalidTemplate:
        formatted = False
    assert validate_parameter_spec(spec).ok is formatted


def test_render_event_message_is_compact_json():
    body = render_event_message({"taskName": "job", "queueId": 3})
    assert body == b'{"taskName":"job","queueId":3}'
