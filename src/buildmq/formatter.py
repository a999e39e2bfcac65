"""
Message construction from templates and collected parameters.

Two body modes are supported:
- json: the expanded template is a `key=value` list rendered as a flat JSON
  object on top of the collected parameters
- raw: the expanded template is sent verbatim
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Optional

from buildmq.errors import UnsupportedMode
from buildmq.validation import parse_parameter_spec


LOGGER = logging.getLogger(__name__)

MODE_JSON = "json"
MODE_RAW = "raw"
MESSAGE_MODES = {MODE_JSON, MODE_RAW}

DEFAULT_CHARSET = "utf-8"

_PLACEHOLDER_PATTERN = re.compile(
    r"\$(?:\{(?P<braced>[A-Za-z_][A-Za-z0-9_.]*)\}|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))"
)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def expand_placeholders(template: str, params: Mapping[str, Any]) -> str:
    """
    Replace `${NAME}` and `$NAME` placeholders with parameter values.

    Unknown names are left in place as literal text.
    """

    def replace(match: re.Match) -> str:
        name = match.group("braced") or match.group("bare")
        if name in params:
            return _to_text(params[name])
        return match.group(0)

    return _PLACEHOLDER_PATTERN.sub(replace, template)


def encode_json(payload: Mapping[str, Any]) -> bytes:
    """Serialize a flat mapping as compact JSON, keeping insertion order."""
    return json.dumps(dict(payload), separators=(",", ":"), default=str).encode(DEFAULT_CHARSET)


def format_message(
    template: str,
    params: Mapping[str, Any],
    mode: str = MODE_JSON,
    fields: Optional[Mapping[str, Any]] = None,
) -> bytes:
    """
    Build a message body from a template.

    Args:
        template: Message template, possibly containing placeholders.
        params: Collected parameters used for placeholder expansion.
        mode: "json" or "raw".
        fields: Base fields of a JSON body. Defaults to `params`; pass a
            narrower mapping to keep expansion-only values (such as the
            process environment) out of the message.

    Returns:
        Encoded message body.

    Raises:
        InvalidTemplate: In json mode, if a line fails the `key=value` grammar.
        UnsupportedMode: If the mode is unknown.
    """
    if mode not in MESSAGE_MODES:
        raise UnsupportedMode(mode)

    expanded = expand_placeholders(template or "", params)

    if mode == MODE_RAW:
        LOGGER.debug("Expanded raw template: %r", expanded)
        return expanded.encode(DEFAULT_CHARSET)

    payload = dict(params if fields is None else fields)
    for key, value in parse_parameter_spec(expanded):
        payload[key] = value

    body = encode_json(payload)
    LOGGER.debug("Rendered JSON message with %d field(s)", len(payload))
    return body


def render_event_message(params: Mapping[str, Any]) -> bytes:
    """Render the fixed-schema JSON message of a lifecycle event."""
    return encode_json(params)
