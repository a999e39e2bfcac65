"""Validation of line-based `key=value` parameter specifications."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from buildmq.errors import InvalidTemplate


ERROR_EMPTY_SPEC = "EmptySpec"
ERROR_MALFORMED_LINE = "MalformedLine"
ERROR_EMPTY_KEY = "EmptyKey"

_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SpecValidation:
    """Outcome of validating a parameter specification."""

    ok: bool
    kind: Optional[str] = None
    line: Optional[str] = None
    message: Optional[str] = None


def parse_parameter_spec(spec: Optional[str]) -> List[Tuple[str, str]]:
    """
    Parse a `key=value` specification into ordered pairs.

    Blank lines are skipped. Keys are stripped of surrounding whitespace,
    values are kept as written.

    Args:
        spec: Newline separated `key=value` lines.

    Returns:
        List of (key, value) pairs in input order.

    Raises:
        InvalidTemplate: If the spec is blank, a line does not contain exactly
            one '=', or a key is blank.
    """
    if spec is None or not spec.strip():
        raise InvalidTemplate(ERROR_EMPTY_SPEC, "Parameters required")

    pairs: List[Tuple[str, str]] = []
    for line in _LINE_SPLIT.split(spec):
        if not line.strip():
            continue
        if line.count("=") != 1:
            raise InvalidTemplate(
                ERROR_MALFORMED_LINE,
                f"Incorrect data format for value [{line}]. Expected format is key=value",
                line=line,
            )
        key, value = line.split("=", 1)
        if not key.strip():
            raise InvalidTemplate(
                ERROR_EMPTY_KEY,
                f"Empty key for : [{line}]",
                line=line,
            )
        pairs.append((key.strip(), value))

    return pairs


def validate_parameter_spec(spec: Optional[str]) -> SpecValidation:
    """Validate a parameter specification without raising."""
    try:
        parse_parameter_spec(spec)
    except InvalidTemplate as exc:
        return SpecValidation(ok=False, kind=exc.kind, line=exc.line, message=str(exc))
    return SpecValidation(ok=True)
