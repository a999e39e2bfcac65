"""Lookup of failure causes for a finished run via the build host's JSON API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests


LOGGER = logging.getLogger(__name__)

FAILURE_CAUSES_QUERY = (
    "api/json?depth=2&tree=actions[foundFailureCauses[categories,description,id,name]]"
)
CAUSE_SEPARATOR = "; "


def failure_causes_url(run_url: str) -> str:
    base = run_url if run_url.endswith("/") else run_url + "/"
    return base + FAILURE_CAUSES_QUERY


def extract_failure_causes(response: Dict[str, Any]) -> List[str]:
    """
    Extract "name: description" entries from a run API response.

    Only the first action carrying `foundFailureCauses` is used. Entries that
    are not objects are skipped.
    """
    causes: List[str] = []
    actions = response.get("actions")
    if not isinstance(actions, list):
        return causes
    for action in actions:
        if not isinstance(action, dict) or not action:
            continue
        if "foundFailureCauses" not in action:
            continue
        found = action.get("foundFailureCauses")
        if not isinstance(found, list):
            break
        for cause in found:
            if not isinstance(cause, dict):
                LOGGER.debug("Skipping malformed failure cause entry: %r", cause)
                continue
            causes.append(f"{cause.get('name', '')}: {cause.get('description', '')}")
        break
    return causes


def fetch_failure_cause(run_url: str, timeout_seconds: float = 5.0) -> str:
    """
    Fetch and join the failure causes of a run.

    Lookup errors are logged and yield an empty string, so a failing lookup
    never prevents the notification from being sent.
    """
    url = failure_causes_url(run_url)
    try:
        response = requests.get(
            url,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        LOGGER.warning("Failure cause lookup failed for %s: %s", url, exc)
        return ""

    if not isinstance(data, dict):
        return ""
    return CAUSE_SEPARATOR.join(extract_failure_causes(data))
