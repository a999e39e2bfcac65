"""
Collection of event-scoped parameters.

Each triggering event gets a fresh ordered mapping built from the context the
host platform hands over. Nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


ParameterSet = Dict[str, Any]

ID_SUFFIX = "Id"
STATUS_FAILURE = "FAILURE"
STATUS_IN_QUEUE = "inQueue"

BUILD_USER_ID = "BUILD_USER_ID"
BUILD_USER_NAME = "BUILD_USER_NAME"


@dataclass(frozen=True)
class UserIdentity:
    """User that triggered a build, when the trigger cause carries one."""

    user_id: str
    user_name: Optional[str] = None


def _id_parameters(parameters: Optional[Mapping[str, Any]]) -> ParameterSet:
    """Select parameters whose key ends with the `Id` suffix."""
    selected: ParameterSet = {}
    for key, value in (parameters or {}).items():
        if str(key).endswith(ID_SUFFIX):
            selected[str(key)] = value
    return selected


def _queue_number(queue_id: Any) -> Any:
    try:
        return int(queue_id)
    except (TypeError, ValueError):
        return queue_id


def queue_item_url(root_url: str, queue_id: int) -> str:
    """Build the status URL of a queue item from the platform root URL."""
    root = root_url if root_url.endswith("/") else root_url + "/"
    return f"{root}queue/item/{queue_id}/api/json?pretty=true"


def collect_finished(
    job_name: str,
    run_id: str,
    run_url: str,
    parameters: Optional[Mapping[str, Any]] = None,
    failure_cause: str = "",
) -> ParameterSet:
    """
    Collect parameters for a failed job completion.

    Args:
        job_name: Name of the finished job.
        run_id: Identifier of the run.
        run_url: Absolute URL of the run.
        parameters: Build parameters of the run.
        failure_cause: Optional failure description.

    Returns:
        ParameterSet with the fixed status fields plus every `*Id` parameter.
    """
    params: ParameterSet = {
        "taskName": job_name,
        "url": run_url,
        "status": STATUS_FAILURE,
        "taskJobBuildId": str(run_id),
        "failureCause": failure_cause,
    }
    params.update(_id_parameters(parameters))
    return params


def collect_queued(
    queue_id: int,
    job_name: str,
    queue_url: str,
    parameters: Optional[Mapping[str, Any]] = None,
) -> ParameterSet:
    """Collect parameters for a job entering the wait queue."""
    params = _id_parameters(parameters)
    params["taskName"] = job_name
    params["status"] = STATUS_IN_QUEUE
    params["queueId"] = _queue_number(queue_id)
    params["url"] = queue_url
    return params


def explicit_fields(
    build_parameters: Optional[Mapping[str, Any]] = None,
    user: Optional[UserIdentity] = None,
) -> ParameterSet:
    """
    Fields an explicit JSON publish may carry: build parameters plus the
    triggering user identity. Environment variables are never included.
    """
    params: ParameterSet = {}
    for key, value in (build_parameters or {}).items():
        params[str(key)] = value
    if user is not None:
        params[BUILD_USER_ID] = user.user_id
        params[BUILD_USER_NAME] = user.user_name
    return params


def collect_explicit(
    build_parameters: Optional[Mapping[str, Any]] = None,
    environment: Optional[Mapping[str, Any]] = None,
    user: Optional[UserIdentity] = None,
) -> ParameterSet:
    """
    Collect the expansion context of an explicit builder-triggered publish.

    Environment variables are merged first, build parameters override them,
    and the triggering user identity (if any) overrides both. Use
    `explicit_fields` for the values that may appear in a JSON body.
    """
    params: ParameterSet = {str(key): value for key, value in (environment or {}).items()}
    params.update(explicit_fields(build_parameters, user))
    return params
