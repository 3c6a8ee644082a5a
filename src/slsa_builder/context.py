from __future__ import annotations

import json
import os
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from slsa_builder.errors import ContextDecodeError
from slsa_builder.settings import GITHUB_CONTEXT_ENV


class RunContext(BaseModel):
    """Read-only snapshot of the GitHub `github` context.

    The context's `token` is not a field: it is removed from the decoded
    mapping before this model is built and unknown keys are ignored, so a
    RunContext never carries it.
    """

    repository: str = ""
    action_path: str = ""
    workflow: str = ""
    event_name: str = ""
    event: Any = None
    sha: str = ""
    ref_type: str = ""
    ref: str = ""
    base_ref: str = ""
    head_ref: str = ""
    actor: str = ""
    run_number: str = ""
    server_url: str = ""
    run_id: str = ""
    run_attempt: str = ""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)


def parse_run_context(blob: str) -> RunContext:
    try:
        raw = json.loads(blob)
    except ValueError as exc:
        raise ContextDecodeError(f"run context is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ContextDecodeError("run context must be a JSON object")
    raw.pop("token", None)
    # null strings in the context read as empty, the way GitHub renders them.
    cleaned = {k: ("" if v is None and k != "event" else v) for k, v in raw.items()}
    try:
        return RunContext.model_validate(cleaned)
    except ValidationError as exc:
        raise ContextDecodeError(f"run context has unexpected shape: {exc}") from exc


def run_context_from_env(environ: Optional[Mapping[str, str]] = None) -> RunContext:
    env = os.environ if environ is None else environ
    blob = env.get(GITHUB_CONTEXT_ENV)
    if blob is None:
        raise ContextDecodeError(f"environment variable {GITHUB_CONTEXT_ENV} not present")
    return parse_run_context(blob)
