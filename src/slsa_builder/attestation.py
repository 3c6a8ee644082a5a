from __future__ import annotations

import copy
import json
import re
from typing import Any, Dict, List

from slsa_builder.config import SUPPORTED_CONFIG_VERSION
from slsa_builder.context import RunContext
from slsa_builder.errors import InvalidDigestError, InvalidNameError
from slsa_builder.identity import WorkflowIdentity

STATEMENT_TYPE = "https://in-toto.io/Statement/v1"
PREDICATE_TYPE = "https://slsa.dev/provenance/v0.2"
BUILD_TYPE = "https://github.com/slsa-framework/slsa-github-generator-go@v1"
PARAMETERS_VERSION = 1

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{64}")
_BINARY_NAME = re.compile(r"[A-Za-z0-9_-]")


def verify_digest(digest: str) -> str:
    if not isinstance(digest, str) or not _HEX_DIGEST.fullmatch(digest):
        raise InvalidDigestError(f"sha256 digest is not valid: {digest}")
    return digest


def verify_binary_name(name: str) -> str:
    if not name:
        raise InvalidNameError("empty provenance name")
    for char in name:
        if not _BINARY_NAME.fullmatch(char):
            raise InvalidNameError(f"invalid filename: found character {char!r} in {name}")
    return name


def provenance_filename(name: str) -> str:
    return f"{verify_binary_name(name)}.intoto.jsonl"


def _source_uri(context: RunContext) -> str:
    server = context.server_url.rstrip("/")
    uri = f"git+{server}/{context.repository}" if server else f"git+{context.repository}"
    if context.ref:
        uri = f"{uri}@{context.ref}"
    return uri


def build_statement(
    *,
    binary_name: str,
    digest: str,
    context: RunContext,
    command: List[str],
    env: List[str],
    builder: WorkflowIdentity,
) -> Dict[str, Any]:
    """Assemble the unsigned in-toto statement for one build step.

    `builder` is the workflow identity read from the CI platform's token; it is
    the only source of the builder id.
    """
    verify_binary_name(binary_name)
    verify_digest(digest)
    if not isinstance(builder, WorkflowIdentity):
        raise TypeError("builder must be a WorkflowIdentity")

    source_uri = _source_uri(context)
    return {
        "_type": STATEMENT_TYPE,
        "predicateType": PREDICATE_TYPE,
        "subject": [{"name": binary_name, "digest": {"sha256": digest.lower()}}],
        "predicate": {
            "builder": {"id": builder.builder_id},
            "buildType": BUILD_TYPE,
            "invocation": {
                "configSource": {
                    "uri": source_uri,
                    "digest": {"sha1": context.sha},
                    "entryPoint": context.workflow,
                },
                # Trigger parameters from the event.
                "parameters": {
                    "version": PARAMETERS_VERSION,
                    "event_name": context.event_name,
                    "event_payload": copy.deepcopy(context.event),
                    "ref_type": context.ref_type,
                    "ref": context.ref,
                    "base_ref": context.base_ref,
                    "head_ref": context.head_ref,
                    "actor": context.actor,
                    "sha1": context.sha,
                },
                # Facts the workflow author cannot set.
                "environment": {
                    "github_event_name": context.event_name,
                    "github_run_number": context.run_number,
                    "github_run_id": context.run_id,
                    "github_run_attempt": context.run_attempt,
                },
            },
            "buildConfig": {
                "version": SUPPORTED_CONFIG_VERSION,
                "steps": [{"command": list(command), "env": list(env)}],
            },
            "materials": [{"uri": source_uri, "digest": {"sha1": context.sha}}],
        },
    }


def serialize_statement(statement: Dict[str, Any]) -> bytes:
    return json.dumps(statement, sort_keys=True, separators=(",", ":")).encode("utf-8")
