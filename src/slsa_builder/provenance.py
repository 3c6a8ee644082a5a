from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from slsa_builder.attestation import (
    build_statement,
    provenance_filename,
    serialize_statement,
    verify_binary_name,
    verify_digest,
)
from slsa_builder.codec import decode_list
from slsa_builder.context import parse_run_context
from slsa_builder.identity import IdentityProvider, ensure_certificate_binding
from slsa_builder.signing import DSSESigner, SignedEnvelope
from slsa_builder.transparency import TransparencyRecord

_logger = logging.getLogger(__name__)


class TransparencyAnchor(Protocol):
    def anchor(self, envelope: SignedEnvelope) -> TransparencyRecord: ...


class ProvenanceResult(BaseModel):
    binary_name: str
    filename: str
    statement: Dict[str, Any]
    envelope: SignedEnvelope
    record: TransparencyRecord

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)


def generate_provenance(
    *,
    binary_name: str,
    digest: str,
    context_json: str,
    command: str,
    env: str,
    identity_provider: IdentityProvider,
    signer: DSSESigner,
    anchor: TransparencyAnchor,
) -> ProvenanceResult:
    """Build, sign and anchor the provenance for one compiled binary.

    Inputs are validated before any network call. Each stage raises its own
    error type. The signing certificate must name the workflow that ran the
    job, and nothing is returned unless the bundle carries a log entry.
    """
    verify_binary_name(binary_name)
    verify_digest(digest)
    resolved_command = decode_list(command)
    resolved_env = decode_list(env)
    context = parse_run_context(context_json)

    workflow = identity_provider.workflow_identity()
    signing_identity = identity_provider.signing_identity()

    statement = build_statement(
        binary_name=binary_name,
        digest=digest,
        context=context,
        command=resolved_command,
        env=resolved_env,
        builder=workflow,
    )
    envelope = signer.sign(serialize_statement(statement), signing_identity)
    ensure_certificate_binding(envelope.certificate, workflow)
    record = anchor.anchor(envelope)
    return ProvenanceResult(
        binary_name=binary_name,
        filename=provenance_filename(binary_name),
        statement=statement,
        envelope=envelope,
        record=record,
    )


def write_provenance(result: ProvenanceResult, directory: Optional[Path] = None) -> Path:
    path = (directory or Path.cwd()) / result.filename
    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0)
    fd = os.open(path, flags, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(result.envelope.to_json())
        f.write("\n")
    _logger.info("wrote signed provenance to %s", path)
    return path
