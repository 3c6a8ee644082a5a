from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from slsa_builder.errors import UploadError
from slsa_builder.signing import SignedEnvelope

_logger = logging.getLogger(__name__)


class TransparencyRecord(BaseModel):
    log_index: int
    integrated_time: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class RekorTransparencyAnchor:
    """Confirms the envelope's bundle carries the Rekor entry created while signing."""

    def anchor(self, envelope: SignedEnvelope) -> TransparencyRecord:
        entry = envelope.bundle.log_entry
        if entry is None:
            raise UploadError("signed bundle has no transparency log entry")
        inner = entry._inner
        if inner.log_index is None:
            raise UploadError("transparency log entry has no log index")
        record = TransparencyRecord(
            log_index=int(inner.log_index),
            integrated_time=int(inner.integrated_time) if inner.integrated_time else None,
        )
        _logger.info("transparency log entry created at index %d", record.log_index)
        return record


class NoopTransparencyAnchor:
    """Anchor that records nothing; for exercising the pipeline offline."""

    def __init__(self) -> None:
        self.anchored: List[SignedEnvelope] = []

    def anchor(self, envelope: SignedEnvelope) -> TransparencyRecord:
        self.anchored.append(envelope)
        return TransparencyRecord(log_index=-1)
