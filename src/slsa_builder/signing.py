from __future__ import annotations

import json
import logging
from typing import Any, Optional

from cryptography import x509
from sigstore.dsse import Statement
from sigstore.errors import Error as SigstoreError
from sigstore.models import Bundle
from sigstore.sign import SigningContext

from slsa_builder.errors import SigningError
from slsa_builder.identity import SigningIdentity
from slsa_builder.settings import SigstoreEndpoints

INTOTO_PAYLOAD_TYPE = "application/vnd.in-toto+json"

_logger = logging.getLogger(__name__)


class SignedEnvelope:
    """DSSE envelope over one statement, bundled with its certificate and log entry."""

    payload_type = INTOTO_PAYLOAD_TYPE

    def __init__(self, bundle: Bundle, payload: bytes) -> None:
        self.bundle = bundle
        self.payload = payload

    @property
    def certificate(self) -> x509.Certificate:
        return self.bundle.signing_certificate

    def to_dict(self) -> Any:
        return json.loads(self.bundle.to_json())

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


class DSSESigner:
    def __init__(
        self,
        endpoints: Optional[SigstoreEndpoints] = None,
        *,
        signing_context: Optional[SigningContext] = None,
    ) -> None:
        self.endpoints = endpoints or SigstoreEndpoints()
        self._signing_context = signing_context

    def signing_context(self) -> SigningContext:
        if self._signing_context is None:
            trust_config = self.endpoints.trust_config()
            try:
                self._signing_context = SigningContext.from_trust_config(trust_config)
            except SigstoreError as exc:
                raise SigningError(f"cannot set up sigstore signing: {exc}") from exc
        return self._signing_context

    def sign(self, payload: bytes, identity: Optional[SigningIdentity]) -> SignedEnvelope:
        if identity is None:
            raise SigningError("no signing credential available")
        token = identity.take_token()
        try:
            statement = Statement(payload)
        except (SigstoreError, ValueError) as exc:
            raise SigningError(f"statement cannot be signed: {exc}") from exc
        try:
            with self.signing_context().signer(token, cache=True) as signer:
                bundle = signer.sign_dsse(statement)
        except SigstoreError as exc:
            raise SigningError(f"signing failed: {exc}") from exc
        _logger.info("signed %d byte statement as %s", len(payload), identity.subject)
        return SignedEnvelope(bundle, payload)
