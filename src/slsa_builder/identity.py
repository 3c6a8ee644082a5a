from __future__ import annotations

import base64
import json
import logging
import os
from typing import List, Mapping, Optional
from urllib.parse import quote

from cryptography import x509
from cryptography.x509 import SubjectAlternativeName, UniformResourceIdentifier
from pydantic import BaseModel, ConfigDict
from sigstore.oidc import IdentityError as SigstoreIdentityError
from sigstore.oidc import IdentityToken, detect_credential

from slsa_builder.errors import (
    CredentialRejectedError,
    EmptyWorkflowRefError,
    InvalidTokenError,
    NoAuthProviderError,
    SigningError,
    TokenEndpointError,
    WorkflowBindingError,
)
from slsa_builder.settings import (
    DEFAULT_IDENTITY_TOKEN_ENV,
    REQUEST_TOKEN_ENV,
    REQUEST_URL_ENV,
    WORKFLOW_TOKEN_AUDIENCE,
)
from slsa_builder.transport import TransportError, request_json

_logger = logging.getLogger(__name__)

GITHUB_URL = "https://github.com"


class WorkflowIdentity(BaseModel):
    job_workflow_ref: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def builder_id(self) -> str:
        return f"{GITHUB_URL}/{self.job_workflow_ref}"


class SigningIdentity:
    """OIDC identity that Sigstore exchanges for a short-lived signing certificate.

    The token is handed out once; the signer generates the ephemeral key and
    requests the certificate with it.
    """

    def __init__(self, token: IdentityToken) -> None:
        self._token: Optional[IdentityToken] = token
        self.subject = token.identity
        self.issuer = token.issuer

    def take_token(self) -> IdentityToken:
        token = self._token
        if token is None:
            raise SigningError("signing identity has already been used")
        self._token = None
        return token


def _decode_segment(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def workflow_identity_from_token(token: str) -> WorkflowIdentity:
    """Extract the reusable workflow reference from a GitHub OIDC token.

    Only the token's structure is checked here. Its signature is verified by
    Fulcio when the signing certificate is issued, and the certificate is then
    matched against this reference by `ensure_certificate_binding`.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise InvalidTokenError(f"invalid jwt token: found {len(parts)} parts")
    try:
        claims = json.loads(_decode_segment(parts[1]).decode("utf-8"))
    except ValueError as exc:
        raise InvalidTokenError(f"invalid jwt payload: {exc}") from exc
    if not isinstance(claims, dict):
        raise InvalidTokenError("invalid jwt payload: not a JSON object")
    workflow_ref = claims.get("job_workflow_ref")
    if not isinstance(workflow_ref, str) or not workflow_ref.strip():
        raise EmptyWorkflowRefError("job_workflow_ref is empty")
    return WorkflowIdentity(job_workflow_ref=workflow_ref.strip())


def _with_audience(url: str, audience: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}audience={quote(audience, safe='')}"


def certificate_uris(cert: x509.Certificate) -> List[str]:
    try:
        sans = cert.extensions.get_extension_for_class(SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return list(sans.get_values_for_type(UniformResourceIdentifier))


def ensure_certificate_binding(certificate: x509.Certificate, workflow: WorkflowIdentity) -> None:
    uris = certificate_uris(certificate)
    if workflow.builder_id not in uris:
        raise WorkflowBindingError(
            f"signing certificate identity {uris} does not match workflow {workflow.builder_id}"
        )


class IdentityProvider:
    def __init__(
        self,
        *,
        identity_token: Optional[str] = None,
        identity_token_env: str = DEFAULT_IDENTITY_TOKEN_ENV,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.identity_token = identity_token
        self.identity_token_env = identity_token_env
        self.environ: Mapping[str, str] = os.environ if environ is None else environ

    def workflow_identity(self) -> WorkflowIdentity:
        request_url = self.environ.get(REQUEST_URL_ENV, "")
        if not request_url:
            raise TokenEndpointError(f"{REQUEST_URL_ENV} is empty")
        request_token = self.environ.get(REQUEST_TOKEN_ENV, "")
        try:
            payload = request_json(
                "GET",
                _with_audience(request_url, WORKFLOW_TOKEN_AUDIENCE),
                headers={"Authorization": f"bearer {request_token}"},
            )
        except TransportError as exc:
            raise TokenEndpointError(f"identity token request failed: {exc}") from exc
        value = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(value, str):
            raise InvalidTokenError("identity token response has no string value")
        identity = workflow_identity_from_token(value)
        _logger.info("builder workflow: %s", identity.job_workflow_ref)
        return identity

    def raw_oidc_token(self) -> str:
        raw = self.identity_token or self.environ.get(self.identity_token_env)
        if not raw:
            try:
                raw = detect_credential()
            except SigstoreIdentityError as exc:
                raise NoAuthProviderError(f"ambient credential detection failed: {exc}") from exc
        if not raw:
            raise NoAuthProviderError("no auth provider for fulcio is enabled")
        return raw

    def signing_identity(self) -> SigningIdentity:
        raw = self.raw_oidc_token()
        try:
            token = IdentityToken(raw)
        except SigstoreIdentityError as exc:
            raise CredentialRejectedError(f"identity token rejected: {exc}") from exc
        _logger.info("signing as %s (%s)", token.identity, token.issuer)
        return SigningIdentity(token)
