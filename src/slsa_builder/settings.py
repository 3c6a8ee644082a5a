from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from sigstore.errors import Error as SigstoreError
from sigstore.models import ClientTrustConfig

from slsa_builder.errors import ConfigError

# GitHub Actions environment.
GITHUB_CONTEXT_ENV = "GITHUB_CONTEXT"
GITHUB_OUTPUT_ENV = "GITHUB_OUTPUT"
REQUEST_URL_ENV = "ACTIONS_ID_TOKEN_REQUEST_URL"
REQUEST_TOKEN_ENV = "ACTIONS_ID_TOKEN_REQUEST_TOKEN"
WORKFLOW_TOKEN_AUDIENCE = "slsa-framework/slsa-github-generator-go/builder"

DEFAULT_IDENTITY_TOKEN_ENV = "SIGSTORE_ID_TOKEN"


class SigstoreEndpoints(BaseModel):
    """Which Sigstore instance (Fulcio, Rekor and trust root) to sign against."""

    staging: bool = False
    offline: bool = False
    trust_config_path: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    def model_post_init(self, __context: Any) -> None:
        if self.staging and self.trust_config_path:
            raise ValueError("staging and trust_config_path are mutually exclusive")

    def trust_config(self) -> ClientTrustConfig:
        if self.trust_config_path:
            try:
                raw = Path(self.trust_config_path).read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError(
                    f"cannot read trust config {self.trust_config_path}: {exc}"
                ) from exc
            try:
                return ClientTrustConfig.from_json(raw)
            except (SigstoreError, ValueError) as exc:
                raise ConfigError(
                    f"trust config {self.trust_config_path} is not valid: {exc}"
                ) from exc
        if self.staging:
            return ClientTrustConfig.staging(offline=self.offline)
        return ClientTrustConfig.production(offline=self.offline)
