import base64
import json
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from sigstore.dsse import Statement

from slsa_builder.identity import SigningIdentity, WorkflowIdentity, workflow_identity_from_token

WORKFLOW_REF = (
    "slsa-framework/slsa-github-generator-go/.github/workflows/builder.yml@refs/heads/main"
)
BUILDER_ID = f"https://github.com/{WORKFLOW_REF}"
GITHUB_ISSUER = "https://token.actions.githubusercontent.com"


def make_jwt(claims: Dict[str, Any]) -> str:
    def segment(obj: Dict[str, Any]) -> str:
        raw = json.dumps(obj).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{segment({'alg': 'RS256', 'typ': 'JWT'})}.{segment(claims)}.c2lnbmF0dXJl"


def make_certificate(key: ec.EllipticCurvePrivateKey, uri: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sigstore-test")])
    now = datetime.now(tz=timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(minutes=10))
        .add_extension(
            x509.SubjectAlternativeName([x509.UniformResourceIdentifier(uri)]), critical=False
        )
        .sign(key, hashes.SHA256())
    )


def make_signing_identity(subject: str = "repo:octo-org/octo-app:ref:refs/tags/v1.2.3"):
    return SigningIdentity(SimpleNamespace(identity=subject, issuer=GITHUB_ISSUER))


class FakeBundle:
    def __init__(self, certificate: x509.Certificate, log_entry: Any) -> None:
        self.signing_certificate = certificate
        self.log_entry = log_entry

    def to_json(self) -> str:
        return json.dumps(
            {
                "mediaType": "application/vnd.dev.sigstore.bundle.v0.3+json",
                "dsseEnvelope": {
                    "payloadType": "application/vnd.in-toto+json",
                    "signatures": [{"sig": "c2lnbmF0dXJl"}],
                },
            },
            indent=2,
        )


class FakeSigner:
    def __init__(self, context: "FakeSigningContext") -> None:
        self.context = context

    def sign_dsse(self, statement: Statement) -> FakeBundle:
        if self.context.error is not None:
            raise self.context.error
        self.context.statements.append(statement)
        key = ec.generate_private_key(ec.SECP256R1())
        return FakeBundle(make_certificate(key, self.context.certificate_uri), self.context.entry)


class FakeSigningContext:
    """Stands in for sigstore's SigningContext without Fulcio or Rekor."""

    def __init__(
        self,
        certificate_uri: str = BUILDER_ID,
        log_index: Optional[int] = 42,
        error: Optional[Exception] = None,
    ) -> None:
        self.certificate_uri = certificate_uri
        self.error = error
        self.entry = (
            None
            if log_index is None
            else SimpleNamespace(
                _inner=SimpleNamespace(log_index=log_index, integrated_time=1700000000)
            )
        )
        self.tokens: List[Any] = []
        self.statements: List[Statement] = []

    @contextmanager
    def signer(self, token: Any, cache: bool = True):
        self.tokens.append(token)
        yield FakeSigner(self)


class FakeIdentityProvider:
    """Offline identity provider for the workflow in WORKFLOW_REF."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    def workflow_identity(self) -> WorkflowIdentity:
        self.calls.append("workflow_identity")
        return workflow_identity_from_token(make_jwt({"job_workflow_ref": WORKFLOW_REF}))

    def signing_identity(self) -> SigningIdentity:
        self.calls.append("signing_identity")
        return make_signing_identity()
