from __future__ import annotations

from typing import Optional


class BuilderError(Exception):
    """Base class for every failure raised by the provenance pipeline."""


class ConfigError(BuilderError, ValueError):
    pass


class UnsupportedVersionError(ConfigError):
    pass


class InvalidEnvironmentVariableError(ConfigError):
    pass


class InvalidDirectoryError(ConfigError):
    pass


class InputValidationError(BuilderError, ValueError):
    pass


class InvalidDigestError(InputValidationError):
    pass


class InvalidNameError(InputValidationError):
    pass


class InvalidEncodedListError(InputValidationError):
    pass


class ContextDecodeError(InputValidationError):
    pass


class IdentityError(BuilderError):
    pass


class TokenEndpointError(IdentityError):
    pass


class InvalidTokenError(IdentityError):
    pass


class EmptyWorkflowRefError(IdentityError):
    pass


class NoAuthProviderError(IdentityError):
    pass


class CredentialRejectedError(IdentityError):
    pass


class WorkflowBindingError(IdentityError):
    pass


class SigningError(BuilderError):
    pass


class UploadError(BuilderError):
    pass


class SubprocessError(BuilderError):
    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode
