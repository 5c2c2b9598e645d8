"""Custom exception hierarchy for the authentication retry dispatcher."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import-time guard
    from .credential_store import CredentialKey


class AuthRetryError(RuntimeError):
    """Base error for dispatcher failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class Cancelled(AuthRetryError):
    """Raised when the caller cancelled or the credential provider declined."""


class AuthResolutionFailed(AuthRetryError):
    """Raised when the same credential key is rejected twice in one call."""

    def __init__(
        self,
        message: str,
        *,
        key: CredentialKey | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)
        self.key = key


class ConfigurationError(AuthRetryError):
    """Raised when dispatcher or CLI configuration values are invalid."""
