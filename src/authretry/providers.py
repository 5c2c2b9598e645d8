"""Credential provider capability consumed by the dispatcher."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

from .auth.base import Credentials
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """Interface every credential source must implement.

    Implementations that block (for example on user input) must watch
    ``token`` and return ``None`` once it is cancelled.
    """

    @abstractmethod
    def resolve(
        self,
        target_uri: str,
        *,
        is_proxy: bool,
        realm: str | None,
        prior_attempt_failed: bool,
        token: CancellationToken,
    ) -> Credentials | None:
        """Return credentials for ``target_uri`` or ``None`` to decline."""


class NullCredentialProvider(CredentialProvider):
    """Always declines. Selecting it disables the retry loop entirely."""

    def resolve(
        self,
        target_uri: str,
        *,
        is_proxy: bool,
        realm: str | None,
        prior_attempt_failed: bool,
        token: CancellationToken,
    ) -> Credentials | None:
        return None


class StaticCredentialProvider(CredentialProvider):
    """Hand out credentials configured up front.

    ``realms`` maps a realm name to server credentials and takes precedence
    over ``server``. The same credentials are returned on every call, so a
    rejection ends in `AuthResolutionFailed` rather than another prompt.
    """

    def __init__(
        self,
        *,
        server: Credentials | None = None,
        proxy: Credentials | None = None,
        realms: Mapping[str, Credentials] | None = None,
    ) -> None:
        self.server = server
        self.proxy = proxy
        self.realms = dict(realms or {})

    def resolve(
        self,
        target_uri: str,
        *,
        is_proxy: bool,
        realm: str | None,
        prior_attempt_failed: bool,
        token: CancellationToken,
    ) -> Credentials | None:
        if token.cancelled:
            return None
        if is_proxy:
            credentials = self.proxy
        else:
            credentials = self.realms.get(realm) if realm is not None else None
            credentials = credentials or self.server
        if credentials is not None and prior_attempt_failed:
            logger.debug("Static credentials already rejected for %s", target_uri)
        return credentials


ResolveCallback = Callable[[str, bool, "str | None", bool, CancellationToken], "Credentials | None"]


class CallbackCredentialProvider(CredentialProvider):
    """Adapt a plain function, typically an interactive prompt, to the interface."""

    def __init__(self, callback: ResolveCallback) -> None:
        self._callback = callback

    def resolve(
        self,
        target_uri: str,
        *,
        is_proxy: bool,
        realm: str | None,
        prior_attempt_failed: bool,
        token: CancellationToken,
    ) -> Credentials | None:
        if token.cancelled:
            return None
        credentials = self._callback(target_uri, is_proxy, realm, prior_attempt_failed, token)
        if token.cancelled:
            return None
        return credentials


def default_provider(provider: CredentialProvider | None) -> CredentialProvider:
    """Return ``provider`` or fall back to `NullCredentialProvider` with a warning."""

    if provider is None:
        logger.warning("No credential provider was configured; authentication retries are disabled")
        return NullCredentialProvider()
    return provider


__all__ = [
    "CallbackCredentialProvider",
    "CredentialProvider",
    "NullCredentialProvider",
    "StaticCredentialProvider",
    "default_provider",
]
