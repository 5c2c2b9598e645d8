"""Base abstractions for credentials."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import MutableMapping

AUTHORIZATION = "Authorization"
PROXY_AUTHORIZATION = "Proxy-Authorization"


def header_name(*, proxy: bool) -> str:
    return PROXY_AUTHORIZATION if proxy else AUTHORIZATION


class Credentials(ABC):
    """Opaque secret that knows how to present itself on a request.

    ``persist`` is the "remember" flag handed to the credential store; the
    store never writes to disk itself.
    """

    persist: bool

    @abstractmethod
    def apply(self, headers: MutableMapping[str, str], *, proxy: bool = False) -> None:
        """Mutate headers in-place with the necessary credentials."""

    def proxy_userinfo(self) -> str | None:
        """Return ``user:password`` for embedding in a proxy URL, if supported."""
        return None
