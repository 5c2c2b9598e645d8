"""Process-wide cache of resolved proxy descriptors."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from urllib.parse import urlsplit, urlunsplit

from requests.utils import get_environ_proxies, select_proxy

from .auth.base import Credentials
from .http import authority_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProxyDescriptor:
    """Proxy selected for a destination, plus any confirmed proxy credentials."""

    destination_uri: str
    proxy_address: str | None = None
    credentials: Credentials | None = None

    @property
    def is_direct(self) -> bool:
        return self.proxy_address is None

    def with_credentials(self, credentials: Credentials | None) -> ProxyDescriptor:
        return replace(self, credentials=credentials)

    def requests_proxies(self) -> dict[str, str]:
        """Return a ``proxies`` mapping for `requests.Session.send`.

        Credentials that support userinfo are embedded in the proxy URL so the
        CONNECT tunnel used for https destinations authenticates as well.
        """
        if self.proxy_address is None:
            return {}
        address = self.proxy_address
        userinfo = self.credentials.proxy_userinfo() if self.credentials else None
        if userinfo:
            parts = urlsplit(address)
            host = parts.netloc.rsplit("@", 1)[-1]
            address = urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))
        scheme = urlsplit(self.destination_uri).scheme.lower() or "http"
        return {scheme: address}


ProxyResolver = Callable[[str], "str | None"]


def environ_proxy_resolver(destination_uri: str) -> str | None:
    """Select a proxy from the environment the way requests itself does."""

    proxies = get_environ_proxies(destination_uri)
    return select_proxy(destination_uri, proxies)


class ProxyCache:
    """Thread-safe map of destination authority to `ProxyDescriptor`.

    Entries live for the lifetime of the cache; proxy topology is assumed
    stable for the process.
    """

    def __init__(self, resolver: ProxyResolver | None = None) -> None:
        self._resolver = resolver or environ_proxy_resolver
        self._lock = threading.Lock()
        self._descriptors: dict[str, ProxyDescriptor] = {}

    def get(self, destination_uri: str) -> ProxyDescriptor | None:
        with self._lock:
            return self._descriptors.get(authority_of(destination_uri))

    def resolve(self, destination_uri: str) -> ProxyDescriptor:
        authority = authority_of(destination_uri)
        with self._lock:
            cached = self._descriptors.get(authority)
        if cached is not None:
            return cached

        proxy_address = self._resolver(destination_uri)
        logger.debug("Resolved proxy for %s: %s", authority, proxy_address or "direct")
        descriptor = ProxyDescriptor(destination_uri=destination_uri, proxy_address=proxy_address)
        with self._lock:
            # a concurrent resolve or put may have won the race; keep theirs
            return self._descriptors.setdefault(authority, descriptor)

    def put(self, destination_uri: str, descriptor: ProxyDescriptor) -> None:
        with self._lock:
            self._descriptors[authority_of(destination_uri)] = descriptor

    def invalidate_credentials(
        self, destination_uri: str, credentials: Credentials | None = None
    ) -> bool:
        """Forget proxy credentials for a destination, keeping the proxy address."""

        authority = authority_of(destination_uri)
        with self._lock:
            descriptor = self._descriptors.get(authority)
            if descriptor is None or descriptor.credentials is None:
                return False
            if credentials is not None and descriptor.credentials != credentials:
                return False
            self._descriptors[authority] = descriptor.with_credentials(None)
        logger.warning("Invalidated rejected proxy credentials for %s", authority)
        return True

    def clear(self) -> None:
        with self._lock:
            self._descriptors.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)


__all__ = ["ProxyCache", "ProxyDescriptor", "ProxyResolver", "environ_proxy_resolver"]
