from __future__ import annotations

import threading

import pytest
import requests

from authretry.auth.base import Credentials
from authretry.cancellation import CancellationToken
from authretry.credential_store import CredentialStore
from authretry.dispatcher import RetryDispatcher
from authretry.providers import CredentialProvider
from authretry.proxy_cache import ProxyCache

TARGET_URL = "https://example.test/a"


class RecordingProvider(CredentialProvider):
    """Hand out fixed credentials and remember every request for them."""

    def __init__(
        self,
        *,
        server: Credentials | None = None,
        proxy: Credentials | None = None,
        on_resolve=None,
    ) -> None:
        self.server = server
        self.proxy = proxy
        self.on_resolve = on_resolve
        self.calls: list[tuple[str, str | None, bool]] = []
        self.targets: list[str] = []

    def resolve(self, target_uri, *, is_proxy, realm, prior_attempt_failed, token):
        self.calls.append(("proxy" if is_proxy else "server", realm, prior_attempt_failed))
        self.targets.append(target_uri)
        if self.on_resolve:
            self.on_resolve(token)
        return self.proxy if is_proxy else self.server


class BlockingSession(requests.Session):
    """Session whose `send` blocks until released, then answers 200."""

    def __init__(self, *, wait_for: CancellationToken | None = None) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.wait_for = wait_for
        self.sends = 0

    def send(self, request, **kwargs):  # pragma: no cover - helper
        self.sends += 1
        self.started.set()
        if self.wait_for is not None:
            self.wait_for.wait(5)
        else:
            self.release.wait(5)
        response = requests.Response()
        response.status_code = 200
        response.url = request.url
        response._content = b"late"
        return response


def direct_resolver(destination_uri: str) -> None:
    return None


@pytest.fixture
def credential_store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def proxy_cache() -> ProxyCache:
    return ProxyCache(resolver=direct_resolver)


@pytest.fixture
def build_dispatcher(credential_store, proxy_cache):
    def factory(provider=None, **kwargs) -> RetryDispatcher:
        return RetryDispatcher(
            credential_store=credential_store,
            proxy_cache=proxy_cache,
            credential_provider=provider,
            **kwargs,
        )

    return factory


def get_target() -> requests.Request:
    return requests.Request("GET", TARGET_URL)
