"""Send requests, transparently answering proxy and server auth challenges."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import requests
import urllib3
from requests import PreparedRequest, Request, Response
from urllib3.exceptions import InsecureRequestWarning

from .auth.base import Credentials
from .cancellation import CancellationToken
from .challenge import AuthChallenge, parse_challenges
from .config import DispatcherConfig
from .credential_store import CredentialKey, CredentialStore
from .exceptions import AuthResolutionFailed, Cancelled
from .http import PROXY_CHALLENGE_STATUS, authority_of, is_auth_challenge_status
from .providers import CredentialProvider, NullCredentialProvider, default_provider
from .proxy_cache import ProxyCache, ProxyDescriptor, ProxyResolver

logger = logging.getLogger(__name__)

RequestBuilder = Callable[[], Request]
RequestPreparer = Callable[[PreparedRequest], None]


def _no_preparation(request: PreparedRequest) -> None:
    return None


@dataclass(slots=True)
class AttemptRecord:
    """Per-call bookkeeping used to detect non-convergence."""

    tried: set[CredentialKey] = field(default_factory=set)
    sends: int = 0


@dataclass(frozen=True, slots=True)
class _Presented:
    """Credentials placed on one attempt. ``key`` is None when the realm is unknown."""

    key: CredentialKey | None
    credentials: Credentials
    from_cache: bool


@dataclass(frozen=True, slots=True)
class _Hop:
    """What one send of an attempt went to and carried."""

    url: str
    descriptor: ProxyDescriptor
    proxy_used: _Presented | None
    server_used: _Presented | None
    settings: dict[str, Any]


def _is_tunnelled(descriptor: ProxyDescriptor, url: str) -> bool:
    return not descriptor.is_direct and urlsplit(url).scheme.lower() == "https"


class _InFlightSend:
    """Run one blocking `Session.send` on a worker thread so it can be abandoned."""

    def __init__(self, session: requests.Session, prepared: PreparedRequest, kwargs: dict[str, Any]) -> None:
        self._session = session
        self._prepared = prepared
        self._kwargs = kwargs
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._aborted = False
        self.response: Response | None = None
        self.error: BaseException | None = None

    def start(self) -> None:
        with self._lock:
            if self._aborted:
                return
        worker = threading.Thread(target=self._run, name="authretry-send", daemon=True)
        worker.start()

    def _run(self) -> None:
        response: Response | None = None
        error: BaseException | None = None
        try:
            response = self._session.send(self._prepared, **self._kwargs)
        except BaseException as exc:  # re-raised on the dispatching thread
            error = exc
        with self._lock:
            if self._aborted:
                if response is not None:
                    response.close()
            else:
                self.response = response
                self.error = error
        self._done.set()

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            if self.response is not None:
                self.response.close()
                self.response = None
        self._done.set()

    def wait(self) -> None:
        self._done.wait()

    def result(self) -> Response:
        if self.error is not None:
            raise self.error
        if self.response is None:
            raise Cancelled("The request was abandoned before a response arrived")
        return self.response


class RetryDispatcher:
    """Own when and how many times a logical request is sent.

    Callers describe how to build a fresh `requests.Request` and, optionally,
    how to finish the prepared request (for example by attaching a body).
    The dispatcher rebuilds the request on every attempt, applies proxy and
    credential settings from the shared caches, and re-sends on 401/407
    challenges until the request succeeds, the credential provider declines,
    or the same credential key is rejected twice.
    """

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        proxy_cache: ProxyCache,
        credential_provider: CredentialProvider | None = None,
        config: DispatcherConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or DispatcherConfig()
        self.credential_store = credential_store
        self.proxy_cache = proxy_cache
        self.credential_provider = default_provider(credential_provider)
        self._session = session or requests.Session()
        self._suppress_insecure_warning_if_needed()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> RetryDispatcher:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - passthrough
        self.close()

    # Public API --------------------------------------------------------------
    @property
    def degraded(self) -> bool:
        """True when no credential source exists and retries are disabled."""
        return isinstance(self.credential_provider, NullCredentialProvider)

    def send(
        self,
        build_request: RequestBuilder,
        prepare_request: RequestPreparer | None = None,
        token: CancellationToken | None = None,
    ) -> Response:
        token = token or CancellationToken.none()
        prepare_request = prepare_request or _no_preparation
        token.raise_if_cancelled()
        if self.degraded:
            return self._send_once(build_request, prepare_request, token)
        return self._send_with_auth(build_request, prepare_request, token)

    async def send_async(
        self,
        build_request: RequestBuilder,
        prepare_request: RequestPreparer | None = None,
        token: CancellationToken | None = None,
    ) -> Response:
        """Run `send` on a worker thread; cancelling the awaiting task cancels the call."""

        linked = CancellationToken.linked(token or CancellationToken.none())
        try:
            return await asyncio.to_thread(self.send, build_request, prepare_request, linked)
        except asyncio.CancelledError:
            linked.cancel()
            raise

    def request(
        self,
        method: str,
        url: str,
        *,
        token: CancellationToken | None = None,
        prepare_request: RequestPreparer | None = None,
        **kwargs: Any,
    ) -> Response:
        """Build the request from ``requests.Request`` keyword arguments and `send` it."""

        def build() -> Request:
            return Request(method.upper(), url, **kwargs)

        return self.send(build, prepare_request, token)

    def close(self) -> None:
        self._session.close()

    # State machine -----------------------------------------------------------
    def _send_once(
        self,
        build_request: RequestBuilder,
        prepare_request: RequestPreparer,
        token: CancellationToken,
    ) -> Response:
        prepared = self._build(build_request)
        settings = self._send_settings(prepared.url)
        prepare_request(prepared)
        return self._transmit(prepared, token, settings, attempt=1)

    def _send_with_auth(
        self,
        build_request: RequestBuilder,
        prepare_request: RequestPreparer,
        token: CancellationToken,
    ) -> Response:
        record = AttemptRecord()
        # credentials chosen for the next attempt, by (authority, is_proxy)
        pending: dict[tuple[str, bool], _Presented] = {}

        while True:
            token.raise_if_cancelled()
            if record.sends >= self.config.max_auth_attempts:
                raise AuthResolutionFailed(
                    f"Authentication did not succeed within {record.sends} attempts"
                )

            record.sends += 1
            prepared = self._build(build_request)
            hop = self._apply_hop(prepared, pending)
            prepare_request(prepared)
            history: list[Response] = []
            while True:
                response = self._transmit(prepared, token, hop.settings, attempt=record.sends)
                next_request = self._redirect_target(response, history)
                if next_request is None:
                    break
                self._confirm(hop, response)
                history.append(response)
                token.raise_if_cancelled()
                prepared = next_request
                hop = self._apply_hop(prepared, pending)
            response.history = history

            challenges = parse_challenges(response, response.url or hop.url)
            if not challenges:
                self._confirm(hop, response)
                return response

            # the attempt's connection is released before the next one starts
            status_code = response.status_code
            response.close()
            for challenge in challenges:
                presented = hop.proxy_used if challenge.is_proxy else hop.server_used
                resolved = self._resolve_challenge(challenge, presented, record, token, status_code)
                pending[(challenge.key.authority, challenge.is_proxy)] = resolved

    def _resolve_challenge(
        self,
        challenge: AuthChallenge,
        presented: _Presented | None,
        record: AttemptRecord,
        token: CancellationToken,
        status_code: int,
    ) -> _Presented:
        key = challenge.key
        logger.debug(
            "Received %s challenge (scheme=%s) for %s",
            "proxy" if challenge.is_proxy else "server",
            challenge.scheme,
            key.describe(),
        )
        if key in record.tried:
            raise AuthResolutionFailed(
                f"Credentials for {key.describe()} were rejected",
                key=key,
                status_code=status_code,
            )

        rejected = presented is not None and presented.key in (None, key)
        if rejected and presented is not None:
            record.tried.add(key)
            if presented.from_cache:
                self._invalidate(challenge, presented)
        elif not challenge.is_proxy:
            cached = self.credential_store.get(key)
            if cached is not None:
                logger.debug("Using cached credentials for %s", key.describe())
                return _Presented(key=key, credentials=cached, from_cache=True)

        token.raise_if_cancelled()
        logger.debug("Requesting credentials for %s (retry=%s)", key.describe(), rejected)
        credentials = self.credential_provider.resolve(
            challenge.target_uri,
            is_proxy=challenge.is_proxy,
            realm=challenge.realm,
            prior_attempt_failed=rejected,
            token=token,
        )
        token.raise_if_cancelled()
        if credentials is None:
            raise Cancelled(
                f"No credentials were supplied for {key.describe()}",
                status_code=status_code,
            )
        record.tried.add(key)
        return _Presented(key=key, credentials=credentials, from_cache=False)

    # Cache helpers -----------------------------------------------------------
    def _apply_hop(self, prepared: PreparedRequest, pending: dict[tuple[str, bool], _Presented]) -> _Hop:
        """Apply proxy and server credentials for the authority ``prepared`` is sent to."""

        url = prepared.url
        authority = authority_of(url)
        descriptor = self.proxy_cache.resolve(url)
        proxy_used = self._proxy_credentials(descriptor, pending.get((authority, True)))
        server_used = self._server_credentials(authority, pending.get((authority, False)))
        used_descriptor = descriptor.with_credentials(proxy_used.credentials if proxy_used else None)

        settings = self._send_settings(url)
        settings["proxies"] = used_descriptor.requests_proxies()
        settings["allow_redirects"] = False
        if _is_tunnelled(used_descriptor, url):
            # requests authenticates the CONNECT from the proxy URL; this header would reach the origin
            prepared.headers.pop("Proxy-Authorization", None)
        elif proxy_used is not None:
            proxy_used.credentials.apply(prepared.headers, proxy=True)
        if server_used is not None:
            server_used.credentials.apply(prepared.headers)
        return _Hop(
            url=url,
            descriptor=used_descriptor,
            proxy_used=proxy_used,
            server_used=server_used,
            settings=settings,
        )

    @staticmethod
    def _proxy_credentials(descriptor: ProxyDescriptor, pending: _Presented | None) -> _Presented | None:
        if pending is not None:
            return pending
        if descriptor.credentials is not None:
            return _Presented(key=None, credentials=descriptor.credentials, from_cache=True)
        return None

    def _server_credentials(self, authority: str, pending: _Presented | None) -> _Presented | None:
        if pending is not None:
            return pending
        entry = self.credential_store.find(authority)
        if entry is None:
            return None
        logger.debug("Reusing cached credentials for %s", entry.key.describe())
        return _Presented(key=entry.key, credentials=entry.credentials, from_cache=True)

    def _invalidate(self, challenge: AuthChallenge, presented: _Presented) -> None:
        if challenge.is_proxy:
            self.proxy_cache.invalidate_credentials(challenge.target_uri, presented.credentials)
        elif presented.key is not None:
            self.credential_store.invalidate(presented.key, presented.credentials)

    def _confirm(self, hop: _Hop, response: Response) -> None:
        status = response.status_code
        if hop.proxy_used is not None and status != PROXY_CHALLENGE_STATUS:
            if self.proxy_cache.get(hop.url) != hop.descriptor:
                self.proxy_cache.put(hop.url, hop.descriptor)
        server_used = hop.server_used
        if server_used is not None and server_used.key is not None and not is_auth_challenge_status(status):
            credentials = server_used.credentials
            persist = getattr(credentials, "persist", False)
            current = self.credential_store.entry(server_used.key)
            if current is None or current.credentials != credentials or current.persist != persist:
                self.credential_store.put(server_used.key, credentials, persist=persist)

    # Transport ---------------------------------------------------------------
    def _redirect_target(self, response: Response, history: list[Response]) -> PreparedRequest | None:
        """Return the next hop of a redirect, prepared by requests, or None."""

        if not self.config.allow_redirects or not response.is_redirect:
            return None
        next_request = response.next
        if next_request is None:
            return None
        if len(history) >= self._session.max_redirects:
            response.close()
            raise requests.TooManyRedirects(
                f"Exceeded {self._session.max_redirects} redirects.", response=response
            )
        return next_request

    def _build(self, build_request: RequestBuilder) -> PreparedRequest:
        request = build_request()
        for name, value in self.config.resolved_headers().items():
            request.headers.setdefault(name, value)
        return self._session.prepare_request(request)

    def _send_settings(self, url: str) -> dict[str, Any]:
        settings = self._session.merge_environment_settings(
            url, {}, self.config.stream, self.config.verify_ssl, None
        )
        settings["timeout"] = self.config.timeout
        settings["allow_redirects"] = self.config.allow_redirects
        return settings

    def _transmit(
        self,
        prepared: PreparedRequest,
        token: CancellationToken,
        settings: dict[str, Any],
        *,
        attempt: int,
    ) -> Response:
        self._log_request(prepared, attempt)
        if not token.can_be_cancelled:
            return self._session.send(prepared, **settings)

        token.raise_if_cancelled()
        in_flight = _InFlightSend(self._session, prepared, settings)
        with token.register(in_flight.abort):
            in_flight.start()
            in_flight.wait()
        if token.cancelled:
            in_flight.abort()
            raise Cancelled("The request was cancelled while in flight")
        return in_flight.result()

    def _log_request(self, prepared: PreparedRequest, attempt: int) -> None:
        logger.info(
            "authretry request %s %s (attempt=%d)",
            (prepared.method or "GET").upper(),
            prepared.url,
            attempt,
        )

    def _suppress_insecure_warning_if_needed(self) -> None:
        if isinstance(self.config.verify_ssl, bool) and not self.config.verify_ssl:
            urllib3.disable_warnings(InsecureRequestWarning)


def create_dispatcher(
    config: DispatcherConfig | None = None,
    credential_provider: CredentialProvider | None = None,
    *,
    session: requests.Session | None = None,
    proxy_resolver: ProxyResolver | None = None,
) -> RetryDispatcher:
    """Create a dispatcher with fresh caches; call once per process and share it."""

    return RetryDispatcher(
        credential_store=CredentialStore(),
        proxy_cache=ProxyCache(resolver=proxy_resolver),
        credential_provider=credential_provider,
        config=config,
        session=session,
    )


__all__ = [
    "AttemptRecord",
    "RequestBuilder",
    "RequestPreparer",
    "RetryDispatcher",
    "create_dispatcher",
]
