"""HTTP utilities shared by the dispatcher and its callers."""

from __future__ import annotations

import enum
from urllib.parse import urlsplit

import requests
from urllib3.exceptions import (
    NameResolutionError,
    NewConnectionError,
    ProtocolError,
    ProxyError as Urllib3ProxyError,
)

SERVER_CHALLENGE_STATUS = 401
PROXY_CHALLENGE_STATUS = 407

_DEFAULT_PORTS = {"http": 80, "https": 443}


class TransportStatus(enum.Enum):
    """Coarse classification of a low-level transport failure."""

    NAME_RESOLUTION_FAILURE = "name_resolution_failure"
    CONNECT_FAILURE = "connect_failure"
    CONNECTION_CLOSED = "connection_closed"
    PROXY_NAME_RESOLUTION_FAILURE = "proxy_name_resolution_failure"
    SEND_FAILURE = "send_failure"
    TIMEOUT = "timeout"
    SECURE_CHANNEL_FAILURE = "secure_channel_failure"
    PROTOCOL_ERROR = "protocol_error"
    UNKNOWN = "unknown"


_UNREACHABLE_STATUSES = frozenset(
    {
        TransportStatus.NAME_RESOLUTION_FAILURE,
        TransportStatus.CONNECT_FAILURE,
        TransportStatus.CONNECTION_CLOSED,
        TransportStatus.PROXY_NAME_RESOLUTION_FAILURE,
        TransportStatus.SEND_FAILURE,
        TransportStatus.TIMEOUT,
    }
)


def authority_of(uri: str) -> str:
    """Return ``host[:port]`` for a URI, omitting the scheme's default port."""

    parts = urlsplit(uri)
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is None or port == _DEFAULT_PORTS.get(parts.scheme.lower()):
        return host
    return f"{host}:{port}"


def is_auth_challenge_status(status_code: int) -> bool:
    return status_code in (SERVER_CHALLENGE_STATUS, PROXY_CHALLENGE_STATUS)


def _causes(exc: BaseException):
    pending: list[BaseException] = [exc]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        for attr in ("reason", "__cause__", "__context__"):
            linked = getattr(current, attr, None)
            if isinstance(linked, BaseException):
                pending.append(linked)


def classify_exception(exc: BaseException) -> TransportStatus:
    """Map a requests/urllib3 failure onto a `TransportStatus`."""

    if isinstance(exc, requests.exceptions.SSLError):
        return TransportStatus.SECURE_CHANNEL_FAILURE
    if isinstance(exc, requests.exceptions.Timeout):
        return TransportStatus.TIMEOUT
    if isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return TransportStatus.CONNECTION_CLOSED
    if isinstance(exc, requests.exceptions.ProxyError):
        for cause in _causes(exc):
            if isinstance(cause, NameResolutionError):
                return TransportStatus.PROXY_NAME_RESOLUTION_FAILURE
        return TransportStatus.CONNECT_FAILURE
    if isinstance(exc, requests.exceptions.ConnectionError):
        for cause in _causes(exc):
            if isinstance(cause, NameResolutionError):
                return TransportStatus.NAME_RESOLUTION_FAILURE
            if isinstance(cause, Urllib3ProxyError):
                return TransportStatus.CONNECT_FAILURE
            if isinstance(cause, NewConnectionError):
                return TransportStatus.CONNECT_FAILURE
            if isinstance(cause, ProtocolError):
                return TransportStatus.CONNECTION_CLOSED
            if isinstance(cause, (BrokenPipeError, ConnectionResetError)):
                return TransportStatus.SEND_FAILURE
        return TransportStatus.CONNECT_FAILURE
    if isinstance(exc, (requests.exceptions.InvalidURL, requests.exceptions.InvalidHeader)):
        return TransportStatus.PROTOCOL_ERROR
    if isinstance(exc, (BrokenPipeError, ConnectionResetError)):
        return TransportStatus.SEND_FAILURE
    return TransportStatus.UNKNOWN


def is_cannot_reach_internet_error(failure: TransportStatus | BaseException) -> bool:
    """Return True when a failure is likely caused by connectivity problems."""

    status = failure if isinstance(failure, TransportStatus) else classify_exception(failure)
    return status in _UNREACHABLE_STATUSES


__all__ = [
    "TransportStatus",
    "authority_of",
    "classify_exception",
    "is_auth_challenge_status",
    "is_cannot_reach_internet_error",
]
