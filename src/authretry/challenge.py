"""Parse ``WWW-Authenticate`` / ``Proxy-Authenticate`` challenges."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from requests import Response

from .credential_store import CredentialKey
from .http import PROXY_CHALLENGE_STATUS, SERVER_CHALLENGE_STATUS, authority_of

logger = logging.getLogger(__name__)

PROXY_AUTHENTICATE = "Proxy-Authenticate"
WWW_AUTHENTICATE = "WWW-Authenticate"

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_QUOTED = r'"(?:[^"\\]|\\.)*"'
_TOKEN68 = r"[A-Za-z0-9\-._~+/]+=*"
_SCHEME_RE = re.compile(rf"\s*({_TOKEN})")
_PARAM_RE = re.compile(rf"\s*({_TOKEN})\s*=\s*({_TOKEN}|{_QUOTED})\s*")
_TOKEN68_RE = re.compile(rf"\s*({_TOKEN68})\s*(?=,|$)")


@dataclass(frozen=True, slots=True)
class AuthChallenge:
    """A single authentication challenge taken from a 401 or 407 response."""

    is_proxy: bool
    scheme: str
    realm: str | None
    target_uri: str

    @property
    def key(self) -> CredentialKey:
        return CredentialKey(
            authority=authority_of(self.target_uri),
            realm=self.realm,
            is_proxy=self.is_proxy,
        )


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def parse_challenge_header(value: str | None) -> list[tuple[str, dict[str, str]]]:
    """Split a challenge header into ``(scheme, params)`` pairs.

    Returns an empty list if any part of the header is malformed.
    """

    if not value or not value.strip():
        return []
    challenges: list[tuple[str, dict[str, str]]] = []
    pos = 0
    length = len(value)
    while pos < length:
        # skip empty list elements
        while pos < length and value[pos] in " \t,":
            pos += 1
        if pos >= length:
            break
        match = _SCHEME_RE.match(value, pos)
        if not match:
            return []
        scheme = match.group(1)
        pos = match.end()
        params: dict[str, str] = {}
        if pos < length and value[pos] in " \t":
            token68 = _TOKEN68_RE.match(value, pos)
            if token68 and not _PARAM_RE.match(value, pos):
                params[""] = token68.group(1)
                pos = token68.end()
            else:
                while pos < length:
                    param = _PARAM_RE.match(value, pos)
                    if not param:
                        break
                    params[param.group(1).lower()] = _unquote(param.group(2))
                    pos = param.end()
                    if pos < length and value[pos] == ",":
                        lookahead = _PARAM_RE.match(value, pos + 1)
                        if lookahead:
                            pos += 1
                            continue
                    break
        rest = value[pos:].lstrip(" \t")
        if rest and not rest.startswith(","):
            return []
        pos = length - len(rest)
        challenges.append((scheme, params))
    return challenges


def _first_challenge(
    response: Response, header: str, *, is_proxy: bool, target_uri: str
) -> AuthChallenge | None:
    raw = response.headers.get(header)
    parsed = parse_challenge_header(raw)
    if not parsed:
        if raw:
            logger.debug("Ignoring malformed %s header: %r", header, raw)
        return None
    scheme, params = parsed[0]
    return AuthChallenge(
        is_proxy=is_proxy,
        scheme=scheme.lower(),
        realm=params.get("realm"),
        target_uri=target_uri,
    )


def parse_challenges(response: Response, target_uri: str) -> list[AuthChallenge]:
    """Return the challenges carried by ``response``, proxy challenge first.

    Only 401 and 407 responses carry challenges. A response whose own
    challenge header is missing or malformed is not treated as a challenge.
    """

    status = response.status_code
    if status not in (SERVER_CHALLENGE_STATUS, PROXY_CHALLENGE_STATUS):
        return []
    proxy = _first_challenge(response, PROXY_AUTHENTICATE, is_proxy=True, target_uri=target_uri)
    server = _first_challenge(response, WWW_AUTHENTICATE, is_proxy=False, target_uri=target_uri)
    if status == PROXY_CHALLENGE_STATUS and proxy is None:
        return []
    if status == SERVER_CHALLENGE_STATUS and server is None:
        return []
    return [challenge for challenge in (proxy, server) if challenge is not None]


__all__ = ["AuthChallenge", "parse_challenge_header", "parse_challenges"]
