import pytest
import requests

from authretry.challenge import AuthChallenge, parse_challenge_header, parse_challenges
from authretry.credential_store import CredentialKey


def make_response(status_code: int, headers: dict[str, str]) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.headers.update(headers)
    return response


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ('Basic realm="proxyRealm1"', [("Basic", {"realm": "proxyRealm1"})]),
        ("Basic", [("Basic", {})]),
        ('Basic realm="a", charset="UTF-8"', [("Basic", {"realm": "a", "charset": "UTF-8"})]),
        ('Negotiate, Basic realm="x"', [("Negotiate", {}), ("Basic", {"realm": "x"})]),
        ('Basic realm="x", Bearer realm=y', [("Basic", {"realm": "x"}), ("Bearer", {"realm": "y"})]),
        ("Negotiate abc123==", [("Negotiate", {"": "abc123=="})]),
        (r'Digest realm="with \"quotes\"", nonce="n"', [("Digest", {"realm": 'with "quotes"', "nonce": "n"})]),
        ('Basic REALM="Mixed"', [("Basic", {"realm": "Mixed"})]),
    ],
)
def test_parse_challenge_header(header, expected):
    assert parse_challenge_header(header) == expected


@pytest.mark.parametrize(
    "header",
    [None, "", "   ", '"quoted-scheme"', 'Basic realm="unterminated', ",,,"],
)
def test_malformed_headers_yield_no_challenges(header):
    assert parse_challenge_header(header) == []


def test_challenge_key_uses_authority():
    challenge = AuthChallenge(
        is_proxy=False, scheme="basic", realm="r", target_uri="https://Example.test:443/a?q=1"
    )

    assert challenge.key == CredentialKey(authority="example.test", realm="r", is_proxy=False)


def test_proxy_challenge_listed_before_server_challenge():
    response = make_response(
        401,
        {
            "WWW-Authenticate": 'Basic realm="server"',
            "Proxy-Authenticate": 'Basic realm="proxy"',
        },
    )

    challenges = parse_challenges(response, "https://example.test/a")

    assert [(c.is_proxy, c.realm) for c in challenges] == [(True, "proxy"), (False, "server")]


def test_first_listed_challenge_is_used():
    response = make_response(407, {"Proxy-Authenticate": 'Negotiate, Basic realm="p"'})

    (challenge,) = parse_challenges(response, "https://example.test/a")

    assert challenge.scheme == "negotiate"
    assert challenge.realm is None
    assert challenge.is_proxy


@pytest.mark.parametrize(
    ("status", "headers"),
    [
        (200, {"WWW-Authenticate": 'Basic realm="x"'}),
        (403, {"WWW-Authenticate": 'Basic realm="x"'}),
        (401, {}),
        (401, {"Proxy-Authenticate": 'Basic realm="p"'}),
        (407, {"WWW-Authenticate": 'Basic realm="x"'}),
        (407, {"Proxy-Authenticate": "=broken"}),
    ],
)
def test_non_challenges(status, headers):
    assert parse_challenges(make_response(status, headers), "https://example.test/a") == []
