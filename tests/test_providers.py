import logging

from authretry import (
    BasicCredentials,
    BearerCredentials,
    CallbackCredentialProvider,
    CancellationToken,
    NullCredentialProvider,
    StaticCredentialProvider,
)
from authretry.providers import default_provider

URI = "https://example.test/a"


def _resolve(provider, *, is_proxy=False, realm=None, prior=False, token=None):
    return provider.resolve(
        URI,
        is_proxy=is_proxy,
        realm=realm,
        prior_attempt_failed=prior,
        token=token or CancellationToken.none(),
    )


def test_null_provider_always_declines():
    assert _resolve(NullCredentialProvider()) is None
    assert _resolve(NullCredentialProvider(), is_proxy=True) is None


def test_static_provider_splits_proxy_and_server():
    provider = StaticCredentialProvider(
        server=BasicCredentials("u", "p"), proxy=BasicCredentials("pu", "pp")
    )

    assert _resolve(provider) == BasicCredentials("u", "p")
    assert _resolve(provider, is_proxy=True) == BasicCredentials("pu", "pp")
    assert _resolve(provider, prior=True) == BasicCredentials("u", "p")


def test_static_provider_prefers_realm_specific_credentials():
    provider = StaticCredentialProvider(
        server=BearerCredentials("fallback"), realms={"admin": BearerCredentials("admin")}
    )

    assert _resolve(provider, realm="admin") == BearerCredentials("admin")
    assert _resolve(provider, realm="other") == BearerCredentials("fallback")


def test_static_provider_declines_after_cancellation():
    token = CancellationToken()
    token.cancel()

    assert _resolve(StaticCredentialProvider(server=BearerCredentials("t")), token=token) is None


def test_callback_provider_passes_context():
    seen = []

    def callback(target_uri, is_proxy, realm, prior_attempt_failed, token):
        seen.append((target_uri, is_proxy, realm, prior_attempt_failed))
        return BearerCredentials("t")

    provider = CallbackCredentialProvider(callback)

    assert _resolve(provider, realm="r", prior=True) == BearerCredentials("t")
    assert seen == [(URI, False, "r", True)]


def test_callback_provider_declines_when_cancelled_while_waiting():
    token = CancellationToken()

    def prompt(target_uri, is_proxy, realm, prior_attempt_failed, cancellation):
        cancellation.cancel()
        return BearerCredentials("too-late")

    assert _resolve(CallbackCredentialProvider(prompt), token=token) is None


def test_default_provider_warns_when_missing(caplog):
    with caplog.at_level(logging.WARNING, logger="authretry.providers"):
        provider = default_provider(None)

    assert isinstance(provider, NullCredentialProvider)
    assert "No credential provider was configured" in caplog.text


def test_default_provider_keeps_configured_provider():
    provider = StaticCredentialProvider()

    assert default_provider(provider) is provider
