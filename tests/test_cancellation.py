import asyncio
import threading
import time

import pytest
import requests

from authretry import BasicCredentials, Cancelled, CancellationToken, NullCredentialProvider
from conftest import TARGET_URL, BlockingSession, RecordingProvider, get_target

SERVER_CHALLENGE = {"WWW-Authenticate": 'Basic realm="serverRealm1"'}


def test_registered_callbacks_run_once_on_cancel():
    token = CancellationToken()
    calls: list[str] = []
    token.register(lambda: calls.append("a"))

    token.cancel()
    token.cancel()

    assert calls == ["a"]
    assert token.cancelled


def test_register_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls: list[str] = []

    token.register(lambda: calls.append("late"))

    assert calls == ["late"]


def test_unregistered_callback_is_not_invoked():
    token = CancellationToken()
    calls: list[str] = []

    with token.register(lambda: calls.append("scoped")):
        pass
    token.cancel()

    assert calls == []


def test_none_token_cannot_be_cancelled():
    token = CancellationToken.none()

    assert not token.can_be_cancelled
    assert token.wait(0) is False
    with pytest.raises(ValueError):
        token.cancel()


def test_linked_token_follows_parent():
    parent = CancellationToken()
    child = CancellationToken.linked(parent, CancellationToken.none())

    parent.cancel()

    assert child.cancelled


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()

    with pytest.raises(Cancelled):
        token.raise_if_cancelled()


@pytest.mark.parametrize("provider", [None, RecordingProvider()], ids=["degraded", "retrying"])
def test_cancel_during_blocking_send_returns_promptly(provider, credential_store, proxy_cache):
    from authretry import RetryDispatcher

    session = BlockingSession()
    dispatcher = RetryDispatcher(
        credential_store=credential_store,
        proxy_cache=proxy_cache,
        credential_provider=provider or NullCredentialProvider(),
        session=session,
    )
    token = CancellationToken()
    timer = threading.Timer(0.1, token.cancel)
    timer.start()
    started = time.monotonic()

    try:
        with pytest.raises(Cancelled):
            dispatcher.send(get_target, token=token)
    finally:
        session.release.set()
        timer.cancel()

    assert time.monotonic() - started < 3
    assert session.started.is_set()


def test_cancellation_wins_over_response_arriving(credential_store, proxy_cache):
    from authretry import RetryDispatcher

    token = CancellationToken()
    session = BlockingSession(wait_for=token)
    dispatcher = RetryDispatcher(
        credential_store=credential_store,
        proxy_cache=proxy_cache,
        credential_provider=RecordingProvider(),
        session=session,
    )
    threading.Timer(0.05, token.cancel).start()

    with pytest.raises(Cancelled):
        dispatcher.send(get_target, token=token)


def test_already_cancelled_token_sends_nothing(requests_mock, build_dispatcher):
    dispatcher = build_dispatcher(RecordingProvider())
    matcher = requests_mock.get(TARGET_URL, text="ok")
    token = CancellationToken()
    token.cancel()

    with pytest.raises(Cancelled):
        dispatcher.send(get_target, token=token)

    assert matcher.call_count == 0


def test_cancel_during_credential_resolution_stops_the_call(requests_mock, build_dispatcher):
    token = CancellationToken()
    provider = RecordingProvider(
        server=BasicCredentials("user", "S1"),
        on_resolve=lambda provider_token: token.cancel(),
    )
    dispatcher = build_dispatcher(provider)
    matcher = requests_mock.get(
        TARGET_URL,
        [{"status_code": 401, "headers": SERVER_CHALLENGE}, {"status_code": 200}],
    )

    with pytest.raises(Cancelled):
        dispatcher.send(get_target, token=token)

    assert matcher.call_count == 1
    assert len(dispatcher.credential_store) == 0


def test_cancellable_send_returns_response(requests_mock, build_dispatcher):
    dispatcher = build_dispatcher(RecordingProvider(server=BasicCredentials("user", "S1")))
    requests_mock.get(
        TARGET_URL,
        [{"status_code": 401, "headers": SERVER_CHALLENGE}, {"status_code": 200, "text": "ok"}],
    )

    response = dispatcher.send(get_target, token=CancellationToken())

    assert response.text == "ok"


def test_cancellable_send_reraises_transport_error(requests_mock, build_dispatcher):
    dispatcher = build_dispatcher(RecordingProvider())
    requests_mock.get(TARGET_URL, exc=requests.exceptions.ConnectionError("refused"))

    with pytest.raises(requests.exceptions.ConnectionError):
        dispatcher.send(get_target, token=CancellationToken())


def test_send_async_returns_response(requests_mock, build_dispatcher):
    dispatcher = build_dispatcher(RecordingProvider(server=BasicCredentials("user", "S1")))
    requests_mock.get(
        TARGET_URL,
        [{"status_code": 401, "headers": SERVER_CHALLENGE}, {"status_code": 200, "text": "ok"}],
    )

    response = asyncio.run(dispatcher.send_async(get_target))

    assert response.status_code == 200
    assert requests_mock.call_count == 2


def test_send_async_task_cancellation_cancels_call(credential_store, proxy_cache):
    from authretry import RetryDispatcher

    session = BlockingSession()
    dispatcher = RetryDispatcher(
        credential_store=credential_store,
        proxy_cache=proxy_cache,
        credential_provider=RecordingProvider(),
        session=session,
    )
    caller_token = CancellationToken()

    async def scenario() -> None:
        task = asyncio.create_task(dispatcher.send_async(get_target, token=caller_token))
        await asyncio.to_thread(session.started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    try:
        asyncio.run(scenario())
    finally:
        session.release.set()

    assert not caller_token.cancelled


def test_send_async_honours_caller_token(credential_store, proxy_cache):
    from authretry import RetryDispatcher

    session = BlockingSession()
    dispatcher = RetryDispatcher(
        credential_store=credential_store,
        proxy_cache=proxy_cache,
        credential_provider=RecordingProvider(),
        session=session,
    )
    token = CancellationToken()

    async def scenario() -> None:
        task = asyncio.create_task(dispatcher.send_async(get_target, token=token))
        await asyncio.to_thread(session.started.wait, 5)
        token.cancel()
        with pytest.raises(Cancelled):
            await task

    try:
        asyncio.run(scenario())
    finally:
        session.release.set()
