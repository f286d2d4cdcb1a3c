"""Tests for CompletionDispatcher fallback across backends."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from storyloom.llm.backends import CompletionRequest, OllamaBackend, ProxyBackend
from storyloom.llm.dispatcher import (
    FALLBACK_MESSAGE,
    BackendFailure,
    CompletionDispatcher,
    DispatchError,
)
from tests.helpers import StubBackend

REQUEST = CompletionRequest(prompt="prompt", user_message="hi")


async def test_first_backend_wins() -> None:
    local = StubBackend("ollama", ["local reply"])
    hosted = StubBackend("proxy", ["hosted reply"])

    completion = await CompletionDispatcher([local, hosted]).complete(REQUEST)

    assert completion.text == "local reply"
    assert completion.source == "ollama"
    assert hosted.requests == []


async def test_falls_through_on_failure() -> None:
    local = StubBackend("ollama", fail=True)
    hosted = StubBackend("proxy", ["hosted reply"])

    completion = await CompletionDispatcher([local, hosted]).complete(REQUEST)

    assert completion.text == "hosted reply"
    assert completion.source == "proxy"
    assert len(local.requests) == 1


async def test_all_failing_aggregates_failures() -> None:
    dispatcher = CompletionDispatcher(
        [StubBackend("ollama", fail=True), StubBackend("proxy", fail=True)]
    )

    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.complete(REQUEST)

    assert exc_info.value.failures == [
        BackendFailure(backend="ollama", reason="ollama is down"),
        BackendFailure(backend="proxy", reason="proxy is down"),
    ]
    assert exc_info.value.user_message == FALLBACK_MESSAGE
    assert "ollama: ollama is down" in str(exc_info.value)


async def test_no_backends_configured() -> None:
    with pytest.raises(DispatchError, match="no completion backends configured"):
        await CompletionDispatcher([]).complete(REQUEST)


def test_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "storyloom.llm.dispatcher.settings.completion_backends", "proxy, ollama"
    )
    assert CompletionDispatcher.from_settings().backend_names == ["proxy", "ollama"]


def test_from_settings_unknown_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("storyloom.llm.dispatcher.settings.completion_backends", "bogus")
    with pytest.raises(ValueError, match="bogus"):
        CompletionDispatcher.from_settings()


def test_get_is_singleton(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("storyloom.llm.dispatcher.settings.completion_backends", "ollama")
    assert CompletionDispatcher.get() is CompletionDispatcher.get()


async def test_local_server_error_falls_through_to_hosted() -> None:
    failing = httpx.Response(
        status_code=500, text="model not loaded", request=httpx.Request("POST", "http://o")
    )
    working = httpx.Response(
        status_code=200,
        json={"response": "From the proxy."},
        request=httpx.Request("POST", "http://p"),
    )
    mock_client = AsyncMock()
    mock_client.post.side_effect = [failing, working]
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)

    dispatcher = CompletionDispatcher(
        [OllamaBackend(base_url="http://o"), ProxyBackend(api_url="http://p")]
    )
    with patch("storyloom.llm.backends.httpx.AsyncClient", return_value=mock_client):
        completion = await dispatcher.complete(REQUEST)

    assert completion.text == "From the proxy."
    assert completion.source == "proxy"
    assert mock_client.post.await_count == 2
