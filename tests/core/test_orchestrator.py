# tests/core/test_orchestrator.py
import json

import httpx
import pytest

from repochat.config.schema import AppConfig
from repochat.core.errors import NoCredentialError, ProviderHTTPError
from repochat.core.models import ChatMessage, Role
from repochat.core import providers
from repochat.core.orchestrator import CompletionOrchestrator
from repochat.core.prompt_engine import PromptEngine

from helpers import anthropic_delta, openai_delta, sse, streaming_response


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_missing_credentials_fail_at_construction(mocker):
    send = mocker.patch("httpx.AsyncClient.send")
    with pytest.raises(NoCredentialError, match="No AI API key configured"):
        CompletionOrchestrator(AppConfig())
    send.assert_not_called()


def test_provider_selected_once(openai_config, mocker):
    spy = mocker.patch("repochat.core.orchestrator.select_provider", wraps=providers.select_provider)
    orchestrator = CompletionOrchestrator(openai_config)
    assert orchestrator.provider_name == "openai"
    spy.assert_called_once()


def test_system_prompt_contents(indexed_repo):
    prompt = PromptEngine().build_system_prompt(indexed_repo)
    assert "Repository: octo/demo" in prompt
    assert "Description: A demo project" in prompt
    assert "Primary Language: Python" in prompt
    assert "File Structure (4 files):" in prompt
    assert "--- README.md ---\n# Demo\nHello." in prompt
    assert "syntax highlighting" in prompt
    assert prompt.index("Primary Language") < prompt.index("File Structure") < prompt.index("Answer questions")


async def test_complete_relays_tokens_in_order(openai_config, indexed_repo):
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return streaming_response([sse(openai_delta("Hi"), openai_delta(" there")), sse("[DONE]")])

    orchestrator = CompletionOrchestrator(openai_config, client=_client(handler))
    history = [
        ChatMessage(id=1, role=Role.USER, content="first"),
        ChatMessage(id=2, role=Role.ASSISTANT, content="answer"),
        ChatMessage(id=3, role=Role.USER, content="second"),
    ]
    tokens = []
    await orchestrator.complete(history, indexed_repo, tokens.append)

    assert tokens == ["Hi", " there"]
    messages = captured["body"]["messages"]
    assert messages[0]["role"] == "system"
    assert "octo/demo" in messages[0]["content"]
    assert messages[1:] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "answer"},
        {"role": "user", "content": "second"},
    ]


async def test_complete_with_anthropic(anthropic_config, indexed_repo):
    orchestrator = CompletionOrchestrator(
        anthropic_config, client=_client(lambda r: streaming_response([sse(anthropic_delta("Yo"))])))
    tokens = []
    await orchestrator.complete([ChatMessage(id=1, role=Role.USER, content="hey")], indexed_repo, tokens.append)
    assert tokens == ["Yo"]


async def test_empty_response_calls_sink_zero_times(openai_config, indexed_repo):
    orchestrator = CompletionOrchestrator(
        openai_config, client=_client(lambda r: streaming_response([sse("[DONE]")])))
    tokens = []
    await orchestrator.complete([], indexed_repo, tokens.append)
    assert tokens == []


async def test_next_chunk_not_read_before_sink_returns(openai_config, indexed_repo):
    events = []

    async def body():
        for text in ("a", "b", "c"):
            events.append(f"read {text}")
            yield sse(openai_delta(text))

    orchestrator = CompletionOrchestrator(
        openai_config, client=_client(lambda r: httpx.Response(200, content=body())))
    await orchestrator.complete([], indexed_repo, lambda token: events.append(f"sink {token}"))
    assert events == ["read a", "sink a", "read b", "sink b", "read c", "sink c"]


async def test_provider_error_propagates(openai_config, indexed_repo):
    orchestrator = CompletionOrchestrator(
        openai_config,
        client=_client(lambda r: httpx.Response(429, json={"error": {"message": "Rate limit reached"}})))
    with pytest.raises(ProviderHTTPError, match="Rate limit reached"):
        await orchestrator.complete([], indexed_repo, lambda token: None)


async def test_large_context_logs_warning(openai_config, indexed_repo, mocker):
    openai_config.context.token_warning = 1
    warning = mocker.patch("repochat.core.orchestrator.logger.warning")
    orchestrator = CompletionOrchestrator(
        openai_config, client=_client(lambda r: streaming_response([sse("[DONE]")])))
    await orchestrator.complete([], indexed_repo, lambda token: None)
    warning.assert_called_once()
