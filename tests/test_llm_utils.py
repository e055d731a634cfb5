"""Unit tests for the oracle text call helper."""

import asyncio

import pytest

from blockmind.llm_utils import EmptyResponseError, call_llm_text_with_retries
from blockmind.local_llm import LocalLLMError


class FakeResponse:
    def __init__(self, content: str) -> None:
        self.content = content


def install_fake_decorator(monkeypatch, caller, seen_params=None):
    def fake_decorator(*, provider, model, call_params):
        if seen_params is not None:
            seen_params.update({"provider": provider, "model": model, **call_params})

        def wrapper(fn):
            async def inner(prompt: str):
                return await caller(prompt)

            return inner

        return wrapper

    monkeypatch.setattr("blockmind.llm_utils.llm.call", fake_decorator)


@pytest.mark.asyncio
async def test_remote_provider_returns_stripped_text(monkeypatch):
    recorded_prompts: list[str] = []
    params: dict = {}

    async def fake_caller(prompt: str) -> FakeResponse:
        recorded_prompts.append(prompt)
        return FakeResponse("  mine  ")

    install_fake_decorator(monkeypatch, fake_caller, params)

    result = await call_llm_text_with_retries(
        prompt="\nAction:",
        llm_provider="openai",
        llm_model="gpt-4o-mini",
        max_tokens=20,
        timeout=5,
    )

    assert result == "mine"
    assert recorded_prompts == ["Action:"]
    assert params == {"provider": "openai", "model": "gpt-4o-mini", "max_tokens": 20}


@pytest.mark.asyncio
async def test_empty_response_is_retried_then_succeeds(monkeypatch, capsys):
    answers = ["", "craft"]

    async def fake_caller(prompt: str) -> FakeResponse:
        return FakeResponse(answers.pop(0))

    install_fake_decorator(monkeypatch, fake_caller)

    result = await call_llm_text_with_retries(
        prompt="Action:", llm_provider="anthropic", llm_model="claude", max_tokens=20, timeout=5
    )

    assert result == "craft"
    assert "retry 2/2" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_empty_response_exhausts_attempts(monkeypatch):
    calls = []

    async def fake_caller(prompt: str) -> FakeResponse:
        calls.append(prompt)
        return FakeResponse("   ")

    install_fake_decorator(monkeypatch, fake_caller)

    with pytest.raises(EmptyResponseError):
        await call_llm_text_with_retries(
            prompt="Action:", llm_provider="openai", llm_model="m", max_tokens=20, timeout=5
        )
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_timeout_is_not_retried(monkeypatch, capsys):
    calls = []

    async def slow_caller(prompt: str) -> FakeResponse:
        calls.append(prompt)
        await asyncio.sleep(1)
        return FakeResponse("late")

    install_fake_decorator(monkeypatch, slow_caller)

    with pytest.raises(asyncio.TimeoutError):
        await call_llm_text_with_retries(
            prompt="Action:", llm_provider="openai", llm_model="m", max_tokens=20, timeout=0.01
        )
    assert len(calls) == 1
    assert "timed out" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_ollama_provider_uses_local_generate(monkeypatch):
    captured = {}

    async def fake_generate(*, prompt, llm_model, max_tokens, base_url, timeout):
        captured.update(prompt=prompt, model=llm_model, max_tokens=max_tokens, base_url=base_url)
        return "follow_player please"

    monkeypatch.setattr("blockmind.llm_utils.call_ollama_generate", fake_generate)

    result = await call_llm_text_with_retries(
        prompt="Action:",
        llm_provider="ollama",
        llm_model="gemma3:1b",
        max_tokens=20,
        timeout=5,
        base_url="http://ollama:11434",
    )

    assert result == "follow_player please"
    assert captured == {
        "prompt": "Action:",
        "model": "gemma3:1b",
        "max_tokens": 20,
        "base_url": "http://ollama:11434",
    }


@pytest.mark.asyncio
async def test_local_errors_are_wrapped(monkeypatch):
    async def failing_generate(**kwargs):
        raise LocalLLMError("connection refused")

    monkeypatch.setattr("blockmind.llm_utils.call_ollama_generate", failing_generate)

    with pytest.raises(RuntimeError, match="connection refused"):
        await call_llm_text_with_retries(
            prompt="Action:", llm_provider="ollama", llm_model="gemma3:1b", max_tokens=20, timeout=5
        )
