import pytest

from blockmind.local_llm import LocalLLMError, call_ollama_generate, probe_ollama, resolve_base_url


@pytest.mark.asyncio
async def test_call_ollama_generate_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(endpoint, payload, base_url, timeout):
        captured["endpoint"] = endpoint
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return {"response": "mine"}

    monkeypatch.setattr("blockmind.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_generate(
        prompt="  Action:  ",
        llm_model="gemma3:1b",
        max_tokens=20,
        base_url="http://localhost:11434/",
        timeout=30,
    )

    assert result == "mine"
    payload = captured["payload"]
    assert captured["endpoint"] == "/api/generate"
    assert payload["model"] == "gemma3:1b"
    assert payload["prompt"] == "Action:"
    assert payload["stream"] is False
    assert payload["options"]["num_predict"] == 20
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_generate_rejects_missing_text(monkeypatch):
    monkeypatch.setattr(
        "blockmind.local_llm._perform_ollama_request",
        lambda endpoint, payload, base_url, timeout: {"done": True},
    )

    with pytest.raises(LocalLLMError):
        await call_ollama_generate(prompt="hi", llm_model="gemma3:1b", max_tokens=5)


@pytest.mark.asyncio
async def test_call_ollama_generate_rejects_empty_prompt():
    with pytest.raises(LocalLLMError):
        await call_ollama_generate(prompt="   ", llm_model="gemma3:1b", max_tokens=5)


@pytest.mark.asyncio
async def test_probe_ollama_lists_models(monkeypatch):
    calls = []

    def fake_request(endpoint, payload, base_url, timeout):
        calls.append((endpoint, payload))
        return {"models": [{"name": "gemma3:1b"}, {"name": "llama3.1:latest"}]}

    monkeypatch.setattr("blockmind.local_llm._perform_ollama_request", fake_request)

    assert await probe_ollama(base_url="http://ollama:11434") == ["gemma3:1b", "llama3.1:latest"]
    assert calls == [("/api/tags", None)]


def test_resolve_base_url_prefers_argument_then_env(monkeypatch):
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://from-env:11434/")
    assert resolve_base_url("http://explicit:1/") == "http://explicit:1"
    assert resolve_base_url() == "http://from-env:11434"
    monkeypatch.delenv("OLLAMA_BASE_URL")
    assert resolve_base_url() == "http://127.0.0.1:11434"
