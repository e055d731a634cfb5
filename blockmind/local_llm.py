"""Utilities for calling a locally hosted Ollama server."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_GENERATE_ENDPOINT = "/api/generate"
_TAGS_ENDPOINT = "/api/tags"


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


def resolve_base_url(base_url: str | None = None) -> str:
    return (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")


def _perform_ollama_request(
    endpoint: str,
    payload: dict[str, Any] | None,
    base_url: str,
    timeout: float,
) -> dict[str, Any]:
    """Execute one blocking HTTP request against the Ollama REST API.

    ``payload=None`` issues a GET, anything else a JSON POST.
    """

    url = f"{base_url.rstrip('/')}{endpoint}"
    if payload is None:
        req = request.Request(url, method="GET")
    else:
        req = request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        message = body or exc.reason
        raise LocalLLMError(
            f"Ollama request to {endpoint} failed with status {exc.code}: {message}"
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Could not reach Ollama at {url}: {exc.reason}") from exc
    except OSError as exc:
        raise LocalLLMError(f"Ollama request to {url} failed: {exc}") from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc


async def call_ollama_generate(
    *,
    prompt: str,
    llm_model: str,
    max_tokens: int,
    base_url: str | None = None,
    timeout: float = 30.0,
    temperature: float = 0.7,
    top_p: float = 0.9,
) -> str:
    """Invoke a local Ollama model with a single prompt and return its text."""

    prompt = prompt.strip()
    if not prompt:
        raise LocalLLMError("Cannot call Ollama with an empty prompt.")

    payload = {
        "model": llm_model,
        "prompt": prompt,
        "stream": False,
        "options": {
            "temperature": temperature,
            "top_p": top_p,
            # Ollama's name for the response token ceiling
            "num_predict": max_tokens,
        },
    }

    parsed = await asyncio.to_thread(
        _perform_ollama_request,
        _GENERATE_ENDPOINT,
        payload,
        resolve_base_url(base_url),
        timeout,
    )

    content = parsed.get("response")
    if not isinstance(content, str):
        raise LocalLLMError("Ollama response did not include generated text.")
    return content


async def probe_ollama(*, base_url: str | None = None, timeout: float = 5.0) -> list[str]:
    """List the models the server has pulled. Raises LocalLLMError when unreachable."""

    parsed = await asyncio.to_thread(
        _perform_ollama_request,
        _TAGS_ENDPOINT,
        None,
        resolve_base_url(base_url),
        timeout,
    )
    return [model.get("name", "") for model in parsed.get("models", [])]


__all__ = [
    "LocalLLMError",
    "call_ollama_generate",
    "probe_ollama",
    "resolve_base_url",
    "DEFAULT_OLLAMA_BASE_URL",
]
