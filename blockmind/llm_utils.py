"""Helper utilities for oracle text calls: provider routing, timeout and retries."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from mirascope import llm
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from blockmind.local_llm import LocalLLMError, call_ollama_generate
from blockmind.logging_utils import log_error


LLM_TIMEOUT_SECONDS = 30.0


class EmptyResponseError(ValueError):
    """Raised when the oracle answered with nothing usable."""


def _response_text(response: Any) -> str:
    """Extract plain text from a mirascope response (or a bare string)."""

    if isinstance(response, str):
        return response
    content = getattr(response, "content", None)
    if isinstance(content, str):
        return content
    raise EmptyResponseError(f"Unexpected oracle response type: {type(response).__name__}")


async def call_llm_text_with_retries(
    *,
    prompt: str,
    llm_provider: str,
    llm_model: str,
    max_tokens: int,
    timeout: float = LLM_TIMEOUT_SECONDS,
    max_attempts: int = 2,
    base_url: str | None = None,
) -> str:
    """Invoke the oracle for free text with a hard timeout.

    Only blank responses are retried (they are usually a sampling hiccup). Timeouts
    and transport failures propagate immediately: the gateway substitutes its
    fallback instead of stalling the decision cycle.
    """

    prompt = prompt.strip()
    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(
            provider=llm_provider,
            model=llm_model,
            call_params={"max_tokens": max_tokens},
        )
        async def _invoke(text: str) -> str:
            return text

        remote_invoke = _invoke

    attempt_number = 0
    # retry_if_exception_type(EmptyResponseError) means only blank answers trigger a
    # retry; reraise=True hands the final exception to the caller.
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(EmptyResponseError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_error(f"Oracle retry {attempt_number}/{max_attempts} after empty response.")
            try:
                if use_local_llm:
                    raw = await asyncio.wait_for(
                        call_ollama_generate(
                            prompt=prompt,
                            llm_model=llm_model,
                            max_tokens=max_tokens,
                            base_url=base_url,
                            timeout=timeout,
                        ),
                        timeout=timeout,
                    )
                else:
                    if remote_invoke is None:
                        raise RuntimeError("Remote oracle invoke is not initialized.")
                    raw = _response_text(
                        await asyncio.wait_for(remote_invoke(prompt), timeout=timeout)
                    )
            except asyncio.TimeoutError:
                log_error(f"Oracle call timed out after {timeout:g}s.")
                raise
            except LocalLLMError as exc:
                raise RuntimeError(f"Local oracle error ({llm_provider}): {exc}") from exc

            text = raw.strip()
            if not text:
                raise EmptyResponseError("Oracle returned an empty response.")
            return text

    # AsyncRetrying with reraise=True always exits via return or raise.
    raise RuntimeError("Oracle retry mechanism exited unexpectedly")
