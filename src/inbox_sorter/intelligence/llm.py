"""LLM client abstractions used by the classifier and invoice extractor."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from ..core.config import LlmProvider, LlmSettings

LOGGER = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_output: bool = False,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


@dataclass(slots=True)
class OllamaClient:
    """Thin synchronous client for the Ollama HTTP API."""

    settings: LlmSettings

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_output: bool = False,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url, "api/generate")
        options: dict[str, object] = {
            "temperature": _pick(temperature, self.settings.temperature),
        }
        num_predict = _pick(max_tokens, self.settings.max_output_tokens)
        if num_predict is not None:
            options["num_predict"] = num_predict
        payload: dict[str, object] = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system:
            payload["system"] = system
        if json_output:
            payload["format"] = "json"

        data = _post_with_retries(endpoint, payload, self.settings, headers={})
        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.settings.model}"


@dataclass(slots=True)
class OpenAIChatClient:
    """Client for OpenAI-compatible ``/v1/chat/completions`` endpoints."""

    settings: LlmSettings

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_output: bool = False,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a chat completion request and return the first choice."""
        endpoint = _resolve_endpoint(self.settings.base_url, "v1/chat/completions")
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: dict[str, object] = {
            "model": self.settings.model,
            "messages": messages,
            "temperature": _pick(temperature, self.settings.temperature),
        }
        limit = _pick(max_tokens, self.settings.max_output_tokens)
        if limit is not None:
            payload["max_tokens"] = limit
        if json_output:
            payload["response_format"] = {"type": "json_object"}
        headers = {}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"

        data = _post_with_retries(endpoint, payload, self.settings, headers=headers)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("LLM response missing choices[0].message.content") from exc
        if not isinstance(content, str):
            raise LLMError("LLM response content is not text")
        return content

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"openai:{self.settings.model}"


def build_llm_client(settings: LlmSettings) -> LLMClient:
    """Instantiate the client for the configured provider."""
    if settings.provider is LlmProvider.OPENAI:
        return OpenAIChatClient(settings)
    return OllamaClient(settings)


def _post_with_retries(
    endpoint: str,
    payload: dict[str, object],
    settings: LlmSettings,
    *,
    headers: dict[str, str],
) -> dict[str, Any]:
    data: Any = None
    last_error: Exception | None = None
    attempts = settings.max_retries
    for attempt in range(1, attempts + 1):
        try:
            response = httpx.post(
                endpoint,
                json=payload,
                headers=headers,
                timeout=settings.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
            break
        except httpx.HTTPError as exc:
            last_error = exc
            LOGGER.debug("LLM attempt %s/%s failed: %s", attempt, attempts, exc)
        except json.JSONDecodeError as exc:
            raise LLMError("LLM returned invalid JSON") from exc

        if attempt < attempts:
            delay = min(2**attempt, 8)
            time.sleep(delay)

    if data is None:
        raise LLMError("LLM request failed after retries") from last_error
    if not isinstance(data, dict):
        raise LLMError("LLM returned an unexpected payload")
    return data


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def _resolve_endpoint(base_url: str, path: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    if trimmed.endswith("/v1/") and path.startswith("v1/"):
        path = path[len("v1/") :]
    return urljoin(trimmed, path)


__all__ = [
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "OpenAIChatClient",
    "build_llm_client",
]
