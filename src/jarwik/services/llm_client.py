"""Provider-agnostic LLM client with ordered provider fallback.

Used for the two places Jarwik needs a language model: classifying messages
the rule-based parser is unsure about, and replying to general chat. All
calls are synchronous httpx requests; async callers run them in an executor.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


# Tried in this order unless a primary provider is given
PROVIDER_PRIORITY = [LLMProvider.OPENAI, LLMProvider.GEMINI, LLMProvider.ANTHROPIC]


@dataclass
class ChatTurn:
    """One prior message of a conversation."""

    role: str  # "user" or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""

    text: str
    provider: LLMProvider
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: int = 0
    raw_response: dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers."""

    provider: LLMProvider
    default_model: str

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.model = model or self.default_model
        if client is None:
            self._client = httpx.Client(timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        history: list[ChatTurn] | None = None,
        temperature: float = 0.2,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> LLMResponse:
        start_time = time.time()
        url, kwargs = self._build_request(
            prompt,
            system_prompt=system_prompt,
            history=history or [],
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )
        response = self._client.post(url, **kwargs)
        response.raise_for_status()
        data = response.json()

        text, tokens_input, tokens_output = self._parse_response(data)
        return LLMResponse(
            text=text,
            provider=self.provider,
            model=self.model,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=int((time.time() - start_time) * 1000),
            raw_response=data,
        )

    @abstractmethod
    def _build_request(
        self,
        prompt: str,
        *,
        system_prompt: str | None,
        history: list[ChatTurn],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> tuple[str, dict[str, Any]]:
        """Return the endpoint URL and keyword arguments for ``httpx.Client.post``."""

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> tuple[str, int, int]:
        """Return (text, input tokens, output tokens)."""


class OpenAIProvider(BaseLLMProvider):
    provider = LLMProvider.OPENAI
    default_model = "gpt-4o-mini"

    def _build_request(self, prompt, *, system_prompt, history, temperature, max_tokens, json_mode):
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend({"role": turn.role, "content": turn.content} for turn in history)
        messages.append({"role": "user", "content": prompt})

        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        return "https://api.openai.com/v1/chat/completions", {
            "headers": {"Authorization": f"Bearer {self.api_key}"},
            "json": body,
        }

    def _parse_response(self, data):
        choices = data.get("choices", [])
        text = choices[0].get("message", {}).get("content") or "" if choices else ""
        usage = data.get("usage", {})
        return text, usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0)


class GeminiProvider(BaseLLMProvider):
    provider = LLMProvider.GEMINI
    default_model = "gemini-2.5-flash-lite"

    def _build_request(self, prompt, *, system_prompt, history, temperature, max_tokens, json_mode):
        contents = [
            {"role": "model" if turn.role == "assistant" else "user", "parts": [{"text": turn.content}]}
            for turn in history
        ]
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        body: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        endpoint = (
            f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
        )
        return endpoint, {"params": {"key": self.api_key}, "json": body}

    def _parse_response(self, data):
        text = ""
        candidates = data.get("candidates", [])
        if candidates:
            for part in candidates[0].get("content", {}).get("parts", []):
                if "text" in part:
                    text = part["text"]
                    break
        usage = data.get("usageMetadata", {})
        return text, usage.get("promptTokenCount", 0), usage.get("candidatesTokenCount", 0)


class AnthropicProvider(BaseLLMProvider):
    provider = LLMProvider.ANTHROPIC
    default_model = "claude-3-5-haiku-latest"

    def _build_request(self, prompt, *, system_prompt, history, temperature, max_tokens, json_mode):
        if json_mode:
            prompt = f"{prompt}\n\nRespond with valid JSON only, no other text."
        messages = [{"role": turn.role, "content": turn.content} for turn in history]
        messages.append({"role": "user", "content": prompt})

        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_prompt:
            body["system"] = system_prompt
        return "https://api.anthropic.com/v1/messages", {
            "headers": {
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "content-type": "application/json",
            },
            "json": body,
        }

    def _parse_response(self, data):
        text = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                text = block.get("text", "")
                break
        usage = data.get("usage", {})
        return text, usage.get("input_tokens", 0), usage.get("output_tokens", 0)


PROVIDER_CLASSES: dict[LLMProvider, type[BaseLLMProvider]] = {
    LLMProvider.OPENAI: OpenAIProvider,
    LLMProvider.GEMINI: GeminiProvider,
    LLMProvider.ANTHROPIC: AnthropicProvider,
}


class LLMClient:
    """Tries each configured provider in order until one answers."""

    def __init__(
        self,
        *,
        openai_api_key: str = "",
        gemini_api_key: str = "",
        anthropic_api_key: str = "",
        models: dict[LLMProvider, str] | None = None,
        primary_provider: LLMProvider | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        providers: list[BaseLLMProvider] | None = None,
    ) -> None:
        models = models or {}
        keys = {
            LLMProvider.OPENAI: openai_api_key,
            LLMProvider.GEMINI: gemini_api_key,
            LLMProvider.ANTHROPIC: anthropic_api_key,
        }

        self._providers: dict[LLMProvider, BaseLLMProvider] = {}
        if providers is not None:
            for impl in providers:
                self._providers[impl.provider] = impl
        else:
            for p in PROVIDER_PRIORITY:
                if keys[p]:
                    self._providers[p] = PROVIDER_CLASSES[p](
                        api_key=keys[p], model=models.get(p), timeout=timeout
                    )

        order = [p for p in PROVIDER_PRIORITY if p in self._providers]
        if primary_provider in self._providers:
            order.remove(primary_provider)
            order.insert(0, primary_provider)
        self._order = order

    @property
    def available_providers(self) -> list[LLMProvider]:
        return list(self._order)

    @property
    def is_available(self) -> bool:
        return bool(self._providers)

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        history: list[ChatTurn] | None = None,
        temperature: float = 0.2,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send a completion request, falling back across providers.

        Raises:
            RuntimeError: If no providers are configured or all of them fail
        """
        if not self.is_available:
            raise RuntimeError("No LLM providers configured")

        errors: list[tuple[LLMProvider, Exception]] = []
        for p in self._order:
            try:
                return self._providers[p].complete(
                    prompt,
                    system_prompt=system_prompt,
                    history=history,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                )
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning("Provider %s failed: %s", p.value, e)
                errors.append((p, e))

        error_summary = "; ".join(f"{p.value}: {e}" for p, e in errors)
        raise RuntimeError(f"All LLM providers failed: {error_summary}")

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()


def build_llm_client(settings: Any = None, timeout: float | None = None) -> LLMClient:
    """Create a client from application settings."""
    if settings is None:
        from jarwik.config import settings

    return LLMClient(
        openai_api_key=settings.openai_api_key,
        gemini_api_key=settings.gemini_api_key,
        anthropic_api_key=settings.anthropic_api_key,
        models={
            LLMProvider.OPENAI: settings.openai_model,
            LLMProvider.GEMINI: settings.gemini_model,
        },
        timeout=timeout or settings.fallback_timeout_seconds,
    )
