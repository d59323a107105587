"""
Completion providers for memory summarization.

Implements the completion capability consumed by the summarizer for
Anthropic, OpenAI and Ollama. Provider clients are created per completer
instance and cached on it.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from persona_memory.config.settings import LLMSettings


logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("anthropic", "openai", "ollama")


class CompletionFn(Protocol):
    """Async completion capability: messages + system prompt in, plain text out."""

    async def __call__(
        self,
        messages: Sequence[Any],
        system_prompt: Optional[str],
        provider: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        ...


def _as_dicts(messages: Sequence[Any]) -> List[Dict[str, str]]:
    result = []
    for m in messages:
        if isinstance(m, dict):
            result.append({"role": m.get("role", "user"), "content": m.get("content", "")})
        else:
            result.append({"role": m.role, "content": m.content})
    return result


class ProviderCompleter:
    """
    Routes completion calls to the requested provider.

    A cloud provider without an API key falls back to Ollama with the
    configured fallback model.
    """

    def __init__(self, settings: Optional[LLMSettings] = None):
        self.settings = settings or LLMSettings()
        self._clients: Dict[str, Any] = {}

    def _has_key(self, provider: str) -> bool:
        if provider == "anthropic":
            return bool(self.settings.anthropic_api_key)
        if provider == "openai":
            return bool(self.settings.openai_api_key)
        return True

    def resolve(self, provider: str, model: str) -> tuple:
        """Return the (provider, model) pair that will actually serve the call."""
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        if not self._has_key(provider):
            logger.info("No API key for %s, falling back to Ollama for completion", provider)
            return "ollama", self.settings.fallback_model
        return provider, model

    def _client(self, provider: str) -> Any:
        if provider not in self._clients:
            if provider == "anthropic":
                self._clients[provider] = self._init_anthropic_client()
            elif provider == "openai":
                self._clients[provider] = self._init_openai_client()
        return self._clients[provider]

    def _init_anthropic_client(self):
        """Initialize Anthropic client."""
        try:
            import anthropic
        except ImportError as e:
            from persona_memory.memory.errors import ProviderNotConfigured
            raise ProviderNotConfigured("Anthropic package required: pip install anthropic") from e
        return anthropic.AsyncAnthropic(
            api_key=self.settings.anthropic_api_key,
            timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
        )

    def _init_openai_client(self):
        """Initialize OpenAI client."""
        try:
            import openai
        except ImportError as e:
            from persona_memory.memory.errors import ProviderNotConfigured
            raise ProviderNotConfigured("OpenAI package required: pip install openai") from e
        return openai.AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            base_url=self.settings.openai_base_url,
            timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
        )

    async def __call__(
        self,
        messages: Sequence[Any],
        system_prompt: Optional[str],
        provider: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        actual_provider, actual_model = self.resolve(provider, model)
        payload = _as_dicts(messages)

        if actual_provider == "anthropic":
            return await self._complete_anthropic(payload, system_prompt, actual_model, temperature, max_tokens)
        if actual_provider == "openai":
            return await self._complete_openai(payload, system_prompt, actual_model, temperature, max_tokens)
        return await asyncio.to_thread(
            self._complete_ollama, payload, system_prompt, actual_model, temperature, max_tokens
        )

    async def _complete_anthropic(self, messages, system_prompt, model, temperature, max_tokens) -> str:
        chat = [m for m in messages if m["role"] != "system"]
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        if system_prompt:
            system_parts.insert(0, system_prompt)

        kwargs = {
            "model": model,
            "messages": chat,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        response = await self._client("anthropic").messages.create(**kwargs)
        for block in response.content:
            if getattr(block, "type", None) == "text":
                return block.text
        return ""

    async def _complete_openai(self, messages, system_prompt, model, temperature, max_tokens) -> str:
        chat = list(messages)
        if system_prompt:
            chat.insert(0, {"role": "system", "content": system_prompt})

        response = await self._client("openai").chat.completions.create(
            model=model,
            messages=chat,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content or ""

    def _complete_ollama(self, messages, system_prompt, model, temperature, max_tokens) -> str:
        chat = list(messages)
        if system_prompt:
            chat.insert(0, {"role": "system", "content": system_prompt})

        payload = {
            "model": model,
            "messages": chat,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        base_url = self.settings.ollama_base_url.rstrip("/")

        try:
            response = requests.post(
                f"{base_url}/api/chat",
                json=payload,
                timeout=self.settings.timeout,
            )
        except requests.exceptions.Timeout:
            raise RuntimeError(f"Ollama request timed out after {self.settings.timeout}s")
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Ollama request failed: {e}. Check if Ollama is running at {base_url}.")

        if response.status_code != 200:
            raise RuntimeError(f"Ollama API returned status {response.status_code}: {response.text}")

        result = response.json()
        return result.get("message", {}).get("content", "")


class MockCompleter:
    """Deterministic completer for testing and offline runs."""

    def __init__(self, response: Optional[str] = None):
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    async def __call__(
        self,
        messages: Sequence[Any],
        system_prompt: Optional[str],
        provider: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        self.calls.append({
            "messages": _as_dicts(messages),
            "system_prompt": system_prompt,
            "provider": provider,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.response is not None:
            return self.response

        text = " ".join(m["content"] for m in _as_dicts(messages))
        words = [w.strip(".,!?:;").lower() for w in text.split()]
        topics = []
        for word in words:
            if len(word) > 6 and word.isalpha() and word not in topics:
                topics.append(word)
            if len(topics) >= 3:
                break
        return json.dumps({
            "summary": "The conversation covered: " + text[:200].replace("\n", " ").strip(),
            "topics": topics or ["conversation"],
        })
