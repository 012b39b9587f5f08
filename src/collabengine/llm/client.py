"""
Model client contract and the SDK-backed implementation.

The orchestrator only ever talks to a ModelClient:

    reply = await client.invoke("claude", "claude-sonnet-4-20250514",
                                AgentPrompt(system_prompt="...", user_prompt="..."),
                                token)

`reply` is a ModelReply (or a bare string from simple mocks). Transport,
authentication and provider quirks live behind this interface, so tests
and alternative backends only need an object with an async invoke().

SDKModelClient is the shipped backend:
  - claude   -> anthropic.AsyncAnthropic (system prompt marked for caching)
  - chatgpt  -> openai.AsyncOpenAI
  - grok, deepseek, llama -> openai.AsyncOpenAI against their OpenAI-compatible endpoints
  - gemini   -> google.generativeai (sync SDK, run in a worker thread)

SDK clients are built with retries disabled; retry/backoff belongs to the
AgentInvoker so every provider gets the same policy.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Protocol, runtime_checkable

import httpx

from ..cancellation import CancellationToken
from ..errors import UnclassifiedError
from ..providers import DEFAULT_MODELS, provider_for
from ..security.prompt_guard import sanitize_for_prompt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.5
DEFAULT_MAX_PROMPT_LENGTH = 200_000

API_KEY_ENV: dict[str, str] = {
    "claude": "ANTHROPIC_API_KEY",
    "chatgpt": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "grok": "XAI_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "llama": "LLAMA_API_KEY",
}

OPENAI_COMPATIBLE_BASE_URLS: dict[str, str | None] = {
    "chatgpt": None,
    "grok": "https://api.x.ai/v1",
    "deepseek": "https://api.deepseek.com",
    "llama": "https://api.llama.com/compat/v1/",
}


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass(frozen=True)
class AgentPrompt:
    """System instructions plus the user-facing prompt for one call."""

    system_prompt: str = ""
    user_prompt: str = ""

    def to_flat_prompt(self) -> str:
        """Flatten to a single string (for providers without a system role)."""
        return "\n\n".join(p for p in (self.system_prompt, self.user_prompt) if p)

    @property
    def total_length(self) -> int:
        return len(self.system_prompt) + len(self.user_prompt)


@dataclass
class ModelReply:
    """Text returned by a model plus whatever usage the provider reported."""

    text: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    model: str = ""
    provider: str = ""
    latency_ms: float = 0.0


@runtime_checkable
class ModelClient(Protocol):
    """Interface every model backend implements."""

    async def invoke(
        self,
        agent_id: str,
        model_id: str | None,
        prompt: AgentPrompt,
        token: CancellationToken,
    ) -> "ModelReply | str": ...


@runtime_checkable
class StreamingModelClient(Protocol):
    """Optional chunked variant; the invoker prefers it when available."""

    def stream(
        self,
        agent_id: str,
        model_id: str | None,
        prompt: AgentPrompt,
        token: CancellationToken,
    ) -> AsyncIterator[str]: ...


# =============================================================================
# SDK CLIENT
# =============================================================================


class SDKModelClient:
    """
    Provider SDK adapter implementing ModelClient.

    Usage:
        client = SDKModelClient()               # keys from environment
        reply = await client.invoke("gemini", None, prompt, token)
    """

    def __init__(
        self,
        api_keys: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ):
        self._api_keys = dict(api_keys) if api_keys is not None else self._load_api_keys()
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_prompt_length = max_prompt_length
        self._clients: dict[str, Any] = {}

        logger.info(
            f"[LLM] SDK client ready for {', '.join(self.available_providers) or 'no providers'} "
            f"(timeout={self._timeout}s)"
        )

    @staticmethod
    def _load_api_keys() -> dict[str, str]:
        keys = {}
        for provider, env_var in API_KEY_ENV.items():
            value = os.environ.get(env_var, "")
            if value:
                keys[provider] = value
        return keys

    @property
    def available_providers(self) -> list[str]:
        return [p for p in API_KEY_ENV if self._api_keys.get(p)]

    def _sdk_client(self, provider: str) -> Any:
        """Build (once) the SDK client for a provider."""
        if provider in self._clients:
            return self._clients[provider]

        api_key = self._api_keys.get(provider, "")
        if not api_key:
            raise UnclassifiedError(
                f"{API_KEY_ENV.get(provider, 'API key')} not set", provider=provider
            )

        http_timeout = httpx.Timeout(self._timeout, connect=10.0)
        if provider == "claude":
            import anthropic

            client = anthropic.AsyncAnthropic(
                api_key=api_key, timeout=http_timeout, max_retries=0
            )
        elif provider in OPENAI_COMPATIBLE_BASE_URLS:
            import openai

            client = openai.AsyncOpenAI(
                api_key=api_key,
                base_url=OPENAI_COMPATIBLE_BASE_URLS[provider],
                timeout=http_timeout,
                max_retries=0,
            )
        elif provider == "gemini":
            import google.generativeai as genai

            genai.configure(api_key=api_key)
            client = genai
        else:
            raise UnclassifiedError(f"Unsupported provider: {provider}", provider=provider)

        self._clients[provider] = client
        return client

    async def invoke(
        self,
        agent_id: str,
        model_id: str | None,
        prompt: AgentPrompt,
        token: CancellationToken,
    ) -> ModelReply:
        token.raise_if_cancelled()
        provider = provider_for(agent_id)
        model = model_id or DEFAULT_MODELS.get(provider, "")
        prompt = self._sanitize_prompt(prompt)

        start = time.time()
        if provider == "claude":
            reply = await self._call_anthropic(model, prompt)
        elif provider == "gemini":
            reply = await self._call_google(model, prompt)
        elif provider in OPENAI_COMPATIBLE_BASE_URLS:
            reply = await self._call_openai(provider, model, prompt)
        else:
            raise UnclassifiedError(f"Unsupported provider: {provider}", provider=provider)
        reply.latency_ms = (time.time() - start) * 1000

        logger.debug(
            f"[LLM] {provider}/{model}: {reply.input_tokens}in + "
            f"{reply.output_tokens}out ({reply.latency_ms:.0f}ms)"
        )
        return reply

    def _sanitize_prompt(self, prompt: AgentPrompt) -> AgentPrompt:
        """Enforce size limits and strip null bytes."""
        return AgentPrompt(
            system_prompt=sanitize_for_prompt(
                prompt.system_prompt, max_length=self._max_prompt_length // 4, redact=False
            ),
            user_prompt=sanitize_for_prompt(
                prompt.user_prompt, max_length=self._max_prompt_length, redact=False
            ),
        )

    async def _call_anthropic(self, model: str, prompt: AgentPrompt) -> ModelReply:
        client = self._sdk_client("claude")
        system_blocks = []
        if prompt.system_prompt:
            system_blocks.append({
                "type": "text",
                "text": prompt.system_prompt,
                "cache_control": {"type": "ephemeral"},
            })

        kwargs: dict[str, Any] = {}
        if system_blocks:
            kwargs["system"] = system_blocks
        response = await client.messages.create(
            model=model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            messages=[{"role": "user", "content": prompt.user_prompt}],
            **kwargs,
        )

        text = "".join(
            getattr(block, "text", "") for block in response.content
        )
        usage = response.usage
        return ModelReply(
            text=text,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
            model=model,
            provider="claude",
        )

    async def _call_openai(self, provider: str, model: str, prompt: AgentPrompt) -> ModelReply:
        client = self._sdk_client(provider)
        messages = []
        if prompt.system_prompt:
            messages.append({"role": "system", "content": prompt.system_prompt})
        messages.append({"role": "user", "content": prompt.user_prompt})

        response = await client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        usage = response.usage
        return ModelReply(
            text=response.choices[0].message.content or "",
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
            model=model,
            provider=provider,
        )

    async def _call_google(self, model: str, prompt: AgentPrompt) -> ModelReply:
        genai = self._sdk_client("gemini")
        generative_model = genai.GenerativeModel(
            model, system_instruction=prompt.system_prompt or None
        )

        response = await asyncio.to_thread(
            generative_model.generate_content,
            prompt.user_prompt,
            generation_config={
                "temperature": self._temperature,
                "max_output_tokens": self._max_tokens,
            },
        )

        input_tok = output_tok = None
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            input_tok = getattr(metadata, "prompt_token_count", None)
            output_tok = getattr(metadata, "candidates_token_count", None)

        return ModelReply(
            text=response.text,
            input_tokens=input_tok,
            output_tokens=output_tok,
            model=model,
            provider="gemini",
        )


# =============================================================================
# FACTORY
# =============================================================================


def create_model_client(**kwargs) -> SDKModelClient:
    """
    Create the SDK-backed client from environment keys.

    Providers without a key stay unavailable; invoking them fails that agent
    only (it is recorded as a Failure, the session carries on).
    """
    client = SDKModelClient(**kwargs)
    if not client.available_providers:
        logger.warning("[LLM] No provider API keys found -- every agent call will fail")
    return client
