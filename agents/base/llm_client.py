# =============================================================================
# AGENTFORGE - LLM CLIENT
# =============================================================================
"""
LLM Client Module

This module provides the model adapter layer: one adapter per provider,
each translating the uniform generation contract into that provider's
API. It handles:
1. Model configuration records (ModelConfig, GenerateOptions)
2. The standardized response (LLMResponse)
3. API key and base URL resolution from environment variables
4. Provider-specific request/response mapping

Adapters are stateless with respect to models: the ModelConfig is
passed on every call, so one adapter instance serves every configured
model of its provider.

Usage:
    adapter = AnthropicAdapter()
    config = ModelConfig(provider="anthropic", model="claude-3-5-sonnet-latest")
    if await adapter.is_available(config):
        response = await adapter.generate(config, "Explain this code...")
"""

import math
import os
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Optional, Dict, Any, List

import aiohttp
import anthropic
import openai


logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class LLMProvider(Enum):
    """Supported LLM providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


class FinishReason(Enum):
    """Why generation stopped."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class LLMError(Exception):
    """Base exception for LLM errors."""
    pass


class LLMProviderError(LLMError):
    """Error from LLM provider."""
    pass


class ModelNotFoundError(LLMError):
    """An explicitly requested model is not configured."""
    pass


class NoModelAvailableError(LLMError):
    """No configured model is currently available."""
    pass


class ConfigurationError(LLMError):
    """Configuration error."""
    pass


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class GenerateOptions:
    """
    Generation parameters. Unset values defer to the model defaults.

    Attributes:
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate
        top_p: Nucleus sampling mass
        top_k: Top-k sampling (Anthropic, Ollama)
        frequency_penalty: Frequency penalty (OpenAI)
        presence_penalty: Presence penalty (OpenAI)
        stop: Stop sequences
        system_prompt: System instruction sent alongside the prompt
    """
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    system_prompt: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GenerateOptions":
        """Create options from a dictionary, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty options only."""
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not None}

    def merged(self, overrides: Optional["GenerateOptions"]) -> "GenerateOptions":
        """Return a copy with every set value of overrides applied."""
        if overrides is None:
            return replace(self)
        return replace(self, **overrides.to_dict())


@dataclass(frozen=True)
class ModelConfig:
    """
    One configured model. Immutable once loaded.

    Attributes:
        provider: Adapter key (anthropic, openai, ollama)
        model: Provider model name
        api_key_env_var: Environment variable holding the API key
        base_url_env_var: Environment variable holding the base URL
        priority: Higher is tried first in the fallback cascade
        context_window: Context window in tokens
        default_options: Options applied to every call on this model
    """
    provider: str
    model: str
    api_key_env_var: Optional[str] = None
    base_url_env_var: Optional[str] = None
    priority: int = 0
    context_window: Optional[int] = None
    default_options: GenerateOptions = field(default_factory=GenerateOptions)

    @property
    def model_id(self) -> str:
        """Registry key: provider:model."""
        return f"{self.provider}:{self.model}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelConfig":
        """
        Create ModelConfig from a configuration entry.

        Raises:
            ConfigurationError: If provider or model is missing
        """
        if not data.get("provider") or not data.get("model"):
            raise ConfigurationError(f"Model entry requires provider and model: {data}")
        return cls(
            provider=str(data["provider"]).lower(),
            model=str(data["model"]),
            api_key_env_var=data.get("api_key_env_var"),
            base_url_env_var=data.get("base_url_env_var"),
            priority=int(data.get("priority", 0)),
            context_window=data.get("context_window"),
            default_options=GenerateOptions.from_dict(data.get("default_options")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key_env_var": self.api_key_env_var,
            "base_url_env_var": self.base_url_env_var,
            "priority": self.priority,
            "context_window": self.context_window,
            "default_options": self.default_options.to_dict(),
        }


@dataclass(frozen=True)
class LLMUsage:
    """Token usage for one call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class LLMResponse:
    """
    Standardized response from an adapter. Never mutated.

    Attributes:
        text: Generated text content
        model: Model that served the request
        provider: Provider that served the request
        usage: Token usage
        finish_reason: stop, length, content_filter or error
        latency_ms: Wall-clock time of the call
    """
    text: str
    model: str
    provider: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    finish_reason: str = FinishReason.STOP.value
    latency_ms: float = 0.0


@dataclass
class GenerateRequest:
    """A prompt plus options, optionally pinned to one model id."""
    prompt: str
    options: Optional[GenerateOptions] = None
    model_id: Optional[str] = None


def estimate_tokens(text: str) -> int:
    """Rough token count for providers that do not report usage."""
    return math.ceil(len(text or "") / 4)


# =============================================================================
# ADAPTER INTERFACE
# =============================================================================

class BaseModelAdapter(ABC):
    """
    Abstract interface for provider adapters.

    generate() raises LLMProviderError on failure; is_available()
    must never raise.
    """

    provider: str = ""
    default_api_key_env: Optional[str] = None
    default_base_url_env: Optional[str] = None

    def __init__(self, timeout: float = 120.0, max_retries: int = 2):
        self.timeout = timeout
        self.max_retries = max_retries
        self.logger = logging.getLogger(f"orchestrator.llm.{self.provider}")

    @abstractmethod
    async def generate(self, config: ModelConfig, prompt: str,
                       options: Optional[GenerateOptions] = None) -> LLMResponse:
        """Generate a completion for prompt on the given model."""
        pass

    @abstractmethod
    async def is_available(self, config: ModelConfig) -> bool:
        """Whether the model can currently serve requests."""
        pass

    async def list_models(self) -> List[str]:
        """Models the provider reports. Optional."""
        return []

    async def close(self):
        """Release network resources."""
        pass

    def get_api_key(self, config: ModelConfig) -> Optional[str]:
        env_var = config.api_key_env_var or self.default_api_key_env
        return os.environ.get(env_var) if env_var else None

    def get_base_url(self, config: ModelConfig) -> Optional[str]:
        env_var = config.base_url_env_var or self.default_base_url_env
        return os.environ.get(env_var) if env_var else None

    def resolve_options(self, config: ModelConfig,
                        options: Optional[GenerateOptions]) -> GenerateOptions:
        """Model defaults overlaid with per-call options."""
        return config.default_options.merged(options)


# =============================================================================
# ANTHROPIC ADAPTER
# =============================================================================

ANTHROPIC_FINISH_REASONS = {
    "end_turn": FinishReason.STOP.value,
    "stop_sequence": FinishReason.STOP.value,
    "max_tokens": FinishReason.LENGTH.value,
    "refusal": FinishReason.CONTENT_FILTER.value,
}


class AnthropicAdapter(BaseModelAdapter):
    """Adapter for Anthropic Claude models."""

    provider = LLMProvider.ANTHROPIC.value
    default_api_key_env = "ANTHROPIC_API_KEY"

    def __init__(self, timeout: float = 120.0, max_retries: int = 2):
        super().__init__(timeout, max_retries)
        self._clients: Dict[str, Any] = {}

    def _get_client(self, config: ModelConfig):
        """Get or create an Anthropic client for the model's API key."""
        api_key = self.get_api_key(config)
        if not api_key:
            raise ConfigurationError(
                f"{config.api_key_env_var or self.default_api_key_env} not set"
            )

        if api_key not in self._clients:
            kwargs = {
                "api_key": api_key,
                "timeout": self.timeout,
                "max_retries": self.max_retries,
            }
            base_url = self.get_base_url(config)
            if base_url:
                kwargs["base_url"] = base_url
            self._clients[api_key] = anthropic.AsyncAnthropic(**kwargs)
        return self._clients[api_key]

    async def generate(self, config: ModelConfig, prompt: str,
                       options: Optional[GenerateOptions] = None) -> LLMResponse:
        """Invoke Claude with a single user message."""
        try:
            client = self._get_client(config)
        except ConfigurationError as e:
            raise LLMProviderError(f"Anthropic configuration error: {e}")

        opts = self.resolve_options(config, options)
        start_time = time.time()

        request_kwargs = {
            "model": config.model,
            "max_tokens": opts.max_tokens or 1024,
            "messages": [{"role": "user", "content": prompt}],
        }
        if opts.system_prompt:
            request_kwargs["system"] = opts.system_prompt
        if opts.temperature is not None:
            request_kwargs["temperature"] = opts.temperature
        if opts.top_p is not None:
            request_kwargs["top_p"] = opts.top_p
        if opts.top_k is not None:
            request_kwargs["top_k"] = opts.top_k
        if opts.stop:
            request_kwargs["stop_sequences"] = opts.stop

        try:
            response = await client.messages.create(**request_kwargs)
        except Exception as e:
            self.logger.error(f"Anthropic API error: {e}")
            raise LLMProviderError(f"Anthropic API error: {e}")

        latency = (time.time() - start_time) * 1000
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )

        return LLMResponse(
            text=text,
            model=response.model or config.model,
            provider=self.provider,
            usage=LLMUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            ),
            finish_reason=ANTHROPIC_FINISH_REASONS.get(
                response.stop_reason, FinishReason.STOP.value
            ),
            latency_ms=latency,
        )

    async def is_available(self, config: ModelConfig) -> bool:
        """Anthropic has no status endpoint; a plausible key is enough."""
        api_key = self.get_api_key(config)
        return bool(api_key) and len(api_key) > 20

    async def list_models(self) -> List[str]:
        try:
            client = self._get_client(ModelConfig(provider=self.provider, model=""))
            page = await client.models.list()
            return [model.id for model in page.data]
        except Exception as e:
            self.logger.warning(f"Could not list Anthropic models: {e}")
            return []

    async def close(self):
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


# =============================================================================
# OPENAI ADAPTER
# =============================================================================

OPENAI_FINISH_REASONS = {
    "stop": FinishReason.STOP.value,
    "length": FinishReason.LENGTH.value,
    "content_filter": FinishReason.CONTENT_FILTER.value,
}


class OpenAIAdapter(BaseModelAdapter):
    """Adapter for OpenAI GPT models (and compatible endpoints)."""

    provider = LLMProvider.OPENAI.value
    default_api_key_env = "OPENAI_API_KEY"

    def __init__(self, timeout: float = 120.0, max_retries: int = 2):
        super().__init__(timeout, max_retries)
        self._clients: Dict[tuple, Any] = {}

    def _get_client(self, config: ModelConfig):
        """Get or create an OpenAI client for the model's key and base URL."""
        api_key = self.get_api_key(config)
        if not api_key:
            raise ConfigurationError(
                f"{config.api_key_env_var or self.default_api_key_env} not set"
            )

        base_url = self.get_base_url(config)
        cache_key = (api_key, base_url)
        if cache_key not in self._clients:
            kwargs = {
                "api_key": api_key,
                "timeout": self.timeout,
                "max_retries": self.max_retries,
            }
            if base_url:
                kwargs["base_url"] = base_url
            self._clients[cache_key] = openai.AsyncOpenAI(**kwargs)
        return self._clients[cache_key]

    async def generate(self, config: ModelConfig, prompt: str,
                       options: Optional[GenerateOptions] = None) -> LLMResponse:
        """Invoke a chat completion with an optional system message."""
        try:
            client = self._get_client(config)
        except ConfigurationError as e:
            raise LLMProviderError(f"OpenAI configuration error: {e}")

        opts = self.resolve_options(config, options)
        start_time = time.time()

        messages = []
        if opts.system_prompt:
            messages.append({"role": "system", "content": opts.system_prompt})
        messages.append({"role": "user", "content": prompt})

        request_kwargs = {"model": config.model, "messages": messages}
        for name in ("temperature", "max_tokens", "top_p",
                     "frequency_penalty", "presence_penalty", "stop"):
            value = getattr(opts, name)
            if value is not None:
                request_kwargs[name] = value

        try:
            response = await client.chat.completions.create(**request_kwargs)
        except Exception as e:
            self.logger.error(f"OpenAI API error: {e}")
            raise LLMProviderError(f"OpenAI API error: {e}")

        latency = (time.time() - start_time) * 1000

        if not response.choices:
            raise LLMProviderError("OpenAI API returned no choices")
        choice = response.choices[0]

        return LLMResponse(
            text=choice.message.content or "",
            model=response.model or config.model,
            provider=self.provider,
            usage=LLMUsage(
                prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
                completion_tokens=response.usage.completion_tokens if response.usage else 0,
            ),
            finish_reason=OPENAI_FINISH_REASONS.get(
                choice.finish_reason, FinishReason.STOP.value
            ),
            latency_ms=latency,
        )

    async def is_available(self, config: ModelConfig) -> bool:
        """Available iff a key is set and the models endpoint answers."""
        try:
            client = self._get_client(config)
            await client.models.list()
            return True
        except Exception as e:
            self.logger.debug(f"OpenAI model {config.model} unavailable: {e}")
            return False

    async def list_models(self) -> List[str]:
        try:
            client = self._get_client(ModelConfig(provider=self.provider, model=""))
            page = await client.models.list()
            return [
                model.id for model in page.data
                if "gpt" in model.id or "text-" in model.id or "davinci" in model.id
            ]
        except Exception as e:
            self.logger.warning(f"Could not list OpenAI models: {e}")
            return []

    async def close(self):
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


# =============================================================================
# OLLAMA ADAPTER
# =============================================================================

class OllamaAdapter(BaseModelAdapter):
    """Adapter for local Ollama models."""

    provider = LLMProvider.OLLAMA.value
    default_base_url_env = "OLLAMA_BASE_URL"
    default_base_url = "http://localhost:11434"

    def __init__(self, timeout: float = 120.0, max_retries: int = 2):
        super().__init__(timeout, max_retries)
        self._session: Optional[aiohttp.ClientSession] = None

    def get_base_url(self, config: ModelConfig) -> str:
        return (super().get_base_url(config) or self.default_base_url).rstrip("/")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.post(url, json=payload) as response:
            if response.status != 200:
                text = await response.text()
                raise LLMProviderError(f"Ollama error {response.status}: {text}")
            return await response.json()

    async def _get_json(self, url: str, timeout: float = 5.0) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                raise LLMProviderError(f"Ollama error {response.status}")
            return await response.json()

    async def generate(self, config: ModelConfig, prompt: str,
                       options: Optional[GenerateOptions] = None) -> LLMResponse:
        """Invoke /api/generate without streaming."""
        opts = self.resolve_options(config, options)
        start_time = time.time()

        ollama_options = {
            "temperature": opts.temperature,
            "top_p": opts.top_p,
            "top_k": opts.top_k,
            "num_predict": opts.max_tokens,
            "stop": opts.stop,
        }
        request_data = {
            "model": config.model,
            "prompt": prompt,
            "stream": False,
            "options": {k: v for k, v in ollama_options.items() if v is not None},
        }
        if opts.system_prompt:
            request_data["system"] = opts.system_prompt

        try:
            data = await self._post_json(f"{self.get_base_url(config)}/api/generate", request_data)
        except LLMProviderError:
            raise
        except Exception as e:
            self.logger.error(f"Ollama API error: {e}")
            raise LLMProviderError(f"Ollama API error: {e}")

        latency = (time.time() - start_time) * 1000
        text = data.get("response", "")
        finish_reason = (
            FinishReason.LENGTH.value if data.get("done_reason") == "length"
            else FinishReason.STOP.value
        )

        return LLMResponse(
            text=text,
            model=data.get("model", config.model),
            provider=self.provider,
            usage=LLMUsage(
                prompt_tokens=data.get("prompt_eval_count") or estimate_tokens(prompt),
                completion_tokens=data.get("eval_count") or estimate_tokens(text),
            ),
            finish_reason=finish_reason,
            latency_ms=latency,
        )

    async def is_available(self, config: ModelConfig) -> bool:
        """Ping /api/version on the configured server."""
        try:
            await self._get_json(f"{self.get_base_url(config)}/api/version")
            return True
        except Exception as e:
            self.logger.debug(f"Ollama server for {config.model} unavailable: {e}")
            return False

    async def list_models(self) -> List[str]:
        base_url = self.get_base_url(ModelConfig(provider=self.provider, model=""))
        try:
            data = await self._get_json(f"{base_url}/api/tags")
            return [model.get("name", "") for model in data.get("models", [])]
        except Exception as e:
            self.logger.warning(f"Could not list Ollama models: {e}")
            return []

    async def close(self):
        """Close the session."""
        if self._session:
            await self._session.close()
            self._session = None


# =============================================================================
# FACTORY
# =============================================================================

ADAPTER_CLASSES = {
    LLMProvider.ANTHROPIC.value: AnthropicAdapter,
    LLMProvider.OPENAI.value: OpenAIAdapter,
    LLMProvider.OLLAMA.value: OllamaAdapter,
}


def create_default_adapters(timeout: float = 120.0, max_retries: int = 2) -> Dict[str, BaseModelAdapter]:
    """
    Create one adapter per supported provider.

    Args:
        timeout: Request timeout in seconds
        max_retries: SDK-level retries (Anthropic/OpenAI)

    Returns:
        Mapping of provider key to adapter
    """
    return {
        provider: adapter_class(timeout=timeout, max_retries=max_retries)
        for provider, adapter_class in ADAPTER_CLASSES.items()
    }
