# =============================================================================
# AGENTFORGE - MODEL REGISTRY
# =============================================================================
"""
Model Registry Module

Holds every configured model, checks each adapter for availability and
dispatches generation requests across the available models.

Dispatch rules:
    - An explicit model id is looked up in the full configured list and
      served by that model only; adapter errors propagate.
    - Otherwise models are tried highest priority first (ties keep
      configuration order). The first success wins; each failure is
      logged and the next model is tried. When every model fails the
      last error is re-raised.

The available set is rebuilt aside during discovery and swapped in with
a single assignment, so concurrent generate() calls always see either
the old or the new set, never a partial one.

Usage:
    registry = ModelRegistry(create_default_adapters(), "config/models.yaml")
    await registry.reload()
    response = await registry.generate("Summarize this requirement...")
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import yaml

from .llm_client import (
    BaseModelAdapter,
    ConfigurationError,
    GenerateOptions,
    GenerateRequest,
    LLMResponse,
    ModelConfig,
    ModelNotFoundError,
    NoModelAvailableError,
)


logger = logging.getLogger(__name__)


DEFAULT_MODEL_CONFIG = ModelConfig(
    provider="ollama",
    model="llama3",
    base_url_env_var="OLLAMA_BASE_URL",
    priority=1,
    context_window=8192,
    default_options=GenerateOptions(temperature=0.7, max_tokens=2048, top_p=0.9),
)


def load_model_configs(path: Optional[Union[str, Path]]) -> List[ModelConfig]:
    """
    Read the ordered model list from a YAML or JSON file.

    The file may hold a bare list or a mapping with a ``models`` key.
    Invalid entries are skipped with a warning.

    Returns:
        Parsed configs; the built-in default when the file is absent,
        unparsable or holds no valid entry.
    """
    if not path:
        logger.warning("No model configuration path set, using default model")
        return [DEFAULT_MODEL_CONFIG]

    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Model configuration {config_path} not found, using default model")
        return [DEFAULT_MODEL_CONFIG]

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix == ".json":
                raw = json.load(f)
            else:
                raw = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error(f"Failed to parse model configuration {config_path}: {e}")
        return [DEFAULT_MODEL_CONFIG]

    entries = raw.get("models", []) if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        logger.error(f"Model configuration {config_path} is not a list of models")
        return [DEFAULT_MODEL_CONFIG]

    configs = []
    for entry in entries:
        try:
            configs.append(ModelConfig.from_dict(entry))
        except (ConfigurationError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping invalid model entry: {e}")

    if not configs:
        logger.warning(f"No valid models in {config_path}, using default model")
        return [DEFAULT_MODEL_CONFIG]

    logger.info(f"Loaded {len(configs)} model configurations from {config_path}")
    return configs


# =============================================================================
# MODEL REGISTRY
# =============================================================================

class ModelRegistry:
    """
    Model registry, availability discovery and generation dispatcher.

    Attributes:
        adapters: Provider key -> adapter
        config_path: File the model list is loaded from
        models: Every configured model, in configuration order
    """

    def __init__(
        self,
        adapters: Dict[str, BaseModelAdapter],
        config_path: Optional[Union[str, Path]] = None,
        metrics=None,
        audit=None,
    ):
        """
        Initialize the registry.

        Args:
            adapters: Provider key -> adapter
            config_path: YAML/JSON model list
            metrics: Optional MetricsCollector
            audit: Optional AuditLogger
        """
        self.adapters = adapters
        self.config_path = config_path
        self.metrics = metrics
        self.audit = audit
        self.models: List[ModelConfig] = []
        self._available: Dict[str, ModelConfig] = {}

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    def load_models(self) -> List[ModelConfig]:
        """Load the configured model list from disk."""
        self.models = load_model_configs(self.config_path)
        return self.models

    def set_models(self, models: List[ModelConfig]) -> None:
        """Replace the configured model list (no discovery)."""
        self.models = list(models)

    async def discover(self) -> Dict[str, ModelConfig]:
        """
        Check every configured model and rebuild the available set.

        A missing adapter or an adapter exception skips that model only.

        Returns:
            The new available set
        """
        available: Dict[str, ModelConfig] = {}

        for config in self.models:
            adapter = self.adapters.get(config.provider)
            if adapter is None:
                logger.warning(f"No adapter for provider '{config.provider}', skipping {config.model_id}")
                continue

            try:
                if await adapter.is_available(config):
                    available[config.model_id] = config
                    logger.info(f"Model available: {config.model_id} (priority {config.priority})")
                else:
                    logger.info(f"Model unavailable: {config.model_id}")
            except Exception as e:
                logger.error(f"Availability check failed for {config.model_id}: {e}")

        self._available = available

        if self.metrics:
            self.metrics.set_models_available(len(available))
        if not available:
            logger.warning("No LLM models are available")

        return available

    async def reload(self) -> int:
        """
        Reload configuration and rediscover from scratch.

        Returns:
            Number of available models
        """
        self.load_models()
        await self.discover()
        return len(self._available)

    def is_available(self) -> bool:
        """True iff at least one model is currently available."""
        return len(self._available) > 0

    def get_available_models(self) -> List[Dict[str, Any]]:
        """Available models ordered by dispatch priority."""
        return [
            {
                "id": config.model_id,
                "provider": config.provider,
                "model": config.model,
                "priority": config.priority,
                "context_window": config.context_window,
            }
            for config in self._ranked(self._available)
        ]

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        """Find a configured model by id."""
        for config in self.models:
            if config.model_id == model_id:
                return config
        return None

    @staticmethod
    def _ranked(available: Dict[str, ModelConfig]) -> List[ModelConfig]:
        # sorted() is stable, so equal priorities keep configuration order
        return sorted(available.values(), key=lambda c: c.priority, reverse=True)

    # =========================================================================
    # GENERATION
    # =========================================================================

    async def generate(
        self,
        prompt: Union[str, GenerateRequest],
        options: Optional[Union[GenerateOptions, Dict[str, Any]]] = None,
        model_id: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate text with an explicit model or the fallback cascade.

        Args:
            prompt: Prompt text or a GenerateRequest
            options: Per-call options (GenerateOptions or dict)
            model_id: Pin the request to "provider:model"

        Returns:
            The first successful LLMResponse

        Raises:
            ModelNotFoundError: Explicit model id is not configured
            NoModelAvailableError: The available set is empty
            LLMProviderError: Every attempted model failed (last error)
        """
        if isinstance(prompt, GenerateRequest):
            request = prompt
        else:
            request = GenerateRequest(prompt=prompt)

        if isinstance(options, dict):
            options = GenerateOptions.from_dict(options)
        if options is not None:
            request.options = options
        if model_id is not None:
            request.model_id = model_id

        if request.model_id:
            config = self.get_model(request.model_id)
            if config is None:
                raise ModelNotFoundError(f"Model '{request.model_id}' is not configured")
            return await self._call(config, request)

        # Snapshot the current set; discovery may swap it meanwhile
        ranked = self._ranked(self._available)
        if not ranked:
            raise NoModelAvailableError("No LLM model is available")

        last_error: Optional[Exception] = None
        for config in ranked:
            try:
                return await self._call(config, request)
            except Exception as e:
                logger.warning(f"Model {config.model_id} failed, trying next: {e}")
                if self.metrics:
                    self.metrics.record_fallback(config.model_id)
                last_error = e

        logger.error(f"All {len(ranked)} available models failed")
        raise last_error

    async def _call(self, config: ModelConfig, request: GenerateRequest) -> LLMResponse:
        adapter = self.adapters.get(config.provider)
        if adapter is None:
            raise ConfigurationError(f"No adapter for provider '{config.provider}'")

        start_time = time.time()
        try:
            response = await adapter.generate(config, request.prompt, request.options)
        except Exception:
            if self.metrics:
                self.metrics.record_llm_call(
                    config.provider, config.model, 0, 0, time.time() - start_time, "error"
                )
            raise

        duration = time.time() - start_time
        cost = 0.0
        if self.metrics:
            cost = self.metrics.record_llm_call(
                response.provider, response.model,
                response.usage.prompt_tokens, response.usage.completion_tokens,
                duration, "success",
            )
        if self.audit:
            self.audit.log_llm_call(
                response.provider, response.model,
                response.usage.prompt_tokens, response.usage.completion_tokens,
                duration, cost,
            )
        return response

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def health_check(self) -> Dict[str, Any]:
        """Report configured and available models."""
        return {
            "healthy": self.is_available(),
            "configured": len(self.models),
            "available": len(self._available),
            "models": [m["id"] for m in self.get_available_models()],
        }

    async def close(self):
        """Close every adapter."""
        for adapter in self.adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing {adapter.provider} adapter: {e}")
