# =============================================================================
# AGENTFORGE - AGENT BASE PACKAGE
# =============================================================================
"""
Agent Base Package

This package contains shared infrastructure used by all agent types.
It provides:
1. The agent contract (AgentTask, AgentResponse, AgentInterface)
2. Provider adapters for Anthropic, OpenAI and Ollama
3. The model registry and fallback dispatcher
4. Prompt template loading
5. JSON extraction and output shape checks

Components:
    - AgentInterface: Abstract base class for all agents
    - AgentTask / AgentResponse: Request/response envelopes
    - ModelRegistry: Discovery and priority-ordered dispatch
    - BaseModelAdapter: Provider adapter contract
    - PromptLoader: {{ placeholder }} templates

Usage:
    from agents.base import ModelRegistry, PromptLoader, create_default_adapters

    registry = ModelRegistry(create_default_adapters(), "config/models.yaml")
    await registry.reload()
"""

# Agent interface and data structures
from .agent_interface import (
    AgentInterface,
    AgentTask,
    AgentResponse,
    AgentType,
    ResponseStatus,
    TaskStatus,
    TaskType,
    InputValidationError,
)

# LLM adapters
from .llm_client import (
    BaseModelAdapter,
    AnthropicAdapter,
    OpenAIAdapter,
    OllamaAdapter,
    ModelConfig,
    GenerateOptions,
    GenerateRequest,
    LLMResponse,
    LLMUsage,
    FinishReason,
    LLMError,
    LLMProviderError,
    ModelNotFoundError,
    NoModelAvailableError,
    ConfigurationError,
    create_default_adapters,
    estimate_tokens,
)

# Model registry
from .model_registry import (
    ModelRegistry,
    DEFAULT_MODEL_CONFIG,
    load_model_configs,
)

# Prompts
from .prompt_loader import PromptLoader

# Output handling
from .output_handler import (
    AgentError,
    AgentOutputError,
    extract_json,
    validate_output,
)


__all__ = [
    # Core interfaces
    "AgentInterface",
    "AgentTask",
    "AgentResponse",
    "AgentType",
    "ResponseStatus",
    "TaskStatus",
    "TaskType",
    "InputValidationError",

    # LLM adapters
    "BaseModelAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "OllamaAdapter",
    "ModelConfig",
    "GenerateOptions",
    "GenerateRequest",
    "LLMResponse",
    "LLMUsage",
    "FinishReason",
    "LLMError",
    "LLMProviderError",
    "ModelNotFoundError",
    "NoModelAvailableError",
    "ConfigurationError",
    "create_default_adapters",
    "estimate_tokens",

    # Model registry
    "ModelRegistry",
    "DEFAULT_MODEL_CONFIG",
    "load_model_configs",

    # Prompts
    "PromptLoader",

    # Output handling
    "AgentError",
    "AgentOutputError",
    "extract_json",
    "validate_output",
]
