"""Shared fixtures: scripted LLM, fake adapters and in-memory sessions."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from agents import create_agents
from agents.base.agent_interface import AgentResponse, AgentType
from agents.base.llm_client import (
    BaseModelAdapter,
    GenerateOptions,
    LLMProviderError,
    LLMResponse,
    LLMUsage,
    ModelConfig,
)
from agents.base.prompt_loader import PromptLoader
from monitoring.metrics import MetricsCollector
from orchestrator.engine.state_manager import MemorySessionBackend, SessionManager
from orchestrator.engine.workflow import WorkflowEngine


PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


# =============================================================================
# FAKE MODEL LAYER
# =============================================================================

class FakeAdapter(BaseModelAdapter):
    """Adapter whose availability and answers are set by the test."""

    def __init__(self, provider: str = "fake", available: bool = True,
                 responses: Optional[List[Any]] = None):
        self.provider = provider
        super().__init__()
        self.available = available
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def generate(self, config: ModelConfig, prompt: str,
                       options: Optional[GenerateOptions] = None) -> LLMResponse:
        self.calls.append({"model": config.model, "prompt": prompt, "options": options})
        answer = self.responses.pop(0) if self.responses else "{}"
        if isinstance(answer, Exception):
            raise answer
        return LLMResponse(
            text=answer,
            model=config.model,
            provider=self.provider,
            usage=LLMUsage(prompt_tokens=10, completion_tokens=5),
        )

    async def is_available(self, config: ModelConfig) -> bool:
        if isinstance(self.available, Exception):
            raise self.available
        return self.available

    async def close(self):
        self.closed = True


class ScriptedLLM:
    """
    Stands in for ModelRegistry in agent tests.

    Each generate() call returns the next scripted answer; dicts and
    lists are serialized to JSON, exceptions are raised.
    """

    def __init__(self, *answers: Any):
        self.answers = list(answers)
        self.prompts: List[str] = []
        self.options: List[Any] = []

    def add(self, *answers: Any) -> "ScriptedLLM":
        self.answers.extend(answers)
        return self

    def is_available(self) -> bool:
        return True

    async def generate(self, prompt, options=None, model_id=None) -> LLMResponse:
        self.prompts.append(prompt)
        self.options.append(options)
        if not self.answers:
            raise LLMProviderError("No scripted answer left")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        text = answer if isinstance(answer, str) else json.dumps(answer)
        return LLMResponse(text=text, model="scripted", provider="fake")


# =============================================================================
# SAMPLE DATA
# =============================================================================

TODO_STORIES = [
    {
        "title": "Create a todo",
        "role": "user",
        "goal": "add a todo with a title",
        "reason": "I can track my work",
        "acceptance_criteria": ["A todo with a title is stored", "An empty title is rejected"],
        "priority": "high",
        "complexity": "low",
    },
    {
        "title": "List todos",
        "role": "user",
        "goal": "see all my todos",
        "reason": "I know what is left",
        "acceptance_criteria": ["All stored todos are returned"],
        "priority": "Medium",
        "complexity": "unknown",
    },
]

TODO_CODE = {
    "code": "export function createTodo(title: string) { return { id: 1, title }; }",
    "language": "ts",
}

GENERATED_TESTS = {
    "test_framework": "jest",
    "test_files": [{"name": "todo.test.ts", "content": "test('creates', () => {});"}],
}

CLEAN_ANALYSIS = {"summary": "No issues found.", "potential_risks_identified": []}


def coder_answer(code: Dict[str, Any] = None, response_type: str = "code_generated") -> Dict[str, Any]:
    return {
        "response_type": response_type,
        "explanation": "Implemented the todo API.",
        "output_data": code if code is not None else TODO_CODE,
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def prompt_loader() -> PromptLoader:
    return PromptLoader(str(PROMPTS_DIR))


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def agents(llm, prompt_loader):
    return create_agents(llm, prompt_loader)


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(MemorySessionBackend())


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def fake_agents():
    """Agent doubles; tests set handle.return_value per agent."""
    doubles = {}
    for agent_type in AgentType:
        agent = MagicMock(name=f"{agent_type.value}_agent")
        agent.get_agent_type.return_value = agent_type
        agent.handle = AsyncMock(return_value=AgentResponse.ok({}, "done"))
        doubles[agent_type] = agent
    doubles[AgentType.TEST].generate_tests = AsyncMock(return_value=GENERATED_TESTS)
    doubles[AgentType.SECURITY].analyze_code = AsyncMock(return_value=CLEAN_ANALYSIS)
    return doubles


@pytest.fixture
def engine(fake_agents, sessions, metrics) -> WorkflowEngine:
    return WorkflowEngine(fake_agents, sessions, metrics=metrics)
