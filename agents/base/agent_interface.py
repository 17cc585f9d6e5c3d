# =============================================================================
# AGENTFORGE - AGENT INTERFACE
# =============================================================================
"""
Agent Interface Module

This module defines the common contract that all agents implement.
It provides:
1. The task envelope the orchestrator sends to an agent (AgentTask)
2. The response envelope every agent returns (AgentResponse)
3. Abstract base class with the conversational entry point
4. Shared helpers for prompt rendering and JSON generation

All agent types (Product, Coder, Test, Security) must extend
AgentInterface and implement its abstract methods. handle() never
raises: expected failures are reported through AgentResponse.status.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
import logging
import uuid

from .output_handler import extract_json, AgentOutputError


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class AgentType(Enum):
    """The four specialised agents."""
    PRODUCT = "product"
    CODER = "coder"
    TEST = "test"
    SECURITY = "security"


class ResponseStatus(Enum):
    """Outcome of a single agent invocation."""
    SUCCESS = "success"
    ERROR = "error"
    PARTIAL_SUCCESS = "partial_success"
    REQUIRES_FEEDBACK = "requires_feedback"


class TaskStatus(Enum):
    """Lifecycle of an AgentTask."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class TaskType:
    """Known task type identifiers."""
    GENERATE = "generate"
    FIX = "fix"
    ANALYZE = "analyze"
    SIMULATE = "simulate"
    VALIDATE_FIX = "validate_fix"
    VERIFY_FIX = "verify_fix"


# =============================================================================
# TASK AND RESPONSE ENVELOPES
# =============================================================================

@dataclass
class AgentTask:
    """
    A unit of work for one agent, created fresh per orchestrator step.

    Attributes:
        agent_type: Agent that should process the task
        input: Task input (requirement, history, prior outputs, feedback)
        task_type: Optional sub-operation (generate, fix, analyze, ...)
        priority: Higher runs first when queued
        status: Lifecycle status
        workflow_id: Session the task belongs to
        parent_task_id: Task that produced this one, if any
    """
    agent_type: AgentType
    input: Dict[str, Any] = field(default_factory=dict)
    task_type: Optional[str] = None
    priority: int = 5
    status: TaskStatus = TaskStatus.PENDING
    workflow_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "agent_type": self.agent_type.value,
            "input": self.input,
            "task_type": self.task_type,
            "priority": self.priority,
            "status": self.status.value,
            "workflow_id": self.workflow_id,
            "parent_task_id": self.parent_task_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentTask":
        """Create AgentTask from dictionary."""
        completed_at = data.get("completed_at")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            agent_type=AgentType(data["agent_type"]),
            input=data.get("input", {}),
            task_type=data.get("task_type"),
            priority=data.get("priority", 5),
            status=TaskStatus(data.get("status", "pending")),
            workflow_id=data.get("workflow_id"),
            parent_task_id=data.get("parent_task_id"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else utc_now(),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else utc_now(),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )


@dataclass
class AgentResponse:
    """
    Standard response returned by all agents.

    Attributes:
        status: Outcome; the only field the orchestrator branches on
        data: Agent-specific structured output
        message: Human-readable summary
        metadata: Additional details (model used, response type, ...)
    """
    status: ResponseStatus
    data: Any = None
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Check if the invocation succeeded."""
        return self.status == ResponseStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "data": self.data,
            "message": self.message,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentResponse":
        return cls(
            status=ResponseStatus(data.get("status", "error")),
            data=data.get("data"),
            message=data.get("message", ""),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def ok(cls, data: Any, message: str, metadata: Dict[str, Any] = None) -> "AgentResponse":
        """Create a success response."""
        return cls(ResponseStatus.SUCCESS, data, message, metadata or {})

    @classmethod
    def error(cls, message: str, data: Any = None, metadata: Dict[str, Any] = None) -> "AgentResponse":
        """Create an error response."""
        return cls(ResponseStatus.ERROR, data, message, metadata or {})

    @classmethod
    def needs_feedback(cls, message: str, data: Any = None, metadata: Dict[str, Any] = None) -> "AgentResponse":
        """Create a response asking the user for more information."""
        return cls(ResponseStatus.REQUIRES_FEEDBACK, data, message, metadata or {})


class InputValidationError(ValueError):
    """Required task input is missing or malformed."""
    pass


# =============================================================================
# AGENT INTERFACE
# =============================================================================

class AgentInterface(ABC):
    """
    Abstract base class for all agent implementations.

    Subclasses implement:
    - get_agent_type(): Return the AgentType
    - handle(): Conversational entry point used by the orchestrator
    - get_capabilities(): Capability identifiers

    Each agent also exposes narrower capability methods (generate tests,
    analyze code, ...) that the orchestrator calls directly.

    Usage:
        class CoderAgent(AgentInterface):
            def get_agent_type(self) -> AgentType:
                return AgentType.CODER

            async def handle(self, task: AgentTask) -> AgentResponse:
                prompt = self.render_prompt("handle_interaction", {...})
                parsed, raw = await self.generate_json(prompt)
                return AgentResponse.ok(parsed, "done")
    """

    def __init__(self, llm, prompt_loader):
        """
        Initialize the agent.

        Args:
            llm: ModelRegistry used as the generation dispatcher
            prompt_loader: PromptLoader for this agent's templates
        """
        self.llm = llm
        self.prompt_loader = prompt_loader
        self.logger = logging.getLogger(f"agent.{self.get_agent_type().value}")

    @abstractmethod
    def get_agent_type(self) -> AgentType:
        """Return the agent type identifier."""
        pass

    @abstractmethod
    async def handle(self, task: AgentTask) -> AgentResponse:
        """
        Process a conversational task.

        Args:
            task: Task built by the orchestrator

        Returns:
            AgentResponse; never raises
        """
        pass

    @abstractmethod
    def get_capabilities(self) -> List[str]:
        """Return capability identifiers."""
        pass

    async def is_available(self) -> bool:
        """True iff at least one model can serve this agent."""
        try:
            return self.llm.is_available()
        except Exception as e:
            self.logger.warning(f"Availability check failed: {e}")
            return False

    def render_prompt(self, name: str, variables: Dict[str, Any]) -> str:
        """
        Load and render one of this agent's templates.

        Raises:
            FileNotFoundError: If the template does not exist
        """
        agent_type = self.get_agent_type().value
        template = self.prompt_loader.load_template(agent_type, name)
        if template is None:
            raise FileNotFoundError(f"Prompt template '{agent_type}/{name}' not found")
        return self.prompt_loader.apply_variables(template, variables)

    async def generate_json(self, prompt: str, options: Dict[str, Any] = None,
                            model_id: Optional[str] = None) -> Tuple[Any, str]:
        """
        Call the dispatcher and parse its output as JSON.

        Returns:
            Tuple of (parsed JSON, raw response text)

        Raises:
            AgentOutputError: If the response is not valid JSON
            LLMError: If generation failed on every model
        """
        response = await self.llm.generate(prompt, options=options, model_id=model_id)
        self.logger.debug(
            f"Response from {response.provider}:{response.model} "
            f"({response.usage.total_tokens} tokens)"
        )
        return extract_json(response.text), response.text
