# =============================================================================
# AGENTFORGE - ORCHESTRATOR ENGINE PACKAGE
# =============================================================================
"""
Orchestrator Engine Package

This package contains the core engine components for the orchestrator:

1. state_manager: OrchestratorState, sessions and their persistence
2. routing: Which agent handles a message
3. context_builder: What the agent receives
4. continuation: Which agent runs next
5. auxiliary: Follow-up tasks coupled to a step
6. workflow: The engine driving one message through all of the above

Usage:
    from orchestrator.engine import SessionManager, WorkflowEngine

    sessions = await SessionManager.create(config)
    engine = WorkflowEngine(agents, sessions)
    answer = await engine.process_message(session_id, "Build a todo list API")
"""

from orchestrator.engine.errors import (
    OrchestratorError,
    PersistenceError,
    AuxiliaryTaskError,
)

from orchestrator.engine.state_manager import (
    # Main classes
    SessionManager,
    SessionBackendInterface,
    MemorySessionBackend,
    FileSessionBackend,
    RedisSessionBackend,
    # Data structures
    OrchestratorState,
    OrchestratorStep,
    ChatMessage,
    SessionRecord,
    # Enums
    OrchestratorStatus,
    StepStatus,
    SessionStatus,
    MessageRole,
    # Exceptions
    StateManagerError,
    StateNotFoundError,
    StateBackendError,
    StateValidationError,
)

from orchestrator.engine.routing import ROUTING_RULES, route_user_message
from orchestrator.engine.context_builder import (
    build_feedback_context,
    scan_history,
    build_task_input,
    infer_task_type,
    prepare_next_task,
)
from orchestrator.engine.continuation import determine_continuation_agent
from orchestrator.engine.auxiliary import AuxiliaryTaskRunner
from orchestrator.engine.workflow import (
    WorkflowEngine,
    OrchestratorResult,
    create_workflow_engine,
)

__all__ = [
    # Errors
    "OrchestratorError",
    "PersistenceError",
    "AuxiliaryTaskError",
    # State Manager
    "SessionManager",
    "SessionBackendInterface",
    "MemorySessionBackend",
    "FileSessionBackend",
    "RedisSessionBackend",
    # State Data structures
    "OrchestratorState",
    "OrchestratorStep",
    "ChatMessage",
    "SessionRecord",
    "OrchestratorStatus",
    "StepStatus",
    "SessionStatus",
    "MessageRole",
    # State Exceptions
    "StateManagerError",
    "StateNotFoundError",
    "StateBackendError",
    "StateValidationError",
    # Engine parts
    "ROUTING_RULES",
    "route_user_message",
    "build_feedback_context",
    "scan_history",
    "build_task_input",
    "infer_task_type",
    "prepare_next_task",
    "determine_continuation_agent",
    "AuxiliaryTaskRunner",
    # Workflow
    "WorkflowEngine",
    "OrchestratorResult",
    "create_workflow_engine",
]
