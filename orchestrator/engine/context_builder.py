# =============================================================================
# AGENTFORGE - CONTEXT BUILDER
# =============================================================================
"""
Context Builder

Builds the input of the task sent to the routed agent.

Sources, applied in this order (later ones win):
    1. The user message, prior history and feedback on the last answer
    2. Session-level context stored on the SessionRecord
    3. Structured outputs found by scanning the history newest first
    4. Orchestrator state context (latest authoritative values)

A Coder fix task (security issues, or failures from the last test run)
also gets the previous code.

Also prepares the input of the continuation task for the next agent.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agents.base.agent_interface import AgentType, TaskType

from .state_manager import (
    ChatMessage,
    MessageRole,
    OrchestratorState,
    SessionRecord,
)


logger = logging.getLogger(__name__)


RATING_LABELS = {1: "positive", -1: "negative", 0: "neutral"}


# =============================================================================
# FEEDBACK
# =============================================================================

def build_feedback_context(history: Sequence[ChatMessage]) -> Optional[str]:
    """
    Describe user feedback on the previous assistant answer.

    The previous answer is the second-to-last message; the last one is
    the message being handled. Returns None when there is no feedback.
    """
    if len(history) < 2:
        return None

    previous = history[-2]
    if previous.role != MessageRole.ASSISTANT:
        return None
    if previous.rating is None and not previous.correction:
        return None

    note = "System Note on Previous Response:"
    if previous.rating is not None:
        note += f" Rating={RATING_LABELS.get(previous.rating, 'neutral')}."
    if previous.correction:
        note += f" User Correction: '{previous.correction}'."
    note += " Please adjust your response accordingly."
    return note


# =============================================================================
# HISTORY SCAN
# =============================================================================

def _scan_complete(target: AgentType, found: Dict[AgentType, Any]) -> bool:
    if target == AgentType.CODER:
        return AgentType.PRODUCT in found
    if target == AgentType.TEST:
        return AgentType.CODER in found and AgentType.PRODUCT in found
    if target == AgentType.SECURITY:
        return AgentType.CODER in found
    return False


def scan_history(history: Sequence[ChatMessage], target: AgentType) -> Dict[AgentType, Any]:
    """
    Collect the latest structured output of each agent.

    Walks the history newest first and stops as soon as the target
    agent has what it needs.

    Returns:
        Agent type -> structured output of its most recent answer
    """
    found: Dict[AgentType, Any] = {}

    for message in reversed(history):
        output = message.metadata.get("structured_output") if message.metadata else None
        if (
            message.role == MessageRole.ASSISTANT
            and message.agent_type is not None
            and output is not None
            and message.agent_type not in found
        ):
            found[message.agent_type] = output

        if _scan_complete(target, found):
            break

    return found


# =============================================================================
# TASK INPUT
# =============================================================================

def build_task_input(
    session: SessionRecord,
    state: OrchestratorState,
    history: Sequence[ChatMessage],
    user_message: ChatMessage,
    target: AgentType,
) -> Dict[str, Any]:
    """
    Build the input for the routed agent's task.

    Args:
        session: Session the message belongs to
        state: Orchestrator state of the session
        history: Conversation history, including user_message
        user_message: The message being handled
        target: Routed agent

    Returns:
        Task input dictionary
    """
    prior = [message for message in history if message.id != user_message.id]

    task_input: Dict[str, Any] = {
        "requirement": user_message.content,
        "history": [message.to_dict() for message in prior],
        "feedback_context": build_feedback_context(history),
    }
    task_input.update(session.context or {})

    found = scan_history(prior, target)
    stories = found.get(AgentType.PRODUCT)
    code = found.get(AgentType.CODER)

    if target == AgentType.CODER and stories is not None:
        task_input["user_stories"] = stories
    elif target == AgentType.TEST:
        if code is not None:
            task_input["code_to_test"] = code
        if stories is not None:
            task_input["user_stories"] = stories
    elif target == AgentType.SECURITY:
        if code is not None:
            task_input["code_to_analyze"] = code
        if stories is not None:
            task_input["user_stories"] = stories

    context = state.context or {}
    generated_code = context.get("generated_code")

    if target == AgentType.CODER:
        if context.get("user_stories"):
            task_input["user_stories"] = context["user_stories"]
        if not task_input.get("failed_tests"):
            failed_tests = _failed_tests(context.get("test_handle_output"))
            if failed_tests:
                task_input["failed_tests"] = failed_tests
        if infer_task_type(target, task_input) == TaskType.FIX and not task_input.get("previous_code"):
            previous_code = generated_code if isinstance(generated_code, dict) else code
            if previous_code is not None:
                task_input["previous_code"] = previous_code
            else:
                logger.warning("Coder fix task built without any previous code")
    elif target in (AgentType.TEST, AgentType.SECURITY):
        if isinstance(generated_code, dict):
            task_input["context_code"] = generated_code.get("code")
            task_input["context_language"] = generated_code.get("language")
        if target == AgentType.TEST and context.get("user_stories"):
            task_input["context_requirements"] = context["user_stories"]

    logger.debug(f"Task input keys for {target.value}: {', '.join(sorted(task_input))}")
    return task_input


def _failed_tests(test_output: Any) -> Optional[List[Any]]:
    """Failures of the last test run, if that run did not succeed."""
    if not isinstance(test_output, dict) or test_output.get("success") is True:
        return None
    failed_tests = test_output.get("failed_tests")
    return failed_tests if isinstance(failed_tests, list) and failed_tests else None


def infer_task_type(target: AgentType, task_input: Dict[str, Any]) -> str:
    """Pick the task type from the target agent and its input."""
    if target == AgentType.CODER:
        if task_input.get("security_issues") or task_input.get("failed_tests"):
            return TaskType.FIX
        return TaskType.GENERATE
    if target == AgentType.SECURITY:
        if task_input.get("previous_analysis"):
            return TaskType.VERIFY_FIX
        return TaskType.ANALYZE
    return TaskType.GENERATE


# =============================================================================
# CONTINUATION TASK
# =============================================================================

def prepare_next_task(
    next_agent: AgentType,
    previous_agent: AgentType,
    state_context: Dict[str, Any],
) -> Tuple[Dict[str, Any], str]:
    """
    Prepare the input and task type for the next agent in the chain.

    A Coder task following a Security step that reported risks becomes
    a fix task carrying the risks and the previous code.

    Returns:
        (task input, task type)
    """
    user_stories = state_context.get("user_stories")
    generated_code = state_context.get("generated_code")

    if next_agent == AgentType.CODER:
        task_input: Dict[str, Any] = {"user_stories": user_stories}
        security_output = state_context.get("security_handle_output") or {}
        risks = security_output.get("potential_risks_identified") if isinstance(security_output, dict) else None
        if previous_agent == AgentType.SECURITY and risks:
            task_input["security_issues"] = risks
            task_input["previous_code"] = generated_code
            logger.info("Next Coder task is a fix for reported security issues")
            return task_input, TaskType.FIX
        return task_input, TaskType.GENERATE

    if next_agent == AgentType.TEST:
        return {"code_to_test": generated_code, "user_stories": user_stories}, TaskType.GENERATE

    if next_agent == AgentType.SECURITY:
        return {"code_to_analyze": generated_code, "user_stories": user_stories}, TaskType.ANALYZE

    return {}, TaskType.GENERATE
