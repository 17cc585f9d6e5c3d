# =============================================================================
# AGENTFORGE - ROUTING ENGINE
# =============================================================================
"""
Routing Engine

Chooses the agent that handles an incoming user message.

Rules are evaluated in order and the first match wins:
    1. No current agent, or the last message is a system message -> Product
    2. Keywords in the latest user message (English and Portuguese),
       matched as whole words
    3. Otherwise stay with the current agent

Routing is pure: it reads the orchestrator state and the history and
never mutates either.
"""

import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from agents.base.agent_interface import AgentType

from .state_manager import ChatMessage, MessageRole, OrchestratorState


logger = logging.getLogger(__name__)


RoutingPredicate = Callable[[OrchestratorState, Sequence[ChatMessage]], bool]


# =============================================================================
# KEYWORDS
# =============================================================================

KEYWORD_RULES: List[Tuple[AgentType, Tuple[str, ...]]] = [
    (AgentType.CODER, (
        "generate code", "write code", "implement",
        "gerar código", "escrever código", "implementar",
    )),
    (AgentType.TEST, (
        "test cases", "testing", "tests", "test",
        "casos de teste", "testes", "teste", "testar",
    )),
    (AgentType.SECURITY, (
        "security", "vulnerability",
        "segurança", "vulnerabilidade",
    )),
    (AgentType.PRODUCT, (
        "requirements", "user story",
        "requisitos", "história",
    )),
]


# =============================================================================
# PREDICATES
# =============================================================================

def _last_message(history: Sequence[ChatMessage]) -> Optional[ChatMessage]:
    return history[-1] if history else None


def needs_fresh_start(state: OrchestratorState, history: Sequence[ChatMessage]) -> bool:
    """True when no agent has run yet or the system spoke last."""
    last = _last_message(history)
    return state.current_agent is None or (last is not None and last.role == MessageRole.SYSTEM)


def mentions_any(keywords: Tuple[str, ...]) -> RoutingPredicate:
    """Predicate matching a user message that contains one of keywords as whole words."""
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(keyword) for keyword in keywords) + r")\b")

    def predicate(state: OrchestratorState, history: Sequence[ChatMessage]) -> bool:
        last = _last_message(history)
        if last is None or last.role != MessageRole.USER:
            return False
        text = (last.content or "").lower()
        return pattern.search(text) is not None

    return predicate


ROUTING_RULES: List[Tuple[RoutingPredicate, AgentType]] = [
    (needs_fresh_start, AgentType.PRODUCT),
] + [
    (mentions_any(keywords), agent_type) for agent_type, keywords in KEYWORD_RULES
]


# =============================================================================
# ROUTER
# =============================================================================

def route_user_message(state: OrchestratorState, history: Sequence[ChatMessage]) -> AgentType:
    """
    Pick the agent for the latest message.

    Args:
        state: Orchestrator state of the session
        history: Conversation history, including the new user message

    Returns:
        Target agent type
    """
    for predicate, target in ROUTING_RULES:
        if predicate(state, history):
            logger.debug(f"Routing rule {getattr(predicate, '__name__', predicate)} -> {target.value}")
            return target

    if state.current_agent is not None:
        return state.current_agent

    return AgentType.PRODUCT
