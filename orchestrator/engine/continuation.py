# =============================================================================
# AGENTFORGE - CONTINUATION ENGINE
# =============================================================================
"""
Continuation Engine

Decides which agent runs next after a step succeeded:

    PRODUCT --(stories)--> CODER --> TEST --(success)--> SECURITY --> end

Evaluated only for successful steps whose auxiliary task also
succeeded. A fix loop from Security back to Coder is never automatic.
"""

import json
import logging
from typing import Any, Optional

from agents.base.agent_interface import AgentType


logger = logging.getLogger(__name__)


def determine_continuation_agent(
    previous_agent: Any,
    response_data: Any,
    previous_task_type: Optional[str] = None,
) -> Optional[AgentType]:
    """
    Pick the next agent, or None when the automatic chain stops.

    Args:
        previous_agent: Agent that just completed
        response_data: AgentResponse.data of that agent
        previous_task_type: Task type the agent ran

    Returns:
        Next agent type, or None
    """
    logger.debug(
        f"Determining continuation after {previous_agent} (task type {previous_task_type}): "
        f"{json.dumps(response_data, default=str)[:100]}"
    )

    if previous_agent == AgentType.PRODUCT:
        if isinstance(response_data, list) and response_data:
            logger.info("Product agent produced user stories, continuing with Coder")
            return AgentType.CODER
        logger.info("Product agent produced no user stories, stopping")
        return None

    if previous_agent == AgentType.CODER:
        logger.info(f"Coder agent finished ({previous_task_type}), continuing with Test")
        return AgentType.TEST

    if previous_agent == AgentType.TEST:
        success = response_data.get("success") if isinstance(response_data, dict) else None
        if success is True:
            logger.info("Test agent reported success, continuing with Security")
            return AgentType.SECURITY
        if success is False:
            logger.info("Test agent reported failures, stopping for review")
        else:
            logger.info("Test agent result has no success flag, stopping")
        return None

    if previous_agent == AgentType.SECURITY:
        logger.info("Security agent finished, ending automatic workflow")
        return None

    logger.warning(f"Unknown previous agent type: {previous_agent}. No automatic transition.")
    return None
