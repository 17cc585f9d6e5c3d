# =============================================================================
# AGENTFORGE - AGENTS PACKAGE
# =============================================================================
"""
Agents Package

This package contains the agents the orchestrator routes work to. Each
agent type is specialized for one step of turning a requirement into
reviewed code.

Agent Types:
    - Product: Requirements into user stories
    - Coder: User stories into code
    - Test: Tests for the code
    - Security: Vulnerability review of the code

Package Structure:
    agents/
    ├── __init__.py          # This file
    ├── base/                 # Shared infrastructure
    ├── product/              # Product agent
    ├── coder/                # Coder agent
    ├── qa/                   # Test agent
    └── security/             # Security agent

Usage:
    from agents import create_agents

    agents = create_agents(registry, prompt_loader)
    response = await agents[AgentType.PRODUCT].handle(task)
"""

from typing import Dict

from agents.base.agent_interface import AgentInterface, AgentResponse, AgentTask, AgentType
from agents.product import ProductAgent
from agents.coder import CoderAgent
from agents.qa import TestAgent
from agents.security import SecurityAgent

__version__ = "1.0.0"

__all__ = [
    "AgentInterface",
    "AgentResponse",
    "AgentTask",
    "AgentType",
    "get_agent",
    "create_agents",
    "ProductAgent",
    "CoderAgent",
    "TestAgent",
    "SecurityAgent",
]

# =============================================================================
# AGENT FACTORY
# =============================================================================

AGENT_CLASSES = {
    AgentType.PRODUCT: ProductAgent,
    AgentType.CODER: CoderAgent,
    AgentType.TEST: TestAgent,
    AgentType.SECURITY: SecurityAgent,
}


def get_agent(agent_type, llm, prompt_loader) -> AgentInterface:
    """
    Factory function to get an agent instance.

    Args:
        agent_type: AgentType or its value (product, coder, test, security)
        llm: ModelRegistry used for generation
        prompt_loader: PromptLoader for templates

    Raises:
        ValueError: If agent_type is unknown
    """
    try:
        agent_type = AgentType(agent_type) if not isinstance(agent_type, AgentType) else agent_type
    except ValueError:
        raise ValueError(f"Unknown agent type: {agent_type}")

    return AGENT_CLASSES[agent_type](llm, prompt_loader)


def create_agents(llm, prompt_loader) -> Dict[AgentType, AgentInterface]:
    """Create one instance of every agent type."""
    return {agent_type: get_agent(agent_type, llm, prompt_loader) for agent_type in AGENT_CLASSES}
