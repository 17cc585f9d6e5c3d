# =============================================================================
# AGENTFORGE - PRODUCT AGENT PACKAGE
# =============================================================================
"""
Product Agent Package

Turns requirements into user stories with acceptance criteria, and
checks generated code against those stories.

Usage:
    from agents.product import ProductAgent

    agent = ProductAgent(registry, prompt_loader)
    stories = await agent.analyze_requirement("Build a todo list API")
"""

from .product_agent import ProductAgent, ProductTaskInput

__all__ = [
    "ProductAgent",
    "ProductTaskInput",
]
