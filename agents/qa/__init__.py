# =============================================================================
# AGENTFORGE - TEST AGENT PACKAGE
# =============================================================================
"""
Test Agent Package

The Test agent plans, writes and validates tests for generated code.
Its generate_tests() capability also runs automatically after every
successful Coder step.

Usage:
    from agents.qa import TestAgent

    agent = TestAgent(registry, prompt_loader)
    tests = await agent.generate_tests({"generated.ts": code}, user_stories)
"""

from .qa_agent import TestAgent, TestTaskInput, failed_result

__all__ = [
    "TestAgent",
    "TestTaskInput",
    "failed_result",
]
