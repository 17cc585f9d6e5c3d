# =============================================================================
# AGENTFORGE - CODER AGENT PACKAGE
# =============================================================================
"""
Coder Agent Package

Generates code for a requirement, or fixes previous code given failed
tests or security issues.
"""

from .coder_agent import (
    CoderAgent,
    CoderTaskInput,
    SUPPORTED_LANGUAGES,
    SUPPORTED_FRAMEWORKS,
)

__all__ = [
    "CoderAgent",
    "CoderTaskInput",
    "SUPPORTED_LANGUAGES",
    "SUPPORTED_FRAMEWORKS",
]
