# =============================================================================
# AGENTFORGE - SECURITY AGENT PACKAGE
# =============================================================================
"""
Security Agent Package

Reviews code for vulnerabilities and verifies security fixes.
"""

from .security_agent import SecurityAgent, SecurityTaskInput

__all__ = [
    "SecurityAgent",
    "SecurityTaskInput",
]
