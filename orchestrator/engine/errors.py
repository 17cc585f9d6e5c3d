# =============================================================================
# AGENTFORGE - ORCHESTRATOR ERRORS
# =============================================================================
"""Exceptions raised by the orchestration engine."""


class OrchestratorError(Exception):
    """Base exception for orchestrator errors."""
    pass


class PersistenceError(OrchestratorError):
    """Session state could not be saved. Processing must stop."""
    pass


class AuxiliaryTaskError(OrchestratorError):
    """An automatic follow-up task failed or returned invalid data."""

    def __init__(self, task_name: str, reason: str):
        super().__init__(f"{task_name} failed: {reason}")
        self.task_name = task_name
        self.reason = reason
