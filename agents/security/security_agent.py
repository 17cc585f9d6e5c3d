# =============================================================================
# AGENTFORGE - SECURITY AGENT
# =============================================================================
"""
Security Agent Implementation

The Security agent reviews generated code for vulnerabilities.

Task types handled by handle():
- analyze: Find potential risks in code_to_analyze
- verify_fix: Check fixed code against a previous analysis

analyze_code() and verify_fixes() are also called directly by the
orchestrator as non-conversational capabilities.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import (
    AgentInterface,
    AgentResponse,
    AgentTask,
    AgentType,
    InputValidationError,
    TaskType,
)
from agents.base.output_handler import (
    AgentOutputError,
    SECURITY_ANALYSIS_SCHEMA,
    SECURITY_VERIFICATION_SCHEMA,
    code_files_from_output,
    format_code_files,
    require_valid,
)


ANALYSIS_OPTIONS = {
    "temperature": 0.1,
    "max_tokens": 4096,
    "system_prompt": "You are an application security engineer. Answer with JSON only.",
}


@dataclass
class SecurityTaskInput:
    """Fields the Security agent reads from a task."""
    task_type: str
    code_files: Dict[str, str]
    requirements_context: Optional[str] = None
    previous_analysis: Optional[Dict[str, Any]] = None
    original_code: Optional[str] = None

    @classmethod
    def from_task(cls, task: AgentTask) -> "SecurityTaskInput":
        data = task.input or {}
        task_type = task.task_type or data.get("task_type") or TaskType.ANALYZE

        code_files = code_files_from_output(data.get("code_to_analyze"))
        if code_files is None and isinstance(data.get("context_code"), str):
            code_files = code_files_from_output({
                "code": data["context_code"],
                "language": data.get("context_language"),
            })
        if not code_files:
            raise InputValidationError(
                f"Input for {task_type} task must include code_to_analyze as a file mapping."
            )

        previous_analysis = data.get("previous_analysis")
        if task_type == TaskType.VERIFY_FIX and not isinstance(previous_analysis, dict):
            raise InputValidationError("Input for verify_fix task must include previous_analysis.")

        user_stories = data.get("user_stories")
        return cls(
            task_type=task_type,
            code_files=code_files,
            requirements_context=json.dumps(user_stories, indent=2) if user_stories else None,
            previous_analysis=previous_analysis,
            original_code=data.get("original_code"),
        )


class SecurityAgent(AgentInterface):
    """Code security review agent."""

    def get_agent_type(self) -> AgentType:
        return AgentType.SECURITY

    def get_capabilities(self) -> List[str]:
        return ["analyze_code", "verify_security_fixes"]

    async def handle(self, task: AgentTask) -> AgentResponse:
        """Run an analysis or a fix verification."""
        self.logger.info(f"Handling task {task.id} ({task.task_type})")

        task_type = task.task_type or (task.input or {}).get("task_type") or TaskType.ANALYZE
        if task_type not in (TaskType.ANALYZE, TaskType.VERIFY_FIX):
            return AgentResponse.error(f"Unknown task type for Security Agent: {task_type}")

        try:
            task_input = SecurityTaskInput.from_task(task)
        except InputValidationError as e:
            self.logger.warning(f"Task {task.id} rejected: {e}")
            return AgentResponse.error(f"Input validation failed: {e}")

        try:
            if task_type == TaskType.VERIFY_FIX:
                result = await self.verify_fixes(
                    task_input.code_files,
                    task_input.previous_analysis,
                    task_input.original_code,
                )
            else:
                result = await self.analyze_code(
                    task_input.code_files,
                    task_input.requirements_context,
                )
        except AgentOutputError as e:
            self.logger.error(f"Unusable security output for task {task.id}: {e}")
            return AgentResponse.error(f"Failed to process security task: {e}")
        except Exception as e:
            self.logger.error(f"Security task {task.id} failed: {e}")
            return AgentResponse.error(f"An unexpected error occurred in the Security Agent: {e}")

        return AgentResponse.ok(
            result,
            result.get("summary") or "Security review completed.",
            {"task_type": task_type},
        )

    async def analyze_code(self, code_files: Dict[str, str],
                           requirements_context: Optional[str] = None) -> Dict[str, Any]:
        """
        Identify potential security risks.

        Returns:
            {summary, potential_risks_identified: [...]}

        Raises:
            AgentOutputError: The model output has the wrong shape
        """
        self.logger.info(f"Analyzing {len(code_files)} file(s) for security risks")

        prompt = self.render_prompt("analyze_code", {
            "code_context": format_code_files(code_files),
            "requirements_context": requirements_context or "Not provided",
        })
        result, raw = await self.generate_json(prompt, ANALYSIS_OPTIONS)
        require_valid(result, SECURITY_ANALYSIS_SCHEMA, raw)

        result.setdefault("summary", f"{len(result['potential_risks_identified'])} potential risk(s) identified.")
        self.logger.info(f"Security analysis found {len(result['potential_risks_identified'])} risk(s)")
        return result

    async def verify_fixes(
        self,
        code_files: Dict[str, str],
        previous_analysis: Dict[str, Any],
        original_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Check whether fixed code resolves previously reported risks.

        Returns without a model call when there is nothing to verify.

        Raises:
            AgentOutputError: The model output has the wrong shape
        """
        previous_risks = (previous_analysis or {}).get("potential_risks_identified") or []
        if not previous_risks:
            self.logger.info("No previous risks to verify")
            return {
                "summary": "The previous analysis reported no issues.",
                "verification_results": [],
                "new_issues_found": [],
                "all_original_issues_fixed": True,
                "overall_assessment": "No issues to verify.",
                "previously_fixed_issues_reintroduced": [],
            }

        prompt = self.render_prompt("verify_fixes", {
            "previous_risks": json.dumps(previous_risks, indent=2),
            "original_code_context": original_code or "Not provided",
            "fixed_code_context": format_code_files(code_files),
        })
        result, raw = await self.generate_json(prompt, ANALYSIS_OPTIONS)
        require_valid(result, SECURITY_VERIFICATION_SCHEMA, raw)

        for key in ("verification_results", "new_issues_found", "previously_fixed_issues_reintroduced"):
            if not isinstance(result.get(key), list):
                result[key] = []
        result.setdefault("summary", result.get("overall_assessment", "Fix verification completed."))
        return result
