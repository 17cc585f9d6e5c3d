# =============================================================================
# AGENTFORGE - CODER AGENT
# =============================================================================
"""
Coder Agent Implementation

The Coder agent writes or fixes code for a requirement.

Workflow:
1. Read the requirement, user stories and any previous code
2. For fix tasks, describe the failed tests or security issues to fix
3. Ask the model for a typed answer (code, clarification or error)
4. Map the answer onto an AgentResponse

Model answer format:
    {
      "response_type": "code_generated" | "code_modified" | "clarification" | "error",
      "explanation": "...",
      "output_data": {"code": "...", "language": "typescript"}
    }
"""

import json
from dataclasses import dataclass, field
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
    CODER_RESPONSE_SCHEMA,
    format_history,
    require_valid,
)


SUPPORTED_LANGUAGES = [
    "javascript", "typescript", "python", "java", "csharp", "go",
    "ruby", "php", "rust", "html", "css", "sql",
]

SUPPORTED_FRAMEWORKS = {
    "javascript": ["react", "vue", "angular", "express", "nest", "next"],
    "typescript": ["react", "vue", "angular", "express", "nest", "next"],
    "python": ["django", "flask", "fastapi", "pytorch", "tensorflow"],
    "java": ["spring", "jakarta-ee", "android"],
    "csharp": ["aspnet", "wpf", "xamarin", "unity"],
}

CODE_RESPONSE_TYPES = ("code_generated", "code_modified")

GENERATION_OPTIONS = {"temperature": 0.15, "max_tokens": 4096}


@dataclass
class CoderTaskInput:
    """Fields the Coder agent reads from a task."""
    requirement: str
    task_type: str = TaskType.GENERATE
    history: List[Dict[str, Any]] = field(default_factory=list)
    user_stories: List[Any] = field(default_factory=list)
    feedback_context: Optional[str] = None
    previous_code: Optional[Dict[str, Any]] = None
    failed_tests: Optional[List[Any]] = None
    security_issues: Optional[List[Any]] = None

    @classmethod
    def from_task(cls, task: AgentTask) -> "CoderTaskInput":
        data = task.input or {}
        requirement = data.get("requirement")
        if not isinstance(requirement, str) or not requirement.strip():
            raise InputValidationError(
                "Task input is invalid or missing the required 'requirement' field."
            )
        previous_code = data.get("previous_code")
        return cls(
            requirement=requirement,
            task_type=task.task_type or data.get("task_type") or TaskType.GENERATE,
            history=data.get("history") or [],
            user_stories=data.get("user_stories") or [],
            feedback_context=data.get("feedback_context"),
            previous_code=previous_code if isinstance(previous_code, dict) else None,
            failed_tests=data.get("failed_tests"),
            security_issues=data.get("security_issues"),
        )

    @property
    def language(self) -> str:
        if self.previous_code and self.previous_code.get("language"):
            return self.previous_code["language"]
        return "typescript"

    def fix_context(self) -> Optional[str]:
        """What the fix must address; failed tests take precedence."""
        if self.task_type != TaskType.FIX:
            return None
        if isinstance(self.failed_tests, list) and self.failed_tests:
            return "Focus on fixing these failed tests:\n" + json.dumps(self.failed_tests, indent=2)
        if isinstance(self.security_issues, list) and self.security_issues:
            return "Focus on fixing these security issues:\n" + json.dumps(self.security_issues, indent=2)
        return None


class CoderAgent(AgentInterface):
    """Code generation and modification agent."""

    def get_agent_type(self) -> AgentType:
        return AgentType.CODER

    def get_capabilities(self) -> List[str]:
        capabilities = [
            "generate_code",
            "modify_code",
            "refactor_code",
            "explain_code",
            "fix_code_errors",
        ]
        capabilities.extend(f"language:{language}" for language in SUPPORTED_LANGUAGES)
        for language, frameworks in SUPPORTED_FRAMEWORKS.items():
            capabilities.extend(f"framework:{language}/{fw}" for fw in frameworks)
        return capabilities

    async def handle(self, task: AgentTask) -> AgentResponse:
        """Generate or fix code for the task's requirement."""
        self.logger.info(f"Handling task {task.id}")

        try:
            task_input = CoderTaskInput.from_task(task)
        except InputValidationError as e:
            self.logger.warning(f"Task {task.id} rejected: {e}")
            return AgentResponse.error(f"Input validation failed: {e}")

        previous_code = task_input.previous_code.get("code") if task_input.previous_code else None
        if task_input.task_type == TaskType.FIX and not previous_code:
            self.logger.warning(f"Task {task.id} is a fix task but previous code is missing")

        try:
            prompt = self.render_prompt("handle_interaction", {
                "requirement": task_input.requirement,
                "history": format_history(task_input.history),
                "user_stories": json.dumps(task_input.user_stories, indent=2)
                if task_input.user_stories else None,
                "previous_code": previous_code,
                "language": task_input.language,
                "fix_context": task_input.fix_context(),
                "feedback_context": task_input.feedback_context,
            })
            parsed, raw = await self.generate_json(prompt, GENERATION_OPTIONS)
            require_valid(parsed, CODER_RESPONSE_SCHEMA, raw)
        except AgentOutputError as e:
            self.logger.error(f"Unusable coder output for task {task.id}: {e}")
            return AgentResponse.error(f"Failed to process the AI response: {e}")
        except Exception as e:
            self.logger.error(f"Code generation failed for task {task.id}: {e}")
            return AgentResponse.error(f"An unexpected error occurred while generating code: {e}")

        return self._map_response(parsed, raw)

    def _map_response(self, parsed: Dict[str, Any], raw: str) -> AgentResponse:
        response_type = parsed["response_type"]
        explanation = parsed.get("explanation", "")
        output_data = parsed.get("output_data") or {}
        metadata = {"response_type": response_type}

        if response_type in CODE_RESPONSE_TYPES:
            if not isinstance(output_data.get("code"), str):
                self.logger.error(f"'{response_type}' response without code")
                return AgentResponse.error(
                    f"AI response for code generation/modification is missing code. "
                    f"Raw response: {raw}",
                    metadata=metadata,
                )
            return AgentResponse.ok(output_data, explanation, metadata)

        if response_type == "clarification":
            return AgentResponse.needs_feedback(explanation, output_data or None, metadata)

        return AgentResponse.error(explanation or "The AI reported an error.", output_data or None, metadata)
