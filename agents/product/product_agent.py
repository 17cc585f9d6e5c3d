# =============================================================================
# AGENTFORGE - PRODUCT AGENT
# =============================================================================
"""
Product Agent Implementation

The Product agent turns a free-form requirement into user stories.

Responsibilities:
1. Analyze requirements into user stories with acceptance criteria
2. Normalize story priority and complexity
3. Validate generated code against the stories

An empty story list is a successful answer: it means the requirement
was too vague, and the response asks the user to clarify.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import (
    AgentInterface,
    AgentResponse,
    AgentTask,
    AgentType,
    InputValidationError,
)
from agents.base.output_handler import (
    AgentOutputError,
    CODE_VALIDATION_SCHEMA,
    USER_STORIES_SCHEMA,
    format_code_files,
    format_history,
    require_valid,
    validate_output,
)


STORY_LEVELS = ("high", "medium", "low")

ANALYZE_OPTIONS = {
    "temperature": 0.2,
    "max_tokens": 3000,
    "system_prompt": "You are an experienced product manager. Answer with JSON only.",
}

VALIDATE_OPTIONS = {
    "temperature": 0.1,
    "max_tokens": 2000,
    "system_prompt": "You are a product analyst validating if code meets requirements. "
                     "Be thorough and objective.",
}


@dataclass
class ProductTaskInput:
    """Fields the Product agent reads from a task."""
    requirement: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    feedback_context: Optional[str] = None

    @classmethod
    def from_task(cls, task: AgentTask) -> "ProductTaskInput":
        data = task.input or {}
        requirement = data.get("requirement")
        if not isinstance(requirement, str) or not requirement.strip():
            raise InputValidationError("Requirement text is missing in the task input.")
        return cls(
            requirement=requirement,
            history=data.get("history") or [],
            feedback_context=data.get("feedback_context"),
        )


class ProductAgent(AgentInterface):
    """
    Requirements analysis agent.

    Usage:
        agent = ProductAgent(registry, prompt_loader)
        response = await agent.handle(AgentTask(
            agent_type=AgentType.PRODUCT,
            input={"requirement": "Build a todo list API"},
        ))
    """

    def get_agent_type(self) -> AgentType:
        return AgentType.PRODUCT

    def get_capabilities(self) -> List[str]:
        return [
            "analyze_requirements",
            "create_user_stories",
            "prioritize_features",
            "generate_acceptance_criteria",
        ]

    async def handle(self, task: AgentTask) -> AgentResponse:
        """Analyze the requirement in the task into user stories."""
        self.logger.info(f"Handling task {task.id}")

        try:
            task_input = ProductTaskInput.from_task(task)
        except InputValidationError as e:
            self.logger.warning(f"Task {task.id} rejected: {e}")
            return AgentResponse.error(f"Input validation failed: {e}")

        try:
            stories = await self.analyze_requirement(
                task_input.requirement,
                task_input.history,
                task_input.feedback_context,
            )
        except AgentOutputError as e:
            self.logger.error(f"Unusable analysis output for task {task.id}: {e}")
            return AgentResponse.error(f"Failed to analyze requirement: {e}")
        except Exception as e:
            self.logger.error(f"Requirement analysis failed for task {task.id}: {e}")
            return AgentResponse.error(
                f"Sorry, I encountered a critical error processing your request: {e}"
            )

        if not stories:
            return AgentResponse.ok(
                [],
                "I analyzed the request, but couldn't identify specific user stories. "
                "Could you please provide more details or clarify the requirements?",
            )

        return AgentResponse.ok(
            stories,
            f"Successfully generated {len(stories)} user stories.",
            {"story_count": len(stories)},
        )

    async def analyze_requirement(
        self,
        requirement: str,
        history: Optional[List[Dict[str, Any]]] = None,
        feedback_context: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Break a requirement into user stories.

        Args:
            requirement: The user's requirement text
            history: Previous conversation messages
            feedback_context: Note about feedback on the previous answer

        Returns:
            Normalized user stories (possibly empty)

        Raises:
            AgentOutputError: The model did not return a story array
        """
        prompt = self.render_prompt("analyze_requirement", {
            "requirement": requirement,
            "history": format_history(history or []),
            "feedback_context": feedback_context,
        })

        parsed, raw = await self.generate_json(prompt, ANALYZE_OPTIONS)
        if isinstance(parsed, dict) and isinstance(parsed.get("user_stories"), list):
            parsed = parsed["user_stories"]

        if not isinstance(parsed, list):
            raise AgentOutputError("Expected a JSON array of user stories", raw)

        problems = validate_output(parsed, USER_STORIES_SCHEMA)
        if problems:
            self.logger.warning(f"User stories are incomplete: {'; '.join(problems)}")

        return [self._normalize_story(story) for story in parsed if isinstance(story, dict)]

    @staticmethod
    def _normalize_story(story: Dict[str, Any]) -> Dict[str, Any]:
        story = dict(story)
        story.setdefault("id", str(uuid.uuid4()))
        if not isinstance(story.get("acceptance_criteria"), list):
            story["acceptance_criteria"] = []
        for key in ("priority", "complexity"):
            value = str(story.get(key, "")).lower()
            story[key] = value if value in STORY_LEVELS else "medium"
        return story

    async def validate_code(
        self,
        code_files: Dict[str, str],
        user_stories: List[Dict[str, Any]],
        model_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Check whether code satisfies the user stories.

        Returns:
            {needs_revision, matches_requirements, score, missing_features,
            extra_features, feedback} with defaults filled in

        Raises:
            AgentOutputError: The model output is not a JSON object
        """
        prompt = self.render_prompt("validate_code", {
            "user_stories": json.dumps(user_stories, indent=2),
            "code": format_code_files(code_files),
        })

        result, raw = await self.generate_json(prompt, VALIDATE_OPTIONS, model_id=model_id)
        require_valid(result, CODE_VALIDATION_SCHEMA, raw)

        result.setdefault("needs_revision", False)
        result.setdefault("matches_requirements", True)
        result.setdefault("score", 7)
        for key in ("missing_features", "extra_features"):
            if not isinstance(result.get(key), list):
                result[key] = []
        if not result.get("feedback"):
            result["feedback"] = (
                "The code needs revision to meet the requirements."
                if result["needs_revision"]
                else "The code meets the specified requirements."
            )

        self.logger.info(
            f"Code validation finished: score {result['score']}/10, "
            f"needs revision: {result['needs_revision']}"
        )
        return result
