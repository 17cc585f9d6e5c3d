# =============================================================================
# AGENTFORGE - TEST AGENT
# =============================================================================
"""
Test Agent Implementation

The Test agent reasons about tests for generated code. It has a
conversational entry point (handle) and non-conversational capabilities
the orchestrator calls directly:

- generate_tests(): Write test files for code and user stories
- simulate_test_execution(): Predict the outcome of running the tests
- validate_fix(): Judge whether fixed code resolves earlier failures
- generate_and_run_tests(): Generate then simulate in one call

Test execution is simulated by the model; nothing is run locally.
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
)
from agents.base.output_handler import (
    AgentOutputError,
    FIX_VALIDATION_SCHEMA,
    GENERATED_TESTS_SCHEMA,
    TEST_EXECUTION_SCHEMA,
    TEST_RESPONSE_SCHEMA,
    format_code_files,
    format_history,
    require_valid,
    to_json_text,
)


@dataclass
class TestTaskInput:
    """Fields the Test agent reads from a task."""
    __test__ = False

    requirement: str
    history: List[Dict[str, Any]] = field(default_factory=list)
    feedback_context: Optional[str] = None
    context_code: Optional[str] = None
    context_language: str = "typescript"
    context_requirements: Any = None
    previous_test_results: Any = None

    @classmethod
    def from_task(cls, task: AgentTask) -> "TestTaskInput":
        data = task.input or {}
        requirement = data.get("requirement")
        if not isinstance(requirement, str) or not requirement.strip():
            raise InputValidationError(
                "Task input is invalid or missing the required 'requirement' field."
            )

        code_to_test = data.get("code_to_test") or {}
        context_code = data.get("context_code")
        if context_code is None and isinstance(code_to_test, dict):
            context_code = code_to_test.get("code")

        context_language = data.get("context_language")
        if not context_language and isinstance(code_to_test, dict):
            context_language = code_to_test.get("language")

        return cls(
            requirement=requirement,
            history=data.get("history") or [],
            feedback_context=data.get("feedback_context"),
            context_code=context_code,
            context_language=context_language or "typescript",
            context_requirements=data.get("context_requirements") or data.get("user_stories"),
            previous_test_results=data.get("previous_test_results"),
        )


def failed_result(message: str, details: Optional[str] = None) -> Dict[str, Any]:
    """Test execution result describing an error."""
    return {
        "success": False,
        "summary": f"Error running tests: {message}",
        "total": 1,
        "passed": 0,
        "failed": 1,
        "failed_tests": [{"name": "SimulationError", "message": message, "details": details}],
    }


class TestAgent(AgentInterface):
    """
    Test planning, generation and validation agent.

    Usage:
        agent = TestAgent(registry, prompt_loader)
        tests = await agent.generate_tests({"app.ts": code}, user_stories)
    """
    __test__ = False

    def get_agent_type(self) -> AgentType:
        return AgentType.TEST

    def get_capabilities(self) -> List[str]:
        return [
            "generate_test_cases",
            "analyze_test_results",
            "create_test_plan",
            "run_tests_simulation",
            "validate_fixes",
        ]

    # =========================================================================
    # CONVERSATIONAL ENTRY POINT
    # =========================================================================

    async def handle(self, task: AgentTask) -> AgentResponse:
        """Answer a testing request (plan, cases or analysis)."""
        self.logger.info(f"Handling task {task.id}")

        try:
            task_input = TestTaskInput.from_task(task)
        except InputValidationError as e:
            self.logger.warning(f"Task {task.id} rejected: {e}")
            return AgentResponse.error(f"Input validation failed: {e}")

        try:
            prompt = self.render_prompt("handle_interaction", {
                "requirement": task_input.requirement,
                "history": format_history(task_input.history),
                "context_code": task_input.context_code,
                "context_language": task_input.context_language,
                "context_requirements": to_json_text(task_input.context_requirements),
                "previous_test_results": to_json_text(task_input.previous_test_results),
                "feedback_context": task_input.feedback_context,
            })
            parsed, raw = await self.generate_json(prompt, {"temperature": 0.1, "max_tokens": 4096})
            require_valid(parsed, TEST_RESPONSE_SCHEMA, raw)
        except AgentOutputError as e:
            self.logger.error(f"Unusable test output for task {task.id}: {e}")
            return AgentResponse.error(f"Failed to process test task: {e}")
        except Exception as e:
            self.logger.error(f"Test task {task.id} failed: {e}")
            return AgentResponse.error(f"An unexpected error occurred in the Test Agent: {e}")

        response_type = parsed["response_type"]
        metadata = {"response_type": response_type}
        self.logger.info(f"Task {task.id} response type: {response_type}")

        if response_type == "clarification":
            return AgentResponse.needs_feedback(parsed["explanation"], parsed["output_data"], metadata)
        if response_type == "error":
            return AgentResponse.error(parsed["explanation"], parsed["output_data"], metadata)
        return AgentResponse.ok(parsed["output_data"], parsed["explanation"], metadata)

    # =========================================================================
    # CAPABILITIES
    # =========================================================================

    async def generate_tests(self, code_files: Dict[str, str],
                             user_stories: List[Any]) -> Dict[str, Any]:
        """
        Write test files for the given code.

        Args:
            code_files: Path -> source content
            user_stories: Stories the tests should cover

        Returns:
            {test_framework, test_files: [{name, content}], ...}

        Raises:
            AgentOutputError: The model output has the wrong shape
            LLMError: Generation failed on every model
        """
        self.logger.info(f"Generating tests for {len(code_files)} code file(s)")

        prompt = self.render_prompt("generate_tests", {
            "code_context": format_code_files(code_files),
            "requirements_context": json.dumps(user_stories, indent=2),
        })
        result, raw = await self.generate_json(prompt, {"temperature": 0.2, "max_tokens": 4096})
        require_valid(result, GENERATED_TESTS_SCHEMA, raw)

        self.logger.info(
            f"Generated {len(result['test_files'])} test file(s) using {result['test_framework']}"
        )
        return result

    async def simulate_test_execution(self, code_files: Dict[str, str],
                                      test_files: Dict[str, str]) -> Dict[str, Any]:
        """
        Predict the result of running test_files against code_files.

        Never raises: failures come back as an unsuccessful result.
        """
        self.logger.info(f"Simulating execution of {len(test_files)} test file(s)")

        try:
            prompt = self.render_prompt("simulate_tests", {
                "code": format_code_files(code_files),
                "tests": format_code_files(test_files),
            })
            result, raw = await self.generate_json(prompt, {"temperature": 0.0, "max_tokens": 4096})
            require_valid(result, TEST_EXECUTION_SCHEMA, raw)
        except Exception as e:
            self.logger.error(f"Test simulation failed: {e}")
            return failed_result(str(e), type(e).__name__)

        self.logger.info(
            f"Simulation finished: success={result['success']}, "
            f"{result['passed']} passed, {result['failed']} failed"
        )
        return result

    async def validate_fix(
        self,
        code_files: Dict[str, str],
        previous_result: Dict[str, Any],
        original_code: Optional[str] = None,
        original_passing_tests: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Judge whether fixed code resolves previously failing tests.

        Returns:
            {is_valid, explanation, ...}; is_valid is False without a
            model call when the previous result has no failed tests

        Raises:
            AgentOutputError: The model output has the wrong shape
        """
        failed_tests = (previous_result or {}).get("failed_tests") or []
        if not failed_tests:
            message = "Cannot validate fix: No details found for previously failed tests."
            self.logger.warning(message)
            return {"is_valid": False, "explanation": message}

        prompt = self.render_prompt("validate_fix", {
            "failed_test_details": json.dumps(failed_tests, indent=2),
            "original_passing_tests_context": original_passing_tests or "Not provided",
            "original_code_context": original_code or "Not provided",
            "fixed_code_context": format_code_files(code_files),
        })
        result, raw = await self.generate_json(prompt, {"temperature": 0.0, "max_tokens": 2048})
        require_valid(result, FIX_VALIDATION_SCHEMA, raw)

        self.logger.info(f"Fix validation finished: valid={result['is_valid']}")
        return result

    async def generate_and_run_tests(self, code_files: Dict[str, str],
                                     user_stories: List[Any]) -> Dict[str, Any]:
        """Generate tests, then simulate running them."""
        try:
            generated = await self.generate_tests(code_files, user_stories)
        except Exception as e:
            self.logger.error(f"Error during generate_and_run_tests: {e}")
            result = failed_result(str(e))
            result.update(total=0, failed=0, failed_tests=[])
            return result

        if not generated["test_files"]:
            self.logger.warning("No test files were generated")
            return {
                "success": True, "total": 0, "passed": 0, "failed": 0,
                "failed_tests": [], "summary": "No tests generated.",
            }

        test_files = {
            f.get("name", f"test_{i}"): f.get("content", "")
            for i, f in enumerate(generated["test_files"]) if isinstance(f, dict)
        }
        return await self.simulate_test_execution(code_files, test_files)
