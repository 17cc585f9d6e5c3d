"""Tests for the Product, Coder, Test and Security agents."""

import pytest

from agents import create_agents, get_agent
from agents.base.agent_interface import (
    AgentResponse,
    AgentTask,
    AgentType,
    ResponseStatus,
    TaskStatus,
    TaskType,
)
from agents.base.llm_client import LLMProviderError
from agents.base.output_handler import AgentOutputError
from agents.base.prompt_loader import PromptLoader
from agents.coder import CoderAgent, CoderTaskInput
from agents.product import ProductAgent
from agents.qa import TestAgent
from agents.security import SecurityAgent
from tests.conftest import (
    CLEAN_ANALYSIS,
    GENERATED_TESTS,
    TODO_CODE,
    TODO_STORIES,
    coder_answer,
)


def _task(agent_type: AgentType, task_type: str = None, **task_input) -> AgentTask:
    return AgentTask(agent_type=agent_type, input=task_input, task_type=task_type)


# =============================================================================
# ENVELOPES AND FACTORY
# =============================================================================

class TestEnvelopes:
    def test_task_from_dict_defaults(self):
        task = AgentTask.from_dict({"agent_type": "coder"})
        assert task.agent_type == AgentType.CODER
        assert task.status == TaskStatus.PENDING
        assert task.priority == 5
        assert task.id

    def test_task_to_dict_serializes_dates(self):
        data = AgentTask(agent_type=AgentType.TEST, task_type=TaskType.GENERATE).to_dict()
        assert data["agent_type"] == "test"
        assert isinstance(data["created_at"], str)
        assert data["completed_at"] is None

    def test_response_constructors(self):
        assert AgentResponse.ok([1], "done").success
        assert AgentResponse.error("bad").status == ResponseStatus.ERROR
        assert AgentResponse.needs_feedback("which db?").status == ResponseStatus.REQUIRES_FEEDBACK
        assert AgentResponse.from_dict({"status": "partial_success"}).status == ResponseStatus.PARTIAL_SUCCESS


class TestFactory:
    def test_create_agents(self, llm, prompt_loader):
        agents = create_agents(llm, prompt_loader)
        assert isinstance(agents[AgentType.PRODUCT], ProductAgent)
        assert isinstance(agents[AgentType.CODER], CoderAgent)
        assert isinstance(agents[AgentType.TEST], TestAgent)
        assert isinstance(agents[AgentType.SECURITY], SecurityAgent)

    def test_get_agent_by_value(self, llm, prompt_loader):
        assert get_agent("security", llm, prompt_loader).get_agent_type() == AgentType.SECURITY

    def test_unknown_agent_type(self, llm, prompt_loader):
        with pytest.raises(ValueError, match="Unknown agent type"):
            get_agent("designer", llm, prompt_loader)

    async def test_is_available_follows_the_registry(self, agents):
        assert await agents[AgentType.CODER].is_available() is True


# =============================================================================
# PRODUCT AGENT
# =============================================================================

class TestProductAgent:
    async def test_generates_normalized_stories(self, agents, llm):
        llm.add(TODO_STORIES)

        response = await agents[AgentType.PRODUCT].handle(
            _task(AgentType.PRODUCT, requirement="Build a todo list API")
        )

        assert response.status == ResponseStatus.SUCCESS
        assert response.message == "Successfully generated 2 user stories."
        assert response.metadata == {"story_count": 2}
        second = response.data[1]
        assert second["priority"] == "medium"
        assert second["complexity"] == "medium"
        assert all(story["id"] for story in response.data)
        assert "Build a todo list API" in llm.prompts[0]

    async def test_feedback_context_reaches_the_prompt(self, agents, llm):
        llm.add(TODO_STORIES)
        note = "System Note on Previous Response: Rating=negative."

        await agents[AgentType.PRODUCT].handle(
            _task(AgentType.PRODUCT, requirement="again", feedback_context=note)
        )

        assert note in llm.prompts[0]

    async def test_accepts_wrapped_story_list(self, agents, llm):
        llm.add({"user_stories": TODO_STORIES[:1]})
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="x"))
        assert len(response.data) == 1

    async def test_no_stories_is_a_successful_clarification(self, agents, llm):
        llm.add([])
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="stuff"))

        assert response.status == ResponseStatus.SUCCESS
        assert response.data == []
        assert "provide more details" in response.message

    async def test_missing_requirement(self, agents, llm):
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="  "))

        assert response.status == ResponseStatus.ERROR
        assert response.message.startswith("Input validation failed")
        assert llm.prompts == []

    async def test_unparsable_output(self, agents, llm):
        llm.add("I think you should build it")
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="x"))

        assert response.status == ResponseStatus.ERROR
        assert response.message.startswith("Failed to analyze requirement")

    async def test_object_instead_of_array(self, agents, llm):
        llm.add({"title": "one story"})
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="x"))
        assert response.status == ResponseStatus.ERROR

    async def test_model_failure(self, agents, llm):
        llm.add(LLMProviderError("all models down"))
        response = await agents[AgentType.PRODUCT].handle(_task(AgentType.PRODUCT, requirement="x"))

        assert response.status == ResponseStatus.ERROR
        assert "critical error" in response.message
        assert "all models down" in response.message

    async def test_missing_template(self, llm, tmp_path):
        agent = ProductAgent(llm, PromptLoader(str(tmp_path)))
        response = await agent.handle(_task(AgentType.PRODUCT, requirement="x"))

        assert response.status == ResponseStatus.ERROR
        assert "product/analyze_requirement" in response.message

    async def test_validate_code_fills_defaults(self, agents, llm):
        llm.add({"needs_revision": True, "score": 4})

        result = await agents[AgentType.PRODUCT].validate_code({"app.ts": "code"}, TODO_STORIES)

        assert result["score"] == 4
        assert result["missing_features"] == []
        assert result["feedback"] == "The code needs revision to meet the requirements."

    async def test_validate_code_rejects_non_object(self, agents, llm):
        llm.add([1, 2])
        with pytest.raises(AgentOutputError):
            await agents[AgentType.PRODUCT].validate_code({"app.ts": "code"}, TODO_STORIES)


# =============================================================================
# CODER AGENT
# =============================================================================

class TestCoderAgent:
    async def test_generated_code(self, agents, llm):
        llm.add(coder_answer())

        response = await agents[AgentType.CODER].handle(
            _task(AgentType.CODER, TaskType.GENERATE, requirement="Build it", user_stories=TODO_STORIES)
        )

        assert response.status == ResponseStatus.SUCCESS
        assert response.data == TODO_CODE
        assert response.message == "Implemented the todo API."
        assert response.metadata == {"response_type": "code_generated"}
        assert "Create a todo" in llm.prompts[0]

    async def test_clarification_requires_feedback(self, agents, llm):
        llm.add({"response_type": "clarification", "explanation": "Which database?", "output_data": {}})

        response = await agents[AgentType.CODER].handle(_task(AgentType.CODER, requirement="Build it"))

        assert response.status == ResponseStatus.REQUIRES_FEEDBACK
        assert response.message == "Which database?"
        assert response.data is None

    async def test_code_response_without_code(self, agents, llm):
        llm.add({"response_type": "code_modified", "explanation": "Done", "output_data": {}})
        response = await agents[AgentType.CODER].handle(_task(AgentType.CODER, requirement="Fix it"))

        assert response.status == ResponseStatus.ERROR
        assert "missing code" in response.message

    async def test_model_reported_error(self, agents, llm):
        llm.add({"response_type": "error", "explanation": "Cannot do that"})
        response = await agents[AgentType.CODER].handle(_task(AgentType.CODER, requirement="x"))

        assert response.status == ResponseStatus.ERROR
        assert response.message == "Cannot do that"

    async def test_invalid_response_type(self, agents, llm):
        llm.add({"response_type": "poem", "explanation": "roses"})
        response = await agents[AgentType.CODER].handle(_task(AgentType.CODER, requirement="x"))

        assert response.status == ResponseStatus.ERROR
        assert response.message.startswith("Failed to process the AI response")

    async def test_fix_task_describes_failed_tests(self, agents, llm):
        llm.add(coder_answer(response_type="code_modified"))

        await agents[AgentType.CODER].handle(_task(
            AgentType.CODER, TaskType.FIX,
            requirement="Fix the failing test",
            previous_code={"code": "def create(): pass", "language": "python"},
            failed_tests=[{"name": "rejects empty titles"}],
        ))

        prompt = llm.prompts[0]
        assert "Focus on fixing these failed tests" in prompt
        assert "def create(): pass" in prompt
        assert "python" in prompt

    def test_failed_tests_take_precedence_over_security_issues(self):
        task_input = CoderTaskInput.from_task(_task(
            AgentType.CODER, TaskType.FIX, requirement="fix",
            failed_tests=[{"name": "t"}], security_issues=[{"id": "SEC-1"}],
        ))
        assert task_input.fix_context().startswith("Focus on fixing these failed tests")

    def test_security_fix_context(self):
        task_input = CoderTaskInput.from_task(_task(
            AgentType.CODER, TaskType.FIX, requirement="fix", security_issues=[{"id": "SEC-1"}],
        ))
        assert "security issues" in task_input.fix_context()
        assert task_input.language == "typescript"

    def test_generate_task_has_no_fix_context(self):
        task_input = CoderTaskInput.from_task(_task(
            AgentType.CODER, requirement="x", failed_tests=[{"name": "t"}],
        ))
        assert task_input.task_type == TaskType.GENERATE
        assert task_input.fix_context() is None


# =============================================================================
# TEST AGENT
# =============================================================================

class TestTestAgent:
    async def test_handle_uses_code_under_test(self, agents, llm):
        llm.add({"response_type": "analysis", "explanation": "Looks right", "output_data": {"success": True}})

        response = await agents[AgentType.TEST].handle(_task(
            AgentType.TEST, requirement="Check it", code_to_test=TODO_CODE, user_stories=TODO_STORIES,
        ))

        assert response.status == ResponseStatus.SUCCESS
        assert response.data == {"success": True}
        assert TODO_CODE["code"] in llm.prompts[0]
        assert "Create a todo" in llm.prompts[0]

    async def test_handle_clarification(self, agents, llm):
        llm.add({"response_type": "clarification", "explanation": "Unit or e2e?", "output_data": {}})
        response = await agents[AgentType.TEST].handle(_task(AgentType.TEST, requirement="tests please"))
        assert response.status == ResponseStatus.REQUIRES_FEEDBACK

    async def test_handle_requires_output_data(self, agents, llm):
        llm.add({"response_type": "analysis", "explanation": "no data"})
        response = await agents[AgentType.TEST].handle(_task(AgentType.TEST, requirement="x"))
        assert response.status == ResponseStatus.ERROR

    async def test_generate_tests(self, agents, llm):
        llm.add(GENERATED_TESTS)

        result = await agents[AgentType.TEST].generate_tests({"generated.ts": "code"}, TODO_STORIES)

        assert result == GENERATED_TESTS
        assert "### generated.ts" in llm.prompts[0]

    async def test_generate_tests_rejects_bad_shape(self, agents, llm):
        llm.add({"test_framework": "jest"})
        with pytest.raises(AgentOutputError):
            await agents[AgentType.TEST].generate_tests({"a.ts": "code"}, TODO_STORIES)

    async def test_simulation_never_raises(self, agents, llm):
        llm.add(LLMProviderError("timeout"))

        result = await agents[AgentType.TEST].simulate_test_execution({"a.ts": "x"}, {"a.test.ts": "y"})

        assert result["success"] is False
        assert result["failed_tests"][0]["name"] == "SimulationError"
        assert result["failed_tests"][0]["details"] == "LLMProviderError"

    async def test_validate_fix_without_failures_skips_the_model(self, agents, llm):
        result = await agents[AgentType.TEST].validate_fix({"a.ts": "x"}, {"failed_tests": []})

        assert result["is_valid"] is False
        assert llm.prompts == []

    async def test_validate_fix(self, agents, llm):
        llm.add({"is_valid": True, "explanation": "Fixed"})

        result = await agents[AgentType.TEST].validate_fix(
            {"a.ts": "fixed"}, {"failed_tests": [{"name": "t1"}]}, original_code="broken",
        )

        assert result["is_valid"] is True
        assert "broken" in llm.prompts[0]

    async def test_generate_and_run(self, agents, llm):
        llm.add(GENERATED_TESTS, {
            "success": True, "summary": "1 of 1", "total": 1, "passed": 1, "failed": 0, "failed_tests": [],
        })

        result = await agents[AgentType.TEST].generate_and_run_tests({"a.ts": "x"}, TODO_STORIES)

        assert result["success"] is True
        assert "todo.test.ts" in llm.prompts[1]

    async def test_generate_and_run_without_tests(self, agents, llm):
        llm.add({"test_framework": "jest", "test_files": []})
        result = await agents[AgentType.TEST].generate_and_run_tests({"a.ts": "x"}, TODO_STORIES)
        assert result == {
            "success": True, "total": 0, "passed": 0, "failed": 0,
            "failed_tests": [], "summary": "No tests generated.",
        }


# =============================================================================
# SECURITY AGENT
# =============================================================================

class TestSecurityAgent:
    async def test_analyze_task(self, agents, llm):
        llm.add({"potential_risks_identified": [{"id": "SEC-1", "severity": "low"}]})

        response = await agents[AgentType.SECURITY].handle(_task(
            AgentType.SECURITY, TaskType.ANALYZE, code_to_analyze=TODO_CODE, user_stories=TODO_STORIES,
        ))

        assert response.status == ResponseStatus.SUCCESS
        assert response.data["summary"] == "1 potential risk(s) identified."
        assert response.metadata == {"task_type": TaskType.ANALYZE}
        assert "### generated.ts" in llm.prompts[0]

    async def test_code_from_context_fields(self, agents, llm):
        llm.add(CLEAN_ANALYSIS)
        response = await agents[AgentType.SECURITY].handle(_task(
            AgentType.SECURITY, context_code="print(1)", context_language="py",
        ))
        assert response.status == ResponseStatus.SUCCESS
        assert "### generated.py" in llm.prompts[0]

    async def test_missing_code(self, agents, llm):
        response = await agents[AgentType.SECURITY].handle(_task(AgentType.SECURITY, TaskType.ANALYZE))

        assert response.status == ResponseStatus.ERROR
        assert "code_to_analyze" in response.message

    async def test_verify_fix_requires_previous_analysis(self, agents):
        response = await agents[AgentType.SECURITY].handle(_task(
            AgentType.SECURITY, TaskType.VERIFY_FIX, code_to_analyze=TODO_CODE,
        ))
        assert response.status == ResponseStatus.ERROR
        assert "previous_analysis" in response.message

    async def test_unknown_task_type(self, agents):
        response = await agents[AgentType.SECURITY].handle(_task(AgentType.SECURITY, "pentest"))
        assert response.status == ResponseStatus.ERROR
        assert "Unknown task type" in response.message

    async def test_verify_fixes(self, agents, llm):
        llm.add({"all_original_issues_fixed": True, "overall_assessment": "All fixed"})

        result = await agents[AgentType.SECURITY].verify_fixes(
            {"a.ts": "fixed"}, {"potential_risks_identified": [{"id": "SEC-1"}]},
        )

        assert result["all_original_issues_fixed"] is True
        assert result["new_issues_found"] == []
        assert result["summary"] == "All fixed"
        assert "SEC-1" in llm.prompts[0]

    async def test_verify_fixes_with_nothing_to_verify(self, agents, llm):
        result = await agents[AgentType.SECURITY].verify_fixes({"a.ts": "x"}, CLEAN_ANALYSIS)

        assert result["all_original_issues_fixed"] is True
        assert llm.prompts == []
