"""Tests for the automatic follow-up tasks."""

import json
from unittest.mock import AsyncMock

import pytest

from agents.base.agent_interface import AgentType
from orchestrator.engine.auxiliary import AuxiliaryTaskRunner, SECURITY_ANALYSIS, TEST_GENERATION
from orchestrator.engine.errors import AuxiliaryTaskError
from tests.conftest import CLEAN_ANALYSIS, GENERATED_TESTS, TODO_CODE, TODO_STORIES


@pytest.fixture
def runner(fake_agents, metrics):
    return AuxiliaryTaskRunner(fake_agents[AgentType.TEST], fake_agents[AgentType.SECURITY], metrics=metrics)


class TestAfterCoder:
    async def test_generates_tests_into_context(self, runner, fake_agents, metrics):
        context = {"user_stories": TODO_STORIES}

        result = await runner.run(AgentType.CODER, TODO_CODE, context)

        assert result == GENERATED_TESTS
        assert context["generated_tests"] == GENERATED_TESTS
        fake_agents[AgentType.TEST].generate_tests.assert_awaited_once_with(
            {"generated.ts": TODO_CODE["code"]}, TODO_STORIES
        )
        assert metrics.get_value("auxiliary_tasks_total", {"task": TEST_GENERATION, "result": "success"}) == 1

    async def test_skipped_without_user_stories(self, runner, fake_agents, metrics):
        context = {}
        assert await runner.run(AgentType.CODER, TODO_CODE, context) is None
        assert "generated_tests" not in context
        fake_agents[AgentType.TEST].generate_tests.assert_not_awaited()
        assert metrics.get_value("auxiliary_tasks_total", {"task": TEST_GENERATION, "result": "skipped"}) == 1

    async def test_skipped_without_code(self, runner, fake_agents):
        assert await runner.run(AgentType.CODER, {"explanation": "no code"}, {"user_stories": TODO_STORIES}) is None
        fake_agents[AgentType.TEST].generate_tests.assert_not_awaited()

    async def test_agent_exception_is_wrapped(self, runner, fake_agents, metrics):
        fake_agents[AgentType.TEST].generate_tests = AsyncMock(side_effect=RuntimeError("model timeout"))

        with pytest.raises(AuxiliaryTaskError) as exc_info:
            await runner.run(AgentType.CODER, TODO_CODE, {"user_stories": TODO_STORIES})

        assert exc_info.value.task_name == TEST_GENERATION
        assert exc_info.value.reason == "model timeout"
        assert str(exc_info.value) == "Test Generation failed: model timeout"
        assert metrics.get_value("auxiliary_tasks_total", {"task": TEST_GENERATION, "result": "failed"}) == 1

    async def test_invalid_result(self, runner, fake_agents):
        fake_agents[AgentType.TEST].generate_tests = AsyncMock(return_value={"test_files": "none"})

        with pytest.raises(AuxiliaryTaskError, match="Auxiliary task returned invalid data."):
            await runner.run(AgentType.CODER, TODO_CODE, {"user_stories": TODO_STORIES})


class TestAfterTest:
    async def test_analyzes_generated_code(self, runner, fake_agents):
        context = {"user_stories": TODO_STORIES, "generated_code": TODO_CODE}

        result = await runner.run(AgentType.TEST, {"success": True}, context)

        assert result == CLEAN_ANALYSIS
        assert context["security_analysis"] == CLEAN_ANALYSIS
        fake_agents[AgentType.SECURITY].analyze_code.assert_awaited_once_with(
            {"generated.ts": TODO_CODE["code"]}, json.dumps(TODO_STORIES)
        )

    async def test_runs_even_when_tests_failed(self, runner, fake_agents):
        context = {"user_stories": TODO_STORIES, "generated_code": TODO_CODE}
        await runner.run(AgentType.TEST, {"success": False}, context)
        fake_agents[AgentType.SECURITY].analyze_code.assert_awaited_once()

    async def test_skipped_without_generated_code(self, runner, fake_agents):
        assert await runner.run(AgentType.TEST, {"success": True}, {"user_stories": TODO_STORIES}) is None
        fake_agents[AgentType.SECURITY].analyze_code.assert_not_awaited()

    async def test_invalid_result(self, runner, fake_agents):
        fake_agents[AgentType.SECURITY].analyze_code = AsyncMock(return_value={"summary": "fine"})

        with pytest.raises(AuxiliaryTaskError) as exc_info:
            await runner.run(AgentType.TEST, {}, {"user_stories": TODO_STORIES, "generated_code": TODO_CODE})

        assert exc_info.value.task_name == SECURITY_ANALYSIS


class TestNoFollowUp:
    @pytest.mark.parametrize("agent_type", [AgentType.PRODUCT, AgentType.SECURITY])
    async def test_nothing_runs(self, runner, fake_agents, agent_type):
        assert await runner.run(agent_type, {}, {"user_stories": TODO_STORIES, "generated_code": TODO_CODE}) is None
        fake_agents[AgentType.TEST].generate_tests.assert_not_awaited()
        fake_agents[AgentType.SECURITY].analyze_code.assert_not_awaited()
