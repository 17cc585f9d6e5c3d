# =============================================================================
# AGENTFORGE - AUXILIARY TASK RUNNER
# =============================================================================
"""
Auxiliary Task Runner

Runs the automatic follow-up task coupled to a successful step:

    CODER success -> Test agent generate_tests()  -> context.generated_tests
    TEST success  -> Security agent analyze_code() -> context.security_analysis

A follow-up whose inputs are missing is skipped. A follow-up that raises
or returns malformed data raises AuxiliaryTaskError, and the engine
then fails the whole step.
"""

import json
import logging
from typing import Any, Dict, Optional

from agents.base.agent_interface import AgentType
from agents.base.output_handler import code_files_from_output

from .errors import AuxiliaryTaskError


logger = logging.getLogger(__name__)


TEST_GENERATION = "Test Generation"
SECURITY_ANALYSIS = "Security Analysis"

AUXILIARY_TASK_NAMES = {
    AgentType.CODER: TEST_GENERATION,
    AgentType.TEST: SECURITY_ANALYSIS,
}


class AuxiliaryTaskRunner:
    """
    Runs follow-up tasks and stores their results in the state context.

    Attributes:
        test_agent: Agent providing generate_tests()
        security_agent: Agent providing analyze_code()
        metrics: Optional MetricsCollector
    """

    def __init__(self, test_agent, security_agent, metrics=None):
        self.test_agent = test_agent
        self.security_agent = security_agent
        self.metrics = metrics

    async def run(self, agent_type: AgentType, response_data: Any,
                  context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Run the follow-up for agent_type, if it has one.

        Args:
            agent_type: Agent whose step just succeeded
            response_data: That agent's AgentResponse.data
            context: Orchestrator state context (updated in place)

        Returns:
            The follow-up result, or None when nothing ran

        Raises:
            AuxiliaryTaskError: The follow-up failed or returned invalid data
        """
        task_name = AUXILIARY_TASK_NAMES.get(agent_type)
        if task_name is None:
            return None

        try:
            if agent_type == AgentType.CODER:
                result = await self.after_coder(response_data, context)
            else:
                result = await self.after_test(context)
        except AuxiliaryTaskError:
            self._record(task_name, "failed")
            raise
        except Exception as e:
            self._record(task_name, "failed")
            logger.error(f"{task_name} after {agent_type.value} raised: {e}")
            raise AuxiliaryTaskError(task_name, str(e))

        self._record(task_name, "skipped" if result is None else "success")
        return result

    async def after_coder(self, response_data: Any,
                          context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Generate tests for freshly generated code."""
        user_stories = context.get("user_stories")
        code_files = None
        if isinstance(response_data, dict) and isinstance(response_data.get("code"), str):
            code_files = code_files_from_output(response_data)

        if not code_files or not user_stories:
            logger.info("Skipping test generation: code or user stories missing")
            return None

        logger.info("Running automatic test generation after Coder success")
        stories = user_stories if isinstance(user_stories, list) else [user_stories]
        result = await self.test_agent.generate_tests(code_files, stories)

        if not isinstance(result, dict) or not isinstance(result.get("test_files"), list):
            raise AuxiliaryTaskError(TEST_GENERATION, "Auxiliary task returned invalid data.")

        context["generated_tests"] = result
        logger.info(f"Test generation finished with {len(result['test_files'])} file(s)")
        return result

    async def after_test(self, context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Analyze the current code for security risks."""
        generated_code = context.get("generated_code")
        user_stories = context.get("user_stories")
        code_files = None
        if isinstance(generated_code, dict) and generated_code.get("code"):
            code_files = code_files_from_output(generated_code)

        if not code_files or not user_stories:
            logger.info("Skipping security analysis: generated code or user stories missing")
            return None

        logger.info("Running automatic security analysis after Test success")
        result = await self.security_agent.analyze_code(code_files, json.dumps(user_stories))

        if not isinstance(result, dict) or not isinstance(result.get("potential_risks_identified"), list):
            raise AuxiliaryTaskError(SECURITY_ANALYSIS, "Auxiliary task returned invalid data.")

        context["security_analysis"] = result
        logger.info(f"Security analysis finished with {len(result['potential_risks_identified'])} issue(s)")
        return result

    def _record(self, task_name: str, result: str):
        if self.metrics:
            self.metrics.record_auxiliary_task(task_name, result)
