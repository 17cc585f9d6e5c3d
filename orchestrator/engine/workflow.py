# =============================================================================
# AGENTFORGE - WORKFLOW ENGINE
# =============================================================================
"""
Workflow Engine

Drives the orchestrator state machine for one user message at a time.

Processing of a message:
    1. Route the message to an agent
    2. Build the task input (history, session and state context)
    3. Open a step and persist
    4. Run agent.handle()
    5. On success run the auxiliary task, then pick the next agent
    6. Close the step, update the session status and persist
    7. Queue the prepared task for the next agent

Session status after a step:
    success, next agent     -> active
    success, end of chain   -> completed
    requires_feedback       -> paused
    error / partial_success -> error
    auxiliary task failure  -> error

The engine never calls itself: the next agent runs when the next user
message arrives.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import (
    AgentInterface,
    AgentResponse,
    AgentTask,
    AgentType,
    ResponseStatus,
    TaskStatus,
    utc_now,
)
from agents.base.output_handler import format_history, summarize, to_json_text
from monitoring.logger import log_context

from orchestrator.scheduler.queue_manager import PriorityTaskQueue

from .auxiliary import AuxiliaryTaskRunner
from .context_builder import build_task_input, infer_task_type, prepare_next_task
from .continuation import determine_continuation_agent
from .errors import AuxiliaryTaskError, OrchestratorError, PersistenceError
from .routing import route_user_message
from .state_manager import (
    ChatMessage,
    MessageRole,
    SessionManager,
    SessionRecord,
    SessionStatus,
    StateManagerError,
    StateNotFoundError,
    StepStatus,
)


logger = logging.getLogger(__name__)


# Where each agent's handle() output is kept in the state context
CONTEXT_KEYS = {
    AgentType.PRODUCT: "user_stories",
    AgentType.CODER: "generated_code",
    AgentType.TEST: "test_handle_output",
    AgentType.SECURITY: "security_handle_output",
}

VALID_RATINGS = (1, 0, -1)

OPTIMIZE_HISTORY_LIMIT = 10
OPTIMIZE_OPTIONS = {"temperature": 0.2, "max_tokens": 500}


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class OrchestratorResult:
    """What the engine returns for one handled message."""
    content: str
    agent_type: Optional[AgentType] = None
    structured_output: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def next_agent(self) -> Optional[str]:
        return self.metadata.get("next_agent")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "agent_type": self.agent_type.value if self.agent_type else None,
            "structured_output": self.structured_output,
            "metadata": self.metadata,
        }


# =============================================================================
# WORKFLOW ENGINE
# =============================================================================

class WorkflowEngine:
    """
    Coordinates agents for chat sessions.

    Attributes:
        agents: Agent instance per type
        sessions: Session persistence
        queue: Prepared continuation tasks
        auxiliary: Follow-up task runner
        metrics: Optional MetricsCollector
        audit: Optional AuditLogger
        registry: Model registry used for prompt optimization
        prompt_loader: Template loader used for prompt optimization
    """

    def __init__(
        self,
        agents: Dict[AgentType, AgentInterface],
        sessions: SessionManager,
        queue: Optional[PriorityTaskQueue] = None,
        metrics=None,
        audit=None,
        config: Optional[Dict[str, Any]] = None,
        registry=None,
        prompt_loader=None,
    ):
        """
        Initialize the workflow engine.

        Args:
            agents: Agent instance per type; Test and Security are required
            sessions: Session persistence manager
            queue: Task queue (a private one is created if omitted)
            metrics: Optional metrics collector
            audit: Optional audit logger
            config: Engine configuration
            registry: Optional model registry (needed by optimize_prompt)
            prompt_loader: Optional prompt loader (needed by optimize_prompt)
        """
        self.agents = agents
        self.sessions = sessions
        self.queue = queue if queue is not None else PriorityTaskQueue()
        self.metrics = metrics
        self.audit = audit
        self.config = config or {}
        self.registry = registry
        self.prompt_loader = prompt_loader

        self.auxiliary = AuxiliaryTaskRunner(
            agents[AgentType.TEST],
            agents[AgentType.SECURITY],
            metrics=metrics,
        )

    # =========================================================================
    # MESSAGE PROCESSING
    # =========================================================================

    async def process_message(self, session_id: str, content: str) -> ChatMessage:
        """
        Store a user message, handle it and store the answer.

        Returns:
            The assistant message

        Raises:
            StateNotFoundError: Unknown session
            OrchestratorError: Archived session or critical failure
            PersistenceError: Session could not be saved
        """
        session = await self.sessions.get_session(session_id)
        if session.status == SessionStatus.ARCHIVED:
            raise OrchestratorError(f"Session {session_id} is archived and cannot receive messages")

        if not session.title:
            session.title = content.strip()[:50] or None

        user_message = ChatMessage(session_id=session_id, role=MessageRole.USER, content=content)
        await self._append(user_message)

        result = await self.handle_user_message(session, user_message)

        metadata = dict(result.metadata)
        metadata["structured_output"] = result.structured_output
        assistant_message = ChatMessage(
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            content=result.content,
            agent_type=result.agent_type,
            metadata=metadata,
        )
        await self._append(assistant_message)
        await self._persist(session)
        return assistant_message

    async def handle_user_message(self, session: SessionRecord,
                                  user_message: ChatMessage) -> OrchestratorResult:
        """
        Run one orchestrator step for user_message.

        The session (and its orchestrator state) is mutated in place and
        persisted after each change.

        Raises:
            OrchestratorError: The agent raised instead of responding
            PersistenceError: Session could not be saved
        """
        state = session.orchestrator_state
        history = await self.sessions.get_messages(session.id)
        if not any(message.id == user_message.id for message in history):
            history.append(user_message)

        target = route_user_message(state, history)
        agent = self.agents.get(target)
        if agent is None:
            raise OrchestratorError(f"Configuration error: Agent {target.value} not available.")

        with log_context(session_id=session.id, agent_type=target.value):
            logger.info(f"Routing message {user_message.id} to {target.value} agent")

            task_input = build_task_input(session, state, history, user_message, target)
            task_type = infer_task_type(target, task_input)

            pending = self._claim_pending_task(session.id)
            if pending is not None and pending.agent_type == target:
                for key, value in pending.input.items():
                    if task_input.get(key) is None:
                        task_input[key] = value
                task_type = pending.task_type or task_type
                logger.info(f"Claimed pending task {pending.id} ({task_type})")

            task = AgentTask(
                agent_type=target,
                input=task_input,
                task_type=task_type,
                workflow_id=session.id,
                parent_task_id=pending.id if pending is not None else None,
            )

            state.update_step(target, StepStatus.IN_PROGRESS, input_summary=summarize(task_input))
            await self._persist(session)

            response = await self._run_agent(session, agent, task)
            return await self._complete_step(session, task, response, history)

    async def _run_agent(self, session: SessionRecord, agent: AgentInterface,
                         task: AgentTask) -> AgentResponse:
        """Call agent.handle(); a raised exception fails the step and the session."""
        task.status = TaskStatus.RUNNING
        task.updated_at = utc_now()
        start = time.monotonic()

        try:
            response = await agent.handle(task)
        except Exception as e:
            logger.error(f"Critical error in {task.agent_type.value} agent for task {task.id}: {e}")
            task.status = TaskStatus.FAILED
            session.orchestrator_state.update_step(task.agent_type, StepStatus.ERROR, error=str(e))
            self._set_session_status(session, SessionStatus.ERROR, task.agent_type)
            if self.metrics:
                self.metrics.record_error("orchestrator", type(e).__name__)
            if self.audit:
                self.audit.log_error("orchestrator", type(e).__name__, str(e), session.id)
            await self._persist(session)
            raise OrchestratorError(
                f"Orchestrator failed critically processing task for {task.agent_type.value}: {e}"
            ) from e

        duration = time.monotonic() - start
        if self.metrics:
            self.metrics.record_agent_execution(task.agent_type.value, response.status.value, duration)
        if self.audit:
            self.audit.log_agent_execution(
                task.agent_type.value, session.id, response.status.value,
                duration, summarize(response.data, 200),
            )
        return response

    async def _complete_step(self, session: SessionRecord, task: AgentTask,
                             response: AgentResponse,
                             history: List[ChatMessage]) -> OrchestratorResult:
        state = session.orchestrator_state
        agent_type = task.agent_type
        next_agent: Optional[AgentType] = None
        content = response.message

        if response.status == ResponseStatus.SUCCESS:
            logger.info(f"Agent {agent_type.value} task {task.id} succeeded")
            content = response.message or "Task completed successfully."
            try:
                await self.auxiliary.run(agent_type, response.data, state.context)
            except AuxiliaryTaskError as e:
                logger.error(f"Auxiliary task after {agent_type.value} failed: {e.reason}")
                response.status = ResponseStatus.ERROR
                content = (
                    f"Main task ({agent_type.value}) succeeded, but the automatic "
                    f"follow-up task ({e.task_name}) failed: {e.reason}"
                )
                self._set_session_status(session, SessionStatus.ERROR, agent_type)
            else:
                next_agent = determine_continuation_agent(agent_type, response.data, task.task_type)
                state.context.pop("paused_reason", None)
                state.context.pop("paused_message", None)
                self._set_session_status(
                    session,
                    SessionStatus.ACTIVE if next_agent else SessionStatus.COMPLETED,
                    agent_type,
                )

        elif response.status == ResponseStatus.REQUIRES_FEEDBACK:
            logger.info(f"Agent {agent_type.value} requires feedback")
            content = response.message or "I need more information to continue."
            state.context["paused_reason"] = "requires_feedback"
            state.context["paused_message"] = content
            self._set_session_status(session, SessionStatus.PAUSED, agent_type)

        else:
            logger.error(
                f"Agent {agent_type.value} task {task.id} failed. "
                f"Status: {response.status.value}, Message: {response.message}"
            )
            content = response.message or f"Agent {agent_type.value} failed."
            self._set_session_status(session, SessionStatus.ERROR, agent_type)

        if response.data is not None:
            state.context[CONTEXT_KEYS[agent_type]] = response.data

        step_ok = response.status in (ResponseStatus.SUCCESS, ResponseStatus.REQUIRES_FEEDBACK)
        state.update_step(
            agent_type,
            StepStatus.COMPLETED if step_ok else StepStatus.ERROR,
            error=None if step_ok else content,
            output_summary=summarize(response.data),
        )
        state.current_agent = next_agent if response.status == ResponseStatus.SUCCESS else agent_type

        task.status = TaskStatus.COMPLETED if step_ok else TaskStatus.FAILED
        task.completed_at = task.updated_at = utc_now()
        if self.metrics:
            self.metrics.record_step(agent_type.value, "completed" if step_ok else "error")

        await self._persist(session)

        next_task_type = None
        if next_agent is not None:
            next_task = self._queue_next_task(session, task, next_agent, history)
            next_task_type = next_task.task_type

        logger.info(
            f"Finished {agent_type.value} step. Next agent: "
            f"{next_agent.value if next_agent else 'None'}. Session status: {session.status.value}"
        )

        metadata = dict(response.metadata or {})
        metadata.update({
            "status": response.status.value,
            "next_agent": next_agent.value if next_agent else None,
            "next_task_type": next_task_type,
        })
        return OrchestratorResult(
            content=content,
            agent_type=agent_type,
            structured_output=response.data,
            metadata=metadata,
        )

    # =========================================================================
    # FEEDBACK
    # =========================================================================

    async def submit_feedback(
        self,
        session_id: str,
        message_id: str,
        rating: Optional[int] = None,
        correction: Optional[str] = None,
    ) -> ChatMessage:
        """
        Attach a rating and/or correction to an assistant message.

        The next handled message carries it to the agent as feedback
        context.

        Raises:
            ValueError: Neither field given, or an invalid rating
            StateNotFoundError: Unknown message
        """
        if rating is None and correction is None:
            raise ValueError("Either rating or correction must be provided")
        if rating is not None and rating not in VALID_RATINGS:
            raise ValueError(f"Rating must be one of {VALID_RATINGS}, got {rating}")

        messages = await self.sessions.get_messages(session_id)
        message = next((m for m in messages if m.id == message_id), None)
        if message is None:
            raise StateNotFoundError(f"Message {message_id} not found in session {session_id}")
        if message.role != MessageRole.ASSISTANT:
            raise ValueError("Feedback can only be given on assistant messages")

        if rating is not None:
            message.rating = rating
        if correction is not None:
            message.correction = correction

        try:
            await self.sessions.update_message(message)
        except StateManagerError as e:
            raise PersistenceError(f"Failed to store feedback for message {message_id}: {e}") from e

        logger.info(f"Feedback stored for message {message_id} in session {session_id}")
        return message

    # =========================================================================
    # EXPLICIT CAPABILITIES
    # =========================================================================

    async def run_test_generation(self, session_id: str, code_files: Dict[str, str],
                                  user_stories: List[Any]) -> Dict[str, Any]:
        """Generate tests on request. Returns an empty result on error."""
        logger.info(f"Explicit test generation for session {session_id}")
        try:
            result = await self.agents[AgentType.TEST].generate_tests(code_files, user_stories)
            logger.info(f"Test generation completed for session {session_id}: {result.get('test_framework')}")
            return result
        except Exception as e:
            logger.error(f"Error during test generation for session {session_id}: {e}")
            return {"explanation": f"Error triggering test generation: {e}", "test_files": []}

    async def run_test_simulation(self, session_id: str, code_files: Dict[str, str],
                                  test_files: Dict[str, str]) -> Dict[str, Any]:
        """Simulate test execution on request."""
        logger.info(f"Explicit test simulation for session {session_id}")
        try:
            result = await self.agents[AgentType.TEST].simulate_test_execution(code_files, test_files)
            logger.info(f"Test simulation completed for session {session_id}: success={result.get('success')}")
            return result
        except Exception as e:
            logger.error(f"Error during test simulation for session {session_id}: {e}")
            return {
                "success": False, "passed": 0, "failed": 0, "total": 0,
                "failed_tests": [], "summary": f"Error triggering test simulation: {e}",
            }

    async def run_test_fix_validation(
        self,
        session_id: str,
        code_files: Dict[str, str],
        previous_result: Dict[str, Any],
        original_code: Optional[str] = None,
        original_passing_tests: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Validate a test fix on request."""
        logger.info(f"Explicit test fix validation for session {session_id}")
        try:
            result = await self.agents[AgentType.TEST].validate_fix(
                code_files, previous_result, original_code, original_passing_tests
            )
            logger.info(f"Test fix validation completed for session {session_id}: valid={result.get('is_valid')}")
            return result
        except Exception as e:
            logger.error(f"Error during test fix validation for session {session_id}: {e}")
            return {"is_valid": False, "explanation": f"Error triggering test fix validation: {e}"}

    async def run_security_analysis(self, session_id: str, code_files: Dict[str, str],
                                    requirements_context: Optional[str] = None) -> Dict[str, Any]:
        """Analyze code for security risks on request."""
        logger.info(f"Explicit security analysis for session {session_id}")
        try:
            result = await self.agents[AgentType.SECURITY].analyze_code(code_files, requirements_context)
            risks = result.get("potential_risks_identified") or []
            logger.info(f"Security analysis completed for session {session_id}: {len(risks)} issue(s)")
            return result
        except Exception as e:
            logger.error(f"Error during security analysis for session {session_id}: {e}")
            return {"summary": f"Error triggering security analysis: {e}", "potential_risks_identified": []}

    async def run_security_fix_verification(
        self,
        session_id: str,
        code_files: Dict[str, str],
        previous_analysis: Dict[str, Any],
        original_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Verify security fixes on request."""
        logger.info(f"Explicit security fix verification for session {session_id}")
        try:
            result = await self.agents[AgentType.SECURITY].verify_fixes(
                code_files, previous_analysis, original_code
            )
            logger.info(f"Security fix verification completed for session {session_id}: {result.get('summary')}")
            return result
        except Exception as e:
            logger.error(f"Error during security fix verification for session {session_id}: {e}")
            return {
                "summary": f"Error triggering security fix verification: {e}",
                "verification_results": [],
                "new_issues_found": [],
            }

    # =========================================================================
    # PROMPT OPTIMIZATION
    # =========================================================================

    async def optimize_prompt(self, session_id: str, target_agent: AgentType,
                              original_prompt: str) -> str:
        """
        Rewrite a user prompt so target_agent can act on it directly.

        Uses the last messages of the session and its orchestrator
        context. Nothing is stored.

        Args:
            session_id: Session the prompt is meant for
            target_agent: Agent the prompt will be sent to
            original_prompt: Prompt as written by the user

        Returns:
            The optimized prompt

        Raises:
            StateNotFoundError: Unknown session
            OrchestratorError: Missing model layer or template, or no usable answer
        """
        logger.info(f"Optimizing prompt for session {session_id}, target agent: {target_agent.value}")
        if self.registry is None or self.prompt_loader is None:
            raise OrchestratorError("Prompt optimization needs a model registry and a prompt loader")

        session = await self.sessions.get_session(session_id)
        messages = await self.sessions.get_messages(session_id)

        template = self.prompt_loader.load_template("utility", "optimize_prompt")
        if template is None:
            logger.error("Prompt template utility/optimize_prompt not found")
            raise OrchestratorError("Prompt optimization template not found.")

        history = [message.to_dict() for message in messages[-OPTIMIZE_HISTORY_LIMIT:]]
        context = session.orchestrator_state.context
        prompt = self.prompt_loader.apply_variables(template, {
            "target_agent": target_agent.value,
            "original_prompt": original_prompt,
            "history": format_history(history, OPTIMIZE_HISTORY_LIMIT)
            if history else "No recent history available.",
            "workflow_context": to_json_text(context)
            if context else "No specific workflow context available.",
        })

        try:
            response = await self.registry.generate(prompt, OPTIMIZE_OPTIONS)
        except Exception as e:
            logger.error(f"Error during prompt optimization for session {session_id}: {e}")
            raise OrchestratorError(f"Failed to optimize prompt: {e}") from e

        optimized = (response.text or "").strip() if response is not None else ""
        if not optimized:
            logger.error(f"Model returned no optimized prompt for session {session_id}")
            raise OrchestratorError("Failed to get optimization from AI.")

        logger.info(f"Prompt optimized successfully for session {session_id}")
        return optimized

    # =========================================================================
    # HELPER METHODS
    # =========================================================================

    def _claim_pending_task(self, session_id: str) -> Optional[AgentTask]:
        """Take the session's queued tasks off the queue; return the newest."""
        pending = [task for task in self.queue.get_all() if task.workflow_id == session_id]
        if not pending:
            return None
        self.queue.remove_by_workflow(session_id)
        self._update_queue_depth()
        return max(pending, key=lambda task: task.created_at)

    def _queue_next_task(self, session: SessionRecord, parent: AgentTask,
                         next_agent: AgentType, history: List[ChatMessage]) -> AgentTask:
        task_input, task_type = prepare_next_task(
            next_agent, parent.agent_type, session.orchestrator_state.context
        )
        task_input["history"] = [message.to_dict() for message in history]
        task_input["feedback_context"] = parent.input.get("feedback_context")

        next_task = AgentTask(
            agent_type=next_agent,
            input=task_input,
            task_type=task_type,
            workflow_id=session.id,
            parent_task_id=parent.id,
        )
        self.queue.enqueue(next_task)
        self._update_queue_depth()
        logger.info(f"Queued {next_agent.value} task {next_task.id} ({task_type}) for the next message")
        return next_task

    def _update_queue_depth(self):
        if self.metrics:
            self.metrics.set_queue_depth(self.queue.size())

    def _set_session_status(self, session: SessionRecord, status: SessionStatus,
                            agent_type: AgentType):
        previous = session.status
        session.status = status
        if previous == status:
            return
        logger.info(f"Session {session.id}: {previous.value} -> {status.value}")
        if self.metrics:
            self.metrics.record_session_transition(previous.value, status.value)
        if self.audit:
            self.audit.log_state_transition(
                session.id, previous.value, status.value,
                trigger=f"{agent_type.value}_step", agent_type=agent_type.value,
            )

    async def _persist(self, session: SessionRecord):
        """Save the session; any failure is fatal."""
        try:
            await self.sessions.save_session(session)
        except StateManagerError as e:
            logger.critical(f"Failed to persist session {session.id}: {e}")
            if self.metrics:
                self.metrics.record_error("persistence", type(e).__name__)
            if self.audit:
                self.audit.log_error("persistence", type(e).__name__, str(e), session.id)
            raise PersistenceError(f"Failed to persist session {session.id}: {e}") from e

    async def _append(self, message: ChatMessage):
        try:
            await self.sessions.append_message(message)
        except StateManagerError as e:
            logger.critical(f"Failed to store message for session {message.session_id}: {e}")
            raise PersistenceError(f"Failed to store message: {e}") from e


def create_workflow_engine(
    agents: Dict[AgentType, AgentInterface],
    sessions: SessionManager,
    metrics=None,
    audit=None,
    config: Optional[Dict[str, Any]] = None,
    registry=None,
    prompt_loader=None,
) -> WorkflowEngine:
    """
    Create a workflow engine with its own task queue.

    Args:
        agents: Agent instance per type
        sessions: Session persistence manager
        metrics: Optional metrics collector
        audit: Optional audit logger
        config: Optional engine configuration (queue.max_size)
        registry: Optional model registry for prompt optimization
        prompt_loader: Optional prompt loader for prompt optimization

    Returns:
        Configured WorkflowEngine instance
    """
    config = config or {}
    queue = PriorityTaskQueue(max_size=config.get("queue", {}).get("max_size", 0))
    return WorkflowEngine(
        agents, sessions, queue=queue, metrics=metrics, audit=audit, config=config,
        registry=registry, prompt_loader=prompt_loader,
    )
