# =============================================================================
# AGENTFORGE - ORCHESTRATOR PACKAGE
# =============================================================================
"""
Orchestrator Package

This package contains the orchestration system that turns a user
requirement into reviewed code. The orchestrator is responsible for:

1. Routing each user message to the right agent
2. Building the agent's task from history and session context
3. Running the coupled follow-up task after a successful step
4. Choosing the next agent in the chain
5. Persisting sessions, steps and messages after every change

Package Structure:
    - main.py: Configuration, component wiring and CLI
    - engine/: Core orchestration engine
        - state_manager.py: State model and session persistence
        - routing.py: Agent routing rules
        - context_builder.py: Task input construction
        - continuation.py: Next-agent decisions
        - auxiliary.py: Follow-up tasks
        - workflow.py: The workflow engine
    - scheduler/: Priority queue of prepared tasks

Usage:
    ```python
    from orchestrator.main import Orchestrator, load_config

    orchestrator = Orchestrator(load_config("config/orchestrator.yaml"))
    await orchestrator.setup()
    session = await orchestrator.create_session("Todo API")
    answer = await orchestrator.send_message(session.id, "Build a todo list API")
    ```

Environment Variables:
    - ANTHROPIC_API_KEY / OPENAI_API_KEY: Hosted model credentials
    - OLLAMA_BASE_URL: Local Ollama server
    - STATE_BACKEND, STATE_FILE, REDIS_URL: Session persistence

For detailed configuration, see config/orchestrator.yaml
"""

__version__ = "1.0.0"
