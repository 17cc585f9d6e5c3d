# =============================================================================
# AGENTFORGE - TEST PACKAGE
# =============================================================================
"""
Test Package

This package contains tests for AgentForge.

Test Structure:
    tests/
    ├── __init__.py               # This file
    ├── conftest.py               # Fake adapters, scripted LLM, fixtures
    ├── test_llm_client.py        # Adapter data structures
    ├── test_model_registry.py    # Discovery and fallback dispatch
    ├── test_prompt_loader.py     # Template loading and substitution
    ├── test_output_handler.py    # JSON extraction and shape checks
    ├── test_agents.py            # Product, Coder, Test and Security agents
    ├── test_routing.py           # Agent routing rules
    ├── test_context_builder.py   # Task input construction
    ├── test_continuation.py      # Next-agent decisions
    ├── test_auxiliary.py         # Follow-up tasks
    ├── test_state_manager.py     # State model and session backends
    ├── test_queue_manager.py     # Priority task queue
    ├── test_workflow.py          # Workflow engine, end to end
    ├── test_monitoring.py        # Metrics, health checks, audit trail
    └── test_main.py              # Configuration and CLI

Running Tests:
    # Run all tests
    pytest

    # Run specific test file
    pytest tests/test_workflow.py -v

    # Run with coverage
    pytest tests/ --cov=orchestrator --cov=agents --cov=monitoring

No test talks to a real model or Redis server: LLM calls are scripted
and the Redis backend is exercised through a mocked client.
"""
