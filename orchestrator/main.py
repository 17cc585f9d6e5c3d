# =============================================================================
# AGENTFORGE - ORCHESTRATOR MAIN ENTRY POINT
# =============================================================================
"""
Orchestrator Main Module

This is the entry point for the orchestrator service. It loads the
configuration, wires all components together and runs an interactive
chat session on the terminal.

Chat commands:
    /feedback <1|0|-1> [correction]   Rate the last answer
    /optimize <agent> <prompt>        Rewrite a prompt for an agent
    /status                           Show component health
    /reload                           Rediscover available models
    /quit                             Leave the session

Usage:
    agentforge
    python -m orchestrator.main --config config/orchestrator.yaml
    python -m orchestrator.main --list-models
    python -m orchestrator.main --session <id> --debug
"""

import argparse
import asyncio
import copy
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from agents import AgentType, create_agents
from agents.base.llm_client import create_default_adapters
from agents.base.model_registry import ModelRegistry
from agents.base.prompt_loader import PromptLoader
from monitoring.logger import AuditLogger, setup_logging
from monitoring.metrics import HealthCheck, MetricsCollector, create_metrics_collector
from orchestrator.engine.errors import OrchestratorError, PersistenceError
from orchestrator.engine.state_manager import (
    ChatMessage,
    SessionManager,
    SessionRecord,
)
from orchestrator.engine.workflow import WorkflowEngine, create_workflow_engine

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

# Environment variable -> config key path
ENV_MAPPINGS: Dict[str, Tuple[str, ...]] = {
    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "LOG_DIR": ("logging", "dir"),
    # LLM
    "MODELS_CONFIG_PATH": ("llm", "models_config"),
    "LLM_REQUEST_TIMEOUT": ("llm", "request_timeout"),
    # Prompts
    "PROMPTS_PATH": ("prompts", "path"),
    # Persistence
    "STATE_BACKEND": ("persistence", "backend"),
    "STATE_FILE": ("persistence", "file", "path"),
    "REDIS_URL": ("persistence", "redis", "url"),
    # Metrics
    "METRICS_ENABLED": ("metrics", "enabled"),
    "METRICS_PORT": ("metrics", "port"),
    # Audit
    "AUDIT_LOG_PATH": ("audit", "path"),
}

DEFAULTS: Dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "format": "text",
        "dir": None,
        "mask_sensitive": True,
    },
    "llm": {
        "models_config": "config/models.yaml",
        "request_timeout": 120,
        "max_retries": 2,
    },
    "prompts": {
        "path": "./prompts",
    },
    "persistence": {
        "backend": "file",
        "file": {
            "path": "./state/sessions.json",
            "backup_enabled": True,
            "backup_count": 5,
        },
        "redis": {
            "url": "redis://localhost:6379",
            "key_prefix": "agentforge",
            "ttl_seconds": 0,
        },
    },
    "queue": {
        "max_size": 0,
    },
    "metrics": {
        "enabled": False,
        "port": 9100,
    },
    "audit": {
        "enabled": True,
        "path": "./logs/audit.jsonl",
    },
}


def _convert_env_value(value: str) -> Any:
    """Convert numeric and boolean strings."""
    if value.isdigit():
        return int(value)
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _apply_defaults(config: Dict[str, Any], defaults: Dict[str, Any]) -> None:
    for key, default_value in defaults.items():
        if key not in config or (config[key] is None and isinstance(default_value, dict)):
            config[key] = copy.deepcopy(default_value)
        elif isinstance(default_value, dict) and isinstance(config[key], dict):
            _apply_defaults(config[key], default_value)


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """
    Load configuration from YAML file and environment variables.

    Environment variables override YAML values; defaults fill the rest.

    Args:
        config_path: Path to orchestrator.yaml

    Returns:
        Merged configuration dictionary
    """
    config: Dict[str, Any] = {}

    # Load YAML config if exists
    if config_path and Path(config_path).exists():
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded config from {config_path}")
    else:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    # Environment variable overrides
    for env_var, key_path in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        section = config
        for key in key_path[:-1]:
            if not isinstance(section.get(key), dict):
                section[key] = {}
            section = section[key]
        section[key_path[-1]] = _convert_env_value(value)

    # Apply defaults
    _apply_defaults(config, DEFAULTS)

    return config


# =============================================================================
# ORCHESTRATOR CLASS
# =============================================================================


class Orchestrator:
    """
    Wires the system together and exposes the chat operations.

    This class is responsible for:
    1. Initializing all system components
    2. Discovering available models
    3. Creating sessions and routing messages through the workflow engine
    4. Reporting health and shutting down cleanly
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the orchestrator with configuration.

        Args:
            config: Merged configuration dictionary
        """
        self.config = config
        self._running = False

        # Components (initialized in setup())
        self.metrics: Optional[MetricsCollector] = None
        self.audit: Optional[AuditLogger] = None
        self.registry: Optional[ModelRegistry] = None
        self.prompt_loader: Optional[PromptLoader] = None
        self.sessions: Optional[SessionManager] = None
        self.workflow_engine: Optional[WorkflowEngine] = None
        self.health = HealthCheck()

    async def setup(self) -> None:
        """
        Initialize all orchestrator components.

        This must be called before any other operation.
        """
        logger.info("Initializing orchestrator components...")

        # 1. Metrics and audit trail
        self.metrics = create_metrics_collector(self.config.get("metrics", {}))
        self.metrics.set_system_info(
            version="1.0.0",
            state_backend=str(self.config.get("persistence", {}).get("backend", "file")),
        )
        audit_config = self.config.get("audit", {})
        if audit_config.get("enabled", True):
            self.audit = AuditLogger(audit_config.get("path", "./logs/audit.jsonl"))

        # 2. Model registry
        llm_config = self.config.get("llm", {})
        adapters = create_default_adapters(
            timeout=float(llm_config.get("request_timeout", 120)),
            max_retries=int(llm_config.get("max_retries", 2)),
        )
        self.registry = ModelRegistry(
            adapters,
            llm_config.get("models_config"),
            metrics=self.metrics,
            audit=self.audit,
        )
        await self.reload_models()

        # 3. Prompts and agents
        self.prompt_loader = PromptLoader(self.config.get("prompts", {}).get("path"))
        agents = create_agents(self.registry, self.prompt_loader)
        logger.info(f"Agents initialized: {', '.join(a.value for a in agents)}")

        # 4. Session store
        self.sessions = await SessionManager.create(self.config)
        logger.info("Session manager initialized")

        # 5. Workflow engine
        self.workflow_engine = create_workflow_engine(
            agents,
            self.sessions,
            metrics=self.metrics,
            audit=self.audit,
            config=self.config,
            registry=self.registry,
            prompt_loader=self.prompt_loader,
        )

        self.health.register("models", self.registry.health_check)
        self.health.register("sessions", self.sessions.health_check)

        self._running = True
        logger.info("All orchestrator components initialized successfully")

    async def reload_models(self) -> int:
        """Rediscover available models. Returns how many are available."""
        count = await self.registry.reload()
        if self.metrics:
            self.metrics.set_models_available(count)
        if count == 0:
            logger.warning("No LLM model is available; agents will answer with errors")
        else:
            logger.info(f"{count} model(s) available")
        return count

    async def create_session(self, title: Optional[str] = None) -> SessionRecord:
        return await self.sessions.create_session(title)

    async def send_message(self, session_id: str, content: str) -> ChatMessage:
        """Process a user message and return the assistant's answer."""
        return await self.workflow_engine.process_message(session_id, content)

    async def submit_feedback(self, session_id: str, message_id: str,
                              rating: Optional[int] = None,
                              correction: Optional[str] = None) -> ChatMessage:
        return await self.workflow_engine.submit_feedback(session_id, message_id, rating, correction)

    async def optimize_prompt(self, session_id: str, target_agent: AgentType,
                              original_prompt: str) -> str:
        return await self.workflow_engine.optimize_prompt(session_id, target_agent, original_prompt)

    async def get_status(self) -> Dict[str, Any]:
        """Get current orchestrator status."""
        health = await self.health.check_all()
        return {
            "running": self._running,
            "health": health,
            "models": self.registry.get_available_models() if self.registry else [],
            "queued_tasks": self.workflow_engine.queue.size() if self.workflow_engine else 0,
            "metrics": self.metrics.snapshot() if self.metrics else {},
        }

    async def stop(self) -> None:
        """Gracefully stop the orchestrator."""
        if not self._running:
            return
        logger.info("Stopping orchestrator...")
        self._running = False

        try:
            if self.registry:
                await self.registry.close()
        except Exception as e:
            logger.warning(f"Model registry cleanup failed: {e}")

        try:
            if self.sessions:
                await self.sessions.close()
        except Exception as e:
            logger.warning(f"Session manager cleanup failed: {e}")

        logger.info("Cleanup complete")

    # =========================================================================
    # INTERACTIVE CHAT
    # =========================================================================

    async def run_interactive(
        self,
        session_id: Optional[str] = None,
        read_line: Optional[Callable[[str], str]] = None,
        write: Callable[[str], None] = print,
    ) -> str:
        """
        Chat with the agents until /quit or end of input.

        Args:
            session_id: Session to resume (a new one is created if None)
            read_line: Blocking line reader (defaults to input())
            write: Output function

        Returns:
            The session id
        """
        read_line = read_line or input

        if session_id:
            session = await self.sessions.get_session(session_id)
        else:
            session = await self.create_session()
        write(f"Session {session.id} ({session.status.value}). Type /quit to leave.")

        last_answer: Optional[ChatMessage] = None
        while self._running:
            try:
                line = await asyncio.to_thread(read_line, "you> ")
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue
            if line == "/quit":
                break

            try:
                if line == "/status":
                    status = await self.get_status()
                    write(yaml.safe_dump(status["health"], sort_keys=False))
                elif line == "/reload":
                    write(f"{await self.reload_models()} model(s) available")
                elif line.startswith("/feedback"):
                    if last_answer is None:
                        write("Nothing to rate yet.")
                        continue
                    rating, correction = _parse_feedback(line)
                    await self.submit_feedback(session.id, last_answer.id, rating, correction)
                    write("Feedback recorded; it will be used for the next message.")
                elif line.startswith("/optimize"):
                    target_agent, original_prompt = _parse_optimize(line)
                    write(await self.optimize_prompt(session.id, target_agent, original_prompt))
                else:
                    last_answer = await self.send_message(session.id, line)
                    agent = last_answer.agent_type.value if last_answer.agent_type else "system"
                    write(f"[{agent}] {last_answer.content}")
                    next_agent = last_answer.metadata.get("next_agent")
                    if next_agent:
                        write(f"(next: {next_agent}, send any message to continue)")
            except PersistenceError:
                raise
            except (OrchestratorError, ValueError) as e:
                write(f"Error: {e}")

        return session.id


def _parse_feedback(line: str) -> Tuple[Optional[int], Optional[str]]:
    """Parse '/feedback <rating> [correction]'."""
    parts = line.split(maxsplit=2)[1:]
    if not parts:
        raise ValueError("Usage: /feedback <1|0|-1> [correction]")
    try:
        rating = int(parts[0])
    except ValueError:
        return None, " ".join(parts)
    return rating, parts[1] if len(parts) > 1 else None


def _parse_optimize(line: str) -> Tuple[AgentType, str]:
    """Parse '/optimize <agent> <prompt>'."""
    parts = line.split(maxsplit=2)[1:]
    if len(parts) < 2:
        raise ValueError("Usage: /optimize <product|coder|test|security> <prompt>")
    try:
        target_agent = AgentType(parts[0].lower())
    except ValueError:
        raise ValueError(f"Unknown agent '{parts[0]}'. Use product, coder, test or security.")
    return target_agent, parts[1]


# =============================================================================
# CLI ARGUMENT PARSING
# =============================================================================


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AgentForge - Multi-agent requirement-to-code orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        default="config/orchestrator.yaml",
        help="Path to configuration file (default: config/orchestrator.yaml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="Discover and list available models, then exit",
    )
    parser.add_argument(
        "--session",
        default=None,
        help="Resume an existing session by id",
    )

    return parser.parse_args(argv)


# =============================================================================
# SIGNAL HANDLING
# =============================================================================


def setup_signal_handlers(orchestrator: Orchestrator, loop: asyncio.AbstractEventLoop) -> None:
    """Setup signal handlers for graceful shutdown."""

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating shutdown...")
        loop.create_task(orchestrator.stop())

    # Only set signal handlers if running on Unix-like systems
    if sys.platform != "win32":
        signal.signal(signal.SIGTERM, signal_handler)


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


async def async_main(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """Async entry point for the orchestrator."""
    orchestrator = Orchestrator(config)

    loop = asyncio.get_running_loop()
    setup_signal_handlers(orchestrator, loop)

    try:
        await orchestrator.setup()

        if args.list_models:
            models = orchestrator.registry.get_available_models()
            if not models:
                print("No models available.")
            for model in models:
                print(f"{model['id']} (priority {model['priority']})")
            return

        await orchestrator.run_interactive(args.session)

    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        await orchestrator.stop()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    config = load_config(args.config)
    log_config = config["logging"]
    setup_logging(
        level="DEBUG" if args.debug else log_config.get("level", "INFO"),
        fmt=log_config.get("format", "text"),
        log_dir=log_config.get("dir"),
        mask_sensitive=log_config.get("mask_sensitive", True),
    )

    logger.info("=" * 60)
    logger.info("AgentForge - Orchestrator")
    logger.info("=" * 60)

    try:
        asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        logger.info("Orchestrator stopped by user")
    except Exception as e:
        logger.critical(f"Orchestrator failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
