# =============================================================================
# AGENTFORGE - STRUCTURED LOGGING
# =============================================================================
"""
Structured Logging Module

Provides consistent, structured logging across all components.

Modules keep using ``logging.getLogger(__name__)``; setup_logging routes
every stdlib record through a structlog ProcessorFormatter so records
carry bound context (session_id, agent_type), timestamps and masked
secrets, rendered as JSON or console text.

Features:
    - JSON-formatted logs for easy parsing
    - Contextual information bound per session
    - Sensitive data masking
    - File output with rotation
    - Audit trail logger (JSONL)
"""

import json
import logging
import logging.handlers
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars, merge_contextvars


# =============================================================================
# SENSITIVE DATA MASKING
# =============================================================================

# Keys whose values should be masked
SENSITIVE_KEYS = frozenset([
    "token", "api_key", "password", "secret", "credential",
    "private_key", "access_token", "refresh_token", "authorization",
    "anthropic_api_key", "openai_api_key", "redis_url",
])

# Key suffixes that also mark a value as sensitive
SENSITIVE_SUFFIXES = ("_token", "_key", "_secret", "_password")


def _is_sensitive(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower().replace("-", "_")
    return key_lower in SENSITIVE_KEYS or key_lower.endswith(SENSITIVE_SUFFIXES)


def _mask_value(value: Any) -> str:
    """Mask a sensitive value, keeping first/last 4 chars if long enough."""
    if not isinstance(value, str):
        return "****"
    if len(value) > 8:
        return value[:4] + "****" + value[-4:]
    return "****"


def mask_sensitive_data(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Structlog processor that masks sensitive data in log events.

    Recursively processes dictionaries to mask values whose keys
    match known sensitive patterns.
    """

    def _process(d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            if _is_sensitive(key):
                result[key] = _mask_value(value)
            elif isinstance(value, dict):
                result[key] = _process(value)
            else:
                result[key] = value
        return result

    return _process(event_dict)


def mask_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Public helper to mask sensitive data in an arbitrary dict.

    Useful outside the structlog pipeline (e.g. logging loaded config).
    """
    return mask_sensitive_data(None, "", data)


# =============================================================================
# LOGGING SETUP
# =============================================================================


def _shared_processors(mask_sensitive: bool) -> list:
    processors: list = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if mask_sensitive:
        processors.append(mask_sensitive_data)
    return processors


def _formatter(renderer, mask_sensitive: bool) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(mask_sensitive),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    mask_sensitive: bool = True,
    max_bytes: int = 100 * 1024 * 1024,  # 100 MB
    backup_count: int = 10,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Console output format, ``"json"`` or ``"text"``.
        log_file: Explicit log file path.  Overrides *log_dir*.
        log_dir: Directory for log files.  When set (and *log_file* is
            ``None``), logs are written to ``<log_dir>/orchestrator.log``.
        mask_sensitive: Mask sensitive values in logs.
        max_bytes: Max file size before rotation.
        backup_count: Number of rotated files to keep.

    Returns:
        Root logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    # Resolve log file path
    resolved_log_file: Optional[str] = log_file
    if resolved_log_file is None and log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        resolved_log_file = str(Path(log_dir) / "orchestrator.log")

    # structlog loggers (structlog.get_logger) feed into stdlib handlers
    structlog.configure(
        processors=_shared_processors(mask_sensitive) + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(colors=False)

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    # Console handler
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric_level)
    console.setFormatter(_formatter(console_renderer, mask_sensitive))
    root.addHandler(console)

    # File handler (with rotation), always JSON
    if resolved_log_file:
        Path(resolved_log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            resolved_log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # capture everything to file
        file_handler.setFormatter(
            _formatter(structlog.processors.JSONRenderer(), mask_sensitive)
        )
        root.addHandler(file_handler)

    # Suppress noisy third-party loggers
    for name in ("urllib3", "httpx", "httpcore", "anthropic", "openai", "aiohttp"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


# =============================================================================
# LOG CONTEXT MANAGER
# =============================================================================


class LogContext:
    """
    Context manager that binds key-value pairs to all logs emitted
    inside the block.

    Usage::

        with LogContext(session_id="abc", agent_type="coder"):
            logger.info("Starting work")
            # All logs include session_id and agent_type
    """

    def __init__(self, **kwargs: Any):
        self.context = {k: v for k, v in kwargs.items() if v is not None}

    def __enter__(self) -> "LogContext":
        bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_contextvars(*self.context.keys())


@contextmanager
def log_context(**kwargs: Any):
    """Functional alias for :class:`LogContext`."""
    ctx = LogContext(**kwargs)
    ctx.__enter__()
    try:
        yield ctx
    finally:
        ctx.__exit__(None, None, None)


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Special logger for audit trail events.

    Records structured events to a JSONL file (one JSON object per line)
    for debugging and post-mortem analysis.

    Event categories:
        - ``state_transition``: Session status changes
        - ``agent_execution``: Agent handle() calls
        - ``llm_call``: Adapter calls
        - ``error``: Failures

    Usage::

        audit = AuditLogger("./logs/audit.jsonl")
        audit.log_state_transition("session-1", "active", "completed", "security")
    """

    def __init__(
        self,
        output_path: str = "./logs/audit.jsonl",
        max_bytes: int = 500 * 1024 * 1024,  # 500 MB
        backup_count: int = 30,
    ):
        self.output_path = output_path
        resolved = Path(output_path).resolve()
        self._logger = logging.getLogger(f"audit.{resolved}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False  # don't echo to root logger

        # One handler per audit file
        if not self._logger.handlers:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                str(resolved),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    # -----------------------------------------------------------------
    # Event writers
    # -----------------------------------------------------------------

    def _write_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write a single audit event."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **data,
        }
        self._logger.info(json.dumps(event, default=str))

    def log_state_transition(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
        trigger: str,
        agent_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a session status transition."""
        self._write_event("state_transition", {
            "session_id": session_id,
            "from_state": from_state,
            "to_state": to_state,
            "trigger": trigger,
            "agent_type": agent_type,
            **(details or {}),
        })

    def log_agent_execution(
        self,
        agent_type: str,
        session_id: str,
        result: str,
        duration: float,
        output_summary: str = "",
    ) -> None:
        """Log an agent execution."""
        self._write_event("agent_execution", {
            "agent_type": agent_type,
            "session_id": session_id,
            "result": result,
            "duration_seconds": round(duration, 2),
            "output_summary": output_summary,
        })

    def log_llm_call(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        duration: float,
        cost: float = 0.0,
    ) -> None:
        """Log an LLM API call."""
        self._write_event("llm_call", {
            "provider": provider,
            "model": model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "duration_seconds": round(duration, 2),
            "estimated_cost": round(cost, 6),
        })

    def log_error(
        self,
        component: str,
        error_type: str,
        message: str,
        session_id: Optional[str] = None,
    ) -> None:
        """Log an error event."""
        self._write_event("error", {
            "component": component,
            "error_type": error_type,
            "message": message,
            "session_id": session_id,
        })
