# =============================================================================
# AGENTFORGE - MONITORING PACKAGE
# =============================================================================
"""
Monitoring Package

This package provides monitoring, metrics, and logging infrastructure
for the orchestrator.

Components:
    - Logger: Structured logging through structlog
    - Metrics: Prometheus metrics collection
    - Audit: Audit trail recording to JSONL
    - Health: Aggregated component health checks

Usage:
    from monitoring import setup_logging, MetricsCollector, AuditLogger

    # Setup logging
    setup_logging(level="INFO", fmt="json", log_dir="./logs")

    # Metrics
    metrics = MetricsCollector()
    metrics.record_llm_call("anthropic", "claude-3-5-haiku-20241022", 1500, 800, 3.2)

    # Audit trail
    audit = AuditLogger("./logs/audit.jsonl")
    audit.log_state_transition("session-1", "active", "completed", "security")

    # Health checks
    health = HealthCheck()
    health.register("sessions", session_manager.health_check)
    result = await health.check_all()
"""

# Logger
from monitoring.logger import (
    setup_logging,
    AuditLogger,
    LogContext,
    log_context,
    mask_sensitive_data,
    mask_dict,
)

# Metrics
from monitoring.metrics import (
    MetricsCollector,
    create_metrics_collector,
    estimate_cost,
    LLM_PRICING,
    HealthCheck,
)


__all__ = [
    # Logger
    "setup_logging",
    "AuditLogger",
    "LogContext",
    "log_context",
    "mask_sensitive_data",
    "mask_dict",
    # Metrics
    "MetricsCollector",
    "create_metrics_collector",
    "estimate_cost",
    "LLM_PRICING",
    # Health
    "HealthCheck",
]
