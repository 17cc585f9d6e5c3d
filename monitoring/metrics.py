# =============================================================================
# AGENTFORGE - METRICS COLLECTION
# =============================================================================
"""
Metrics Collection Module

Collects and exports Prometheus metrics for the orchestrator.

Each MetricsCollector owns its own CollectorRegistry, so several
collectors (one per process, or one per test) never clash on metric
names.

Metric Categories:
    - LLM metrics: Requests, fallbacks, token usage, costs, latency
    - Agent metrics: Executions by outcome
    - Orchestrator metrics: Steps, auxiliary tasks, session statuses
    - System metrics: Available models, queue depth, errors, uptime
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LLM COST ESTIMATOR
# =============================================================================

# Pricing per 1K tokens (USD) - update as providers adjust rates
LLM_PRICING: Dict[str, Dict[str, float]] = {
    # Anthropic
    "claude-sonnet-4-20250514": {"input": 0.003, "output": 0.015},
    "claude-3-5-sonnet-20241022": {"input": 0.003, "output": 0.015},
    "claude-3-5-haiku-20241022": {"input": 0.001, "output": 0.005},
    "claude-3-opus-20240229": {"input": 0.015, "output": 0.075},
    "claude-3-haiku-20240307": {"input": 0.00025, "output": 0.00125},
    # OpenAI
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}

# Fallback pricing for unknown hosted models
_DEFAULT_PRICING = {"input": 0.01, "output": 0.03}

# Providers that run locally and cost nothing per token
FREE_PROVIDERS = {"ollama"}


def estimate_cost(model: str, input_tokens: int, output_tokens: int,
                  provider: Optional[str] = None) -> float:
    """
    Estimate the dollar cost of an LLM call.

    Args:
        model: Model name.
        input_tokens: Number of input tokens.
        output_tokens: Number of output tokens.
        provider: Provider key; local providers are free.

    Returns:
        Estimated cost in USD.
    """
    if provider in FREE_PROVIDERS:
        return 0.0

    # Try exact match, then prefix match
    rates = LLM_PRICING.get(model)
    if rates is None:
        for key in LLM_PRICING:
            if model.startswith(key.rsplit("-", 1)[0]):
                rates = LLM_PRICING[key]
                break
    if rates is None:
        rates = _DEFAULT_PRICING

    return (input_tokens * rates["input"] + output_tokens * rates["output"]) / 1000


# =============================================================================
# METRICS COLLECTOR
# =============================================================================


class MetricsCollector:
    """
    Central metrics collector for the orchestrator.

    Usage::

        metrics = MetricsCollector()
        metrics.record_llm_call("anthropic", "claude-3-5-haiku-20241022", 1500, 800, 3.2, "success")
        metrics.record_agent_execution("coder", "success")
        metrics.record_step("coder", "completed")
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 registry: Optional[CollectorRegistry] = None):
        """
        Initialize all metric collectors.

        Args:
            config: Optional metrics configuration dict.
            registry: Registry to register into; a private one by default.
        """
        self.config = config or {}
        self.registry = registry or CollectorRegistry()
        self._start_time = time.monotonic()

        # LLM metrics
        self.llm_requests = Counter(
            "llm_requests_total",
            "Total LLM adapter calls",
            ["provider", "model", "result"],
            registry=self.registry,
        )
        self.llm_fallbacks = Counter(
            "llm_fallbacks_total",
            "Times the dispatcher moved on to a lower-priority model",
            ["model_id"],
            registry=self.registry,
        )
        self.llm_tokens = Counter(
            "llm_tokens_total",
            "Total tokens used",
            ["model", "token_type"],
            registry=self.registry,
        )
        self.llm_latency = Histogram(
            "llm_request_duration_seconds",
            "LLM request duration",
            ["provider"],
            buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
            registry=self.registry,
        )
        self.llm_cost = Counter(
            "llm_cost_dollars",
            "Estimated LLM cost in dollars",
            ["model"],
            registry=self.registry,
        )
        self.models_available = Gauge(
            "models_available",
            "Models in the available set after the last discovery",
            registry=self.registry,
        )

        # Agent metrics
        self.agent_executions = Counter(
            "agent_executions_total",
            "Total agent handle() calls",
            ["agent_type", "result"],
            registry=self.registry,
        )
        self.agent_duration = Histogram(
            "agent_execution_duration_seconds",
            "Agent handle() duration",
            ["agent_type"],
            buckets=[1, 5, 15, 30, 60, 120, 300],
            registry=self.registry,
        )

        # Orchestrator metrics
        self.orchestrator_steps = Counter(
            "orchestrator_steps_total",
            "Closed orchestrator steps",
            ["agent_type", "status"],
            registry=self.registry,
        )
        self.auxiliary_tasks = Counter(
            "auxiliary_tasks_total",
            "Auxiliary follow-up tasks",
            ["task", "result"],
            registry=self.registry,
        )
        self.session_transitions = Counter(
            "session_status_transitions_total",
            "Session status changes",
            ["from_status", "to_status"],
            registry=self.registry,
        )

        # System metrics
        self.queue_depth = Gauge(
            "queue_depth",
            "Pending continuation tasks",
            registry=self.registry,
        )
        self.errors_total = Counter(
            "errors_total",
            "Total errors",
            ["component", "error_type"],
            registry=self.registry,
        )
        self.system_info = Info(
            "system",
            "System information",
            registry=self.registry,
        )

    # =====================================================================
    # RECORDING HELPERS
    # =====================================================================

    # -- LLM metrics ------------------------------------------------------

    def record_llm_call(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        duration: float,
        result: str = "success",
    ) -> float:
        """Record an LLM adapter call. Returns the estimated cost."""
        self.llm_requests.labels(provider=provider, model=model, result=result).inc()
        self.llm_latency.labels(provider=provider).observe(duration)

        if result != "success":
            return 0.0

        self.llm_tokens.labels(model=model, token_type="input").inc(input_tokens)
        self.llm_tokens.labels(model=model, token_type="output").inc(output_tokens)

        cost = estimate_cost(model, input_tokens, output_tokens, provider)
        self.llm_cost.labels(model=model).inc(cost)
        return cost

    def record_fallback(self, model_id: str) -> None:
        """Record that model_id failed and the cascade moved on."""
        self.llm_fallbacks.labels(model_id=model_id).inc()

    def set_models_available(self, count: int) -> None:
        self.models_available.set(count)

    # -- Agent / orchestrator metrics --------------------------------------

    def record_agent_execution(self, agent_type: str, result: str,
                               duration: Optional[float] = None) -> None:
        """Record a completed agent handle() call."""
        self.agent_executions.labels(agent_type=agent_type, result=result).inc()
        if duration is not None:
            self.agent_duration.labels(agent_type=agent_type).observe(duration)

    def record_step(self, agent_type: str, status: str) -> None:
        """Record a closed orchestrator step."""
        self.orchestrator_steps.labels(agent_type=agent_type, status=status).inc()

    def record_auxiliary_task(self, task: str, result: str) -> None:
        self.auxiliary_tasks.labels(task=task, result=result).inc()

    def record_session_transition(self, from_status: str, to_status: str) -> None:
        self.session_transitions.labels(from_status=from_status, to_status=to_status).inc()

    # -- System metrics ----------------------------------------------------

    def set_queue_depth(self, depth: int) -> None:
        """Set the current queue depth."""
        self.queue_depth.set(depth)

    def record_error(self, component: str, error_type: str) -> None:
        """Record an error occurrence."""
        self.errors_total.labels(component=component, error_type=error_type).inc()

    def set_system_info(self, **info: str) -> None:
        """Set system information labels."""
        self.system_info.info(info)

    def get_uptime(self) -> float:
        """Return seconds since this collector was created."""
        return time.monotonic() - self._start_time

    # =====================================================================
    # EXPORT / SNAPSHOT
    # =====================================================================

    def start_http_server(self, port: int = 9100) -> None:
        """Start an HTTP server that exposes this collector's registry."""
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics HTTP server started on port {port}")

    def export(self) -> bytes:
        """Prometheus text exposition of this collector's registry."""
        return generate_latest(self.registry)

    def get_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of one sample, 0.0 when never recorded."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def snapshot(self) -> Dict[str, Any]:
        """
        Return a plain dict snapshot of counter and gauge samples.

        Useful for logging, health checks and tests.
        """
        result: Dict[str, Any] = {"uptime_seconds": round(self.get_uptime(), 1)}

        for family in self.registry.collect():
            if family.type not in ("counter", "gauge"):
                continue
            for sample in family.samples:
                if sample.name.endswith("_created"):
                    continue
                if sample.labels:
                    label_text = ",".join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                    result[f"{sample.name}{{{label_text}}}"] = sample.value
                else:
                    result[sample.name] = sample.value

        return result


# =============================================================================
# HEALTH CHECKS
# =============================================================================


class HealthCheck:
    """
    System health checker that aggregates component statuses.

    Usage::

        health = HealthCheck()
        health.register("models", registry.health_check)
        health.register("sessions", session_manager.health_check)
        result = await health.check_all()
    """

    def __init__(self):
        self._checks: Dict[str, Any] = {}
        self._critical: Dict[str, bool] = {}

    def register(self, name: str, check_fn, critical: bool = True) -> None:
        """
        Register a health check.

        Args:
            name: Component name.
            check_fn: Async callable returning a dict with at least
                ``{"healthy": bool}``.
            critical: Whether failure of this check means the system
                is unhealthy overall.
        """
        self._checks[name] = check_fn
        self._critical[name] = critical

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all registered health checks.

        Returns:
            Aggregated health status dict.
        """
        results: Dict[str, Any] = {}
        overall_healthy = True

        for name, check_fn in self._checks.items():
            try:
                result = await check_fn()
                results[name] = result
                if not result.get("healthy", False) and self._critical.get(name, True):
                    overall_healthy = False
            except Exception as e:
                results[name] = {"healthy": False, "error": str(e)}
                if self._critical.get(name, True):
                    overall_healthy = False

        return {
            "healthy": overall_healthy,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": results,
        }

    async def check_one(self, name: str) -> Dict[str, Any]:
        """Run a single named health check."""
        check_fn = self._checks.get(name)
        if check_fn is None:
            return {"healthy": False, "error": f"Unknown check: {name}"}
        try:
            return await check_fn()
        except Exception as e:
            return {"healthy": False, "error": str(e)}


# =============================================================================
# FACTORY
# =============================================================================


def create_metrics_collector(config: Optional[Dict[str, Any]] = None) -> MetricsCollector:
    """
    Create a MetricsCollector from configuration.

    Args:
        config: metrics section of orchestrator.yaml.

    Returns:
        Configured MetricsCollector.
    """
    config = config or {}
    collector = MetricsCollector(config)

    if config.get("enabled", False):
        port = config.get("port", 9100)
        try:
            collector.start_http_server(port)
        except OSError as e:
            logger.warning(f"Could not start metrics server on port {port}: {e}")

    return collector
