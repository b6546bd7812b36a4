"""Prometheus metrics instrumentation for LoRaWatch."""

from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator, metrics

# Uplinks accepted by the worker pool
uplinks_total = Counter(
    "lorawatch_uplinks_total",
    "Total number of uplink events processed",
    ["outcome"],
)

# Decoder failures by reason
decode_failures_total = Counter(
    "lorawatch_decode_failures_total",
    "Total number of uplinks that failed to decode",
    ["reason"],
)

# Alarms fired
alarms_fired_total = Counter(
    "lorawatch_alarms_fired_total",
    "Total number of alarm notifications emitted",
    ["metric", "zone_category"],
)

# Automation outcomes
automations_total = Counter(
    "lorawatch_automations_total",
    "Total number of automation rule outcomes",
    ["trigger_type", "outcome"],
)

# Per-device evaluation duration
evaluation_duration = Histogram(
    "lorawatch_evaluation_seconds",
    "Time spent evaluating a single uplink",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


def setup_metrics(app) -> Instrumentator:
    """Set up Prometheus metrics instrumentation for FastAPI app."""
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        excluded_handlers=["/health", "/metrics"],
        env_var_name="METRICS_ENABLED",
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="",
            metric_subsystem="",
        )
    )

    instrumentator.instrument(app)

    return instrumentator


def expose_metrics(app, instrumentator: Instrumentator) -> None:
    """Expose the /metrics endpoint."""
    instrumentator.expose(app, include_in_schema=False, should_gzip=True)


# Helper functions for updating custom metrics


def record_uplink(outcome: str) -> None:
    """Increment processed uplink counter."""
    uplinks_total.labels(outcome=outcome).inc()


def record_decode_failure(reason: str) -> None:
    """Increment decode failure counter."""
    decode_failures_total.labels(reason=reason).inc()


def record_alarm_fired(metric: str, zone_category: int) -> None:
    """Increment fired alarm counter."""
    alarms_fired_total.labels(metric=metric, zone_category=str(zone_category)).inc()


def record_automation(trigger_type: str, outcome: str) -> None:
    """Increment automation outcome counter."""
    automations_total.labels(trigger_type=trigger_type, outcome=outcome).inc()


def observe_evaluation(duration: float) -> None:
    """Record per-device evaluation duration."""
    evaluation_duration.observe(duration)
