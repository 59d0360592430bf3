"""
Prometheus metrics for the avatar pipeline.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- outcome: "completed", "failed", "skipped"
- result:  "success", "error"

FORBIDDEN AS LABELS: player IDs, object keys, URLs, error messages.
Use logs for per-player debugging.
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PIPELINE METRICS
# =============================================================================

avatar_generation_total = Counter(
    "avatar_generation_total",
    "Avatar pipeline invocations by final outcome",
    ["outcome"],
)

avatar_ia_attempts_total = Counter(
    "avatar_ia_attempts_total",
    "Image transform attempts by result",
    ["result"],
)

avatar_pipeline_duration_seconds = Histogram(
    "avatar_pipeline_duration_seconds",
    "End-to-end pipeline duration in seconds",
    ["outcome"],
    buckets=[1, 2.5, 5, 10, 20, 30, 60, 120, 300],
)

# =============================================================================
# REGENERATION METRICS
# =============================================================================

avatar_regeneration_total = Counter(
    "avatar_regeneration_total",
    "Regeneration trigger firings by outcome",
    ["outcome"],
)


# =============================================================================
# HELPERS
# =============================================================================


def record_generation(outcome: str, duration_seconds: float) -> None:
    """Record one finished pipeline invocation."""
    try:
        avatar_generation_total.labels(outcome=outcome).inc()
        avatar_pipeline_duration_seconds.labels(outcome=outcome).observe(duration_seconds)
    except Exception as e:
        logger.warning(f"Failed to record generation metric: {e}")


def record_ia_attempt(success: bool) -> None:
    try:
        avatar_ia_attempts_total.labels(result="success" if success else "error").inc()
    except Exception as e:
        logger.warning(f"Failed to record IA attempt metric: {e}")


def record_regeneration(outcome: str) -> None:
    try:
        avatar_regeneration_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record regeneration metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
