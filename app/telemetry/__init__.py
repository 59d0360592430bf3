"""
Telemetry Module

Provides Prometheus metrics for the avatar pipeline and the regeneration
trigger, and optional Sentry error tracking.
"""

from app.telemetry.metrics import (
    avatar_generation_total,
    avatar_ia_attempts_total,
    avatar_pipeline_duration_seconds,
    avatar_regeneration_total,
    record_generation,
    record_ia_attempt,
    record_regeneration,
    get_metrics_text,
)

__all__ = [
    "avatar_generation_total",
    "avatar_ia_attempts_total",
    "avatar_pipeline_duration_seconds",
    "avatar_regeneration_total",
    "record_generation",
    "record_ia_attempt",
    "record_regeneration",
    "get_metrics_text",
]
