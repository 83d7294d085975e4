from __future__ import annotations

from rlprobe.metrics.aggregator import RunMetrics, summarize_latencies
from rlprobe.metrics.models import (
    Check,
    CheckTally,
    Classification,
    ErrorType,
    LatencySummary,
    MetricsSnapshot,
    OutcomeKind,
    RateLimitHeaders,
    ScenarioStats,
    TrafficOutcome,
)
from rlprobe.metrics.thresholds import ThresholdResult, evaluate_thresholds, thresholds_passed

__all__ = [
    "Check",
    "CheckTally",
    "Classification",
    "ErrorType",
    "LatencySummary",
    "MetricsSnapshot",
    "OutcomeKind",
    "RateLimitHeaders",
    "RunMetrics",
    "ScenarioStats",
    "ThresholdResult",
    "TrafficOutcome",
    "evaluate_thresholds",
    "summarize_latencies",
    "thresholds_passed",
]
