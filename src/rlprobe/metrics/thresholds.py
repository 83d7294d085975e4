from __future__ import annotations

from dataclasses import dataclass

from rlprobe.config import ThresholdConfig
from rlprobe.metrics.models import MetricsSnapshot, OutcomeKind


@dataclass(frozen=True, slots=True)
class ThresholdResult:
    name: str
    expression: str
    observed: float
    passed: bool


def evaluate_thresholds(snapshot: MetricsSnapshot, config: ThresholdConfig) -> list[ThresholdResult]:
    results = [
        ThresholdResult(
            name="blocked_requests",
            expression=f"count>={config.min_blocked}",
            observed=float(snapshot.blocked),
            passed=snapshot.blocked >= config.min_blocked,
        )
    ]
    if config.blocked_p95_ms is not None:
        blocked = snapshot.latency_by_kind.get(OutcomeKind.BLOCKED)
        observed = blocked.p95_ms if blocked is not None else 0.0
        results.append(
            ThresholdResult(
                name="blocked_latency",
                expression=f"p(95)<{config.blocked_p95_ms:g}",
                observed=observed,
                passed=observed < config.blocked_p95_ms,
            )
        )
    if config.max_failed_rate is not None:
        results.append(
            ThresholdResult(
                name="failed_requests",
                expression=f"rate<{config.max_failed_rate:g}",
                observed=snapshot.failed_rate,
                passed=snapshot.failed_rate < config.max_failed_rate,
            )
        )
    return results


def thresholds_passed(results: list[ThresholdResult]) -> bool:
    return all(result.passed for result in results)
