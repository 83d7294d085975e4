from __future__ import annotations

import threading
import time
import uuid
from collections import Counter
from typing import Iterable

import numpy as np

from rlprobe.metrics.models import (
    Check,
    CheckTally,
    Classification,
    LatencySummary,
    MetricsSnapshot,
    OutcomeKind,
    ScenarioStats,
)

_SCENARIO_FIELDS = ("issued", "started", "dropped", "completed", "interrupted", "failed")


class RunMetrics:
    """Shared accumulator for one run.

    Every public method takes the same lock, so workers on any thread or task
    can record concurrently without losing updates.
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id or uuid.uuid4().hex
        self._lock = threading.Lock()
        self._started_mono = time.perf_counter()
        self._outcomes: Counter[OutcomeKind] = Counter()
        self._latencies: dict[OutcomeKind, list[float]] = {kind: [] for kind in OutcomeKind}
        self._tag_latencies: dict[str, list[float]] = {}
        self._check_passes: Counter[Check] = Counter()
        self._check_fails: Counter[Check] = Counter()
        self._abandoned = 0
        self._scenarios: dict[str, Counter[str]] = {}
        self._peak_workers: dict[str, int] = {}

    def record(self, classification: Classification) -> None:
        outcome = classification.outcome
        with self._lock:
            self._outcomes[outcome.kind] += 1
            if outcome.latency_ms >= 0:
                self._latencies[outcome.kind].append(outcome.latency_ms)
                if outcome.tag:
                    self._tag_latencies.setdefault(outcome.tag, []).append(outcome.latency_ms)
            for check, ok in classification.checks.items():
                if ok:
                    self._check_passes[check] += 1
                else:
                    self._check_fails[check] += 1

    def record_abandoned(self, count: int = 1) -> None:
        with self._lock:
            self._abandoned += count

    def incr_scenario(self, scenario: str, name: str, count: int = 1) -> None:
        if name not in _SCENARIO_FIELDS:
            msg = f"Unknown scenario counter: {name}"
            raise ValueError(msg)
        with self._lock:
            self._scenarios.setdefault(scenario, Counter())[name] += count

    def note_workers(self, scenario: str, allocated: int) -> None:
        with self._lock:
            if allocated > self._peak_workers.get(scenario, 0):
                self._peak_workers[scenario] = allocated

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            outcomes = dict(self._outcomes)
            latencies = {kind: list(samples) for kind, samples in self._latencies.items()}
            tag_latencies = {tag: list(samples) for tag, samples in self._tag_latencies.items()}
            passes = dict(self._check_passes)
            fails = dict(self._check_fails)
            abandoned = self._abandoned
            scenarios = {name: dict(counter) for name, counter in self._scenarios.items()}
            peaks = dict(self._peak_workers)
        all_samples = [sample for samples in latencies.values() for sample in samples]
        checks = {
            check: CheckTally(passes=passes.get(check, 0), fails=fails.get(check, 0))
            for check in Check
            if check in passes or check in fails
        }
        stats = {
            name: ScenarioStats(
                **{field: counts.get(field, 0) for field in _SCENARIO_FIELDS},
                peak_workers=peaks.get(name, 0),
            )
            for name, counts in scenarios.items()
        }
        return MetricsSnapshot(
            run_id=self.run_id,
            elapsed_sec=time.perf_counter() - self._started_mono,
            allowed=outcomes.get(OutcomeKind.ALLOWED, 0),
            blocked=outcomes.get(OutcomeKind.BLOCKED, 0),
            malformed=outcomes.get(OutcomeKind.MALFORMED, 0),
            abandoned=abandoned,
            latency=summarize_latencies(all_samples),
            latency_by_kind={kind: summarize_latencies(samples) for kind, samples in latencies.items()},
            checks=checks,
            scenarios=stats,
            latency_by_tag={tag: summarize_latencies(samples) for tag, samples in sorted(tag_latencies.items())},
        )


def summarize_latencies(samples: Iterable[float]) -> LatencySummary:
    values = np.asarray(list(samples), dtype=float)
    if values.size == 0:
        return LatencySummary()
    p50, p90, p95, p99 = np.percentile(values, [50, 90, 95, 99])
    return LatencySummary(
        count=int(values.size),
        min_ms=float(values.min()),
        mean_ms=float(values.mean()),
        p50_ms=float(p50),
        p90_ms=float(p90),
        p95_ms=float(p95),
        p99_ms=float(p99),
        max_ms=float(values.max()),
    )
