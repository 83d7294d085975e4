from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

from rlprobe.config import RunConfig
from rlprobe.metrics import LatencySummary, MetricsSnapshot, ThresholdResult


def summary_dict(
    snapshot: MetricsSnapshot,
    thresholds: list[ThresholdResult],
    config: RunConfig | None = None,
) -> Mapping[str, Any]:
    return {
        "run_id": snapshot.run_id,
        "elapsed_sec": round(snapshot.elapsed_sec, 3),
        "config": dict(config.to_metadata()) if config is not None else None,
        "counts": {
            "allowed": snapshot.allowed,
            "blocked": snapshot.blocked,
            "malformed": snapshot.malformed,
            "abandoned": snapshot.abandoned,
            "total": snapshot.total,
            "violations": snapshot.violations,
        },
        "latency_ms": _latency_dict(snapshot.latency),
        "latency_ms_by_outcome": {
            kind.value: _latency_dict(summary) for kind, summary in snapshot.latency_by_kind.items()
        },
        "latency_ms_by_tag": {tag: _latency_dict(summary) for tag, summary in snapshot.latency_by_tag.items()},
        "checks": {
            check.value: {"passes": tally.passes, "fails": tally.fails}
            for check, tally in snapshot.checks.items()
        },
        "scenarios": {
            name: {
                "issued": stats.issued,
                "started": stats.started,
                "dropped": stats.dropped,
                "completed": stats.completed,
                "interrupted": stats.interrupted,
                "failed": stats.failed,
                "peak_workers": stats.peak_workers,
            }
            for name, stats in snapshot.scenarios.items()
        },
        "thresholds": [
            {
                "name": result.name,
                "expression": result.expression,
                "observed": result.observed,
                "passed": result.passed,
            }
            for result in thresholds
        ],
    }


def write_json(path: Path, summary: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def render_text(snapshot: MetricsSnapshot, thresholds: list[ThresholdResult]) -> str:
    lines = [
        f"run {snapshot.run_id} ({snapshot.elapsed_sec:.1f}s)",
        f"  requests ......: {snapshot.total}",
        f"  allowed .......: {snapshot.allowed}",
        f"  blocked .......: {snapshot.blocked}",
        f"  malformed .....: {snapshot.malformed}",
        f"  abandoned .....: {snapshot.abandoned}",
        f"  latency .......: {_latency_line(snapshot.latency)}",
    ]
    for kind, summary in snapshot.latency_by_kind.items():
        if summary.count:
            lines.append(f"    {kind.value:<11}: {_latency_line(summary)}")
    if snapshot.latency_by_tag:
        lines.append("  latency by request tag")
        for tag, summary in snapshot.latency_by_tag.items():
            lines.append(f"    {tag}: {_latency_line(summary)}")
    if snapshot.checks:
        lines.append("  checks")
        for check, tally in snapshot.checks.items():
            mark = "ok" if tally.fails == 0 else "FAIL"
            lines.append(f"    [{mark:>4}] {check.value}: {tally.passes} passed, {tally.fails} failed")
    if snapshot.scenarios:
        lines.append("  scenarios")
        for name, stats in snapshot.scenarios.items():
            lines.append(
                f"    {name}: issued={stats.issued} started={stats.started} dropped={stats.dropped} "
                f"completed={stats.completed} interrupted={stats.interrupted} failed={stats.failed} "
                f"peak_workers={stats.peak_workers}"
            )
    if thresholds:
        lines.append("  thresholds")
        for result in thresholds:
            mark = "ok" if result.passed else "FAIL"
            lines.append(f"    [{mark:>4}] {result.name} {result.expression} (observed {result.observed:.3f})")
    return "\n".join(lines)


def _latency_dict(summary: LatencySummary) -> Mapping[str, float]:
    return {
        "count": summary.count,
        "min": summary.min_ms,
        "mean": summary.mean_ms,
        "p50": summary.p50_ms,
        "p90": summary.p90_ms,
        "p95": summary.p95_ms,
        "p99": summary.p99_ms,
        "max": summary.max_ms,
    }


def _latency_line(summary: LatencySummary) -> str:
    return (
        f"avg={summary.mean_ms:.2f}ms p50={summary.p50_ms:.2f}ms p90={summary.p90_ms:.2f}ms "
        f"p95={summary.p95_ms:.2f}ms max={summary.max_ms:.2f}ms"
    )
