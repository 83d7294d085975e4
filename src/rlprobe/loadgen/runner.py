from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace

import httpx

from rlprobe.config import RunConfig, ScenarioSpec, TargetConfig
from rlprobe.errors import TargetUnreachableError
from rlprobe.loadgen.client import send_request
from rlprobe.loadgen.executors import execute_scenario
from rlprobe.loadgen.traffic import TrafficContext, traffic_for
from rlprobe.metrics import MetricsSnapshot, RunMetrics, ThresholdResult, evaluate_thresholds, thresholds_passed

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunResult:
    config: RunConfig
    snapshot: MetricsSnapshot
    thresholds: list[ThresholdResult]

    @property
    def passed(self) -> bool:
        return thresholds_passed(self.thresholds)


def _new_run_id() -> str:
    return uuid.uuid4().hex


async def run_harness(
    config: RunConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    metrics: RunMetrics | None = None,
) -> MetricsSnapshot:
    """Validate ``config``, run every scenario on its timeline and return the final snapshot.

    Configuration errors and an unreachable target surface as exceptions before
    any scenario starts; per-response problems only show up in the metrics.
    """
    config.validate()
    run_id = config.run_id or _new_run_id()
    metrics = metrics or RunMetrics(run_id)
    limits = httpx.Limits(max_connections=config.max_connections, max_keepalive_connections=config.max_connections)
    async with httpx.AsyncClient(transport=transport, limits=limits) as client:
        if config.preflight:
            await preflight(client, config.target)
        ctx = TrafficContext.for_run(client, config, metrics)
        started_mono = time.perf_counter()
        logger.info(
            "Run %s: %d scenario(s) against %s, peak %d/%d connections",
            run_id,
            len(config.scenarios),
            config.target.url,
            config.peak_connections(),
            config.max_connections,
        )
        await asyncio.gather(*(_run_at_offset(spec, ctx, started_mono) for spec in config.scenarios))
    snapshot = metrics.snapshot()
    logger.info(
        "Run %s finished: allowed=%d blocked=%d malformed=%d abandoned=%d",
        run_id,
        snapshot.allowed,
        snapshot.blocked,
        snapshot.malformed,
        snapshot.abandoned,
    )
    return snapshot


async def run_and_evaluate(
    config: RunConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RunResult:
    if config.run_id is None:
        config = replace(config, run_id=_new_run_id())
    snapshot = await run_harness(config, transport=transport)
    return RunResult(
        config=config,
        snapshot=snapshot,
        thresholds=evaluate_thresholds(snapshot, config.thresholds),
    )


async def preflight(client: httpx.AsyncClient, target: TargetConfig) -> None:
    response = await send_request(client, target, tag="preflight")
    if not response.received:
        msg = f"Target {target.url} unreachable ({response.error_type.value if response.error_type else 'unknown'})"
        raise TargetUnreachableError(msg)
    logger.info("Preflight %s -> %d", target.url, response.status_code)


async def _run_at_offset(spec: ScenarioSpec, ctx: TrafficContext, started_mono: float) -> None:
    delay = max(0.0, started_mono + spec.start_offset_sec - time.perf_counter())
    if delay > 0:
        await asyncio.sleep(delay)
    await execute_scenario(spec, traffic_for(spec.traffic), ctx)
