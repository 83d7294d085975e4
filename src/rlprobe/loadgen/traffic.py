from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from rlprobe.config import RunConfig, TargetConfig, TrafficKind
from rlprobe.loadgen.classifier import RETRY_AFTER_HEADER, classify, header_value
from rlprobe.loadgen.client import ClientResponse, send_request
from rlprobe.loadgen.retry_after import parse_retry_after
from rlprobe.metrics import Classification, RunMetrics

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class TrafficContext:
    client: httpx.AsyncClient
    target: TargetConfig
    metrics: RunMetrics
    pacing_delay_sec: float = 0.1
    boundary_batch_size: int = 3
    boundary_max_wait_sec: float = 3.0
    sleep: SleepFn = asyncio.sleep

    @classmethod
    def for_run(cls, client: httpx.AsyncClient, config: RunConfig, metrics: RunMetrics) -> TrafficContext:
        return cls(
            client=client,
            target=config.target,
            metrics=metrics,
            pacing_delay_sec=config.pacing_delay_sec,
            boundary_batch_size=config.boundary_batch_size,
            boundary_max_wait_sec=config.boundary_max_wait_sec,
        )


TrafficFn = Callable[[TrafficContext], Awaitable[None]]


async def issue(ctx: TrafficContext, tag: str = "") -> tuple[ClientResponse, Classification]:
    """Send one request, classify it and record the outcome."""
    try:
        response = await send_request(ctx.client, ctx.target, tag=tag)
    except asyncio.CancelledError:
        ctx.metrics.record_abandoned()
        raise
    classification = classify(response)
    ctx.metrics.record(classification)
    if classification.violations:
        logger.debug(
            "%s: status=%s violations=%s",
            tag or "request",
            response.status_code,
            ", ".join(check.value for check in classification.violations),
        )
    return response, classification


async def advanced_traffic(ctx: TrafficContext) -> None:
    await issue(ctx, tag="bundles_search")
    if ctx.pacing_delay_sec > 0:
        await ctx.sleep(ctx.pacing_delay_sec)


async def window_boundary(ctx: TrafficContext) -> None:
    """Probe the limiter, wait out its retry hint, then race a batch at the refill boundary."""
    probe, _ = await issue(ctx, tag="bundles_probe")
    retry_after = parse_retry_after(
        header_value(probe.headers, RETRY_AFTER_HEADER),
        now=probe.received_at,
    )
    if retry_after > 0:
        await ctx.sleep(min(float(retry_after), ctx.boundary_max_wait_sec))
    await asyncio.gather(
        *(issue(ctx, tag=f"window_boundary_{i + 1}") for i in range(ctx.boundary_batch_size))
    )


TRAFFIC_FUNCTIONS: dict[TrafficKind, TrafficFn] = {
    TrafficKind.ADVANCED: advanced_traffic,
    TrafficKind.WINDOW_BOUNDARY: window_boundary,
}


def traffic_for(kind: TrafficKind) -> TrafficFn:
    try:
        return TRAFFIC_FUNCTIONS[kind]
    except KeyError:
        msg = f"Unsupported traffic kind: {kind}"
        raise ValueError(msg) from None
