from __future__ import annotations

import time

import httpx
import pytest

from rlprobe.config import TargetConfig
from rlprobe.loadgen.traffic import TrafficContext, advanced_traffic, window_boundary
from rlprobe.metrics import Check, RunMetrics

TARGET = TargetConfig("http://limiter.test")
OK_HEADERS = {"X-RateLimit-Remaining": "1", "X-RateLimit-Limit": "10"}


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


def _blocked_then_allowed(arrivals: list[float], retry_after: str):
    def handler(request: httpx.Request) -> httpx.Response:
        arrivals.append(time.perf_counter())
        if len(arrivals) == 1:
            return httpx.Response(429, headers={**OK_HEADERS, "Retry-After": retry_after})
        return httpx.Response(200, headers=OK_HEADERS)

    return handler


@pytest.mark.asyncio
async def test_advanced_traffic_records_and_paces() -> None:
    metrics = RunMetrics()
    sleep = FakeSleep()
    transport = httpx.MockTransport(lambda request: httpx.Response(200, headers=OK_HEADERS))
    async with httpx.AsyncClient(transport=transport) as client:
        ctx = TrafficContext(client, TARGET, metrics, pacing_delay_sec=0.1, sleep=sleep)
        await advanced_traffic(ctx)
    assert metrics.snapshot().allowed == 1
    assert sleep.calls == [0.1]


@pytest.mark.asyncio
async def test_batch_waits_for_retry_hint_before_racing() -> None:
    arrivals: list[float] = []
    metrics = RunMetrics()
    transport = httpx.MockTransport(_blocked_then_allowed(arrivals, "1"))
    async with httpx.AsyncClient(transport=transport) as client:
        ctx = TrafficContext(client, TARGET, metrics)
        await window_boundary(ctx)

    assert len(arrivals) == 4
    probe, batch = arrivals[0], arrivals[1:]
    for arrived in batch:
        assert arrived - probe >= 0.95
        assert arrived - probe <= 1.0 + 0.5
    assert max(batch) - min(batch) < 0.2
    snap = metrics.snapshot()
    assert (snap.allowed, snap.blocked, snap.malformed) == (3, 1, 0)
    assert set(snap.latency_by_tag) == {"bundles_probe", "window_boundary_1", "window_boundary_2", "window_boundary_3"}


@pytest.mark.asyncio
async def test_boundary_wait_is_capped() -> None:
    arrivals: list[float] = []
    sleep = FakeSleep()
    transport = httpx.MockTransport(_blocked_then_allowed(arrivals, "60"))
    async with httpx.AsyncClient(transport=transport) as client:
        ctx = TrafficContext(client, TARGET, RunMetrics(), sleep=sleep)
        await window_boundary(ctx)
    assert sleep.calls == [3.0]
    assert len(arrivals) == 4


@pytest.mark.asyncio
async def test_no_wait_without_retry_hint() -> None:
    sleep = FakeSleep()
    transport = httpx.MockTransport(lambda request: httpx.Response(200, headers=OK_HEADERS))
    async with httpx.AsyncClient(transport=transport) as client:
        ctx = TrafficContext(client, TARGET, RunMetrics(), sleep=sleep, boundary_batch_size=5)
        await window_boundary(ctx)
        assert ctx.metrics.snapshot().allowed == 6
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_batch_transport_failure_is_classified_not_dropped() -> None:
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(len(seen))
        if len(seen) == 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, headers=OK_HEADERS)

    metrics = RunMetrics()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        ctx = TrafficContext(client, TARGET, metrics, sleep=FakeSleep())
        await window_boundary(ctx)

    snap = metrics.snapshot()
    assert (snap.allowed, snap.blocked, snap.malformed) == (3, 0, 1)
    assert snap.checks[Check.HAS_STATUS].fails == 1
    assert snap.checks[Check.HAS_STATUS].passes == 3
