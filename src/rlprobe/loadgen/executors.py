from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable

from rlprobe.config import ExecutorMode, ScenarioSpec
from rlprobe.loadgen.traffic import TrafficContext, TrafficFn

logger = logging.getLogger(__name__)

_DROP_LOG_EVERY = 100


class WorkerPool:
    """Worker slots for an arrival-rate scenario.

    Starts with ``preallocated`` slots and grows one slot at a time up to
    ``maximum``. ``try_acquire`` never waits: when every slot is busy the
    caller must drop the invocation.
    """

    def __init__(self, scenario: str, preallocated: int, maximum: int) -> None:
        self.scenario = scenario
        self.maximum = maximum
        self.allocated = preallocated
        self.active = 0

    def try_acquire(self) -> bool:
        if self.active < self.allocated:
            self.active += 1
            return True
        if self.allocated < self.maximum:
            self.allocated += 1
            self.active += 1
            logger.info(
                "Scenario %s: growing worker pool to %d/%d",
                self.scenario,
                self.allocated,
                self.maximum,
            )
            return True
        return False

    def release(self) -> None:
        self.active = max(0, self.active - 1)


async def execute_scenario(spec: ScenarioSpec, traffic: TrafficFn, ctx: TrafficContext) -> None:
    runner = _EXECUTORS.get(spec.mode)
    if runner is None:
        msg = f"Unsupported executor mode: {spec.mode}"
        raise ValueError(msg)
    logger.info("Scenario %s started (%s)", spec.name, spec.mode.value)
    started = time.perf_counter()
    await runner(spec, traffic, ctx)
    logger.info("Scenario %s finished in %.2fs", spec.name, time.perf_counter() - started)


async def _constant_arrival_rate(spec: ScenarioSpec, traffic: TrafficFn, ctx: TrafficContext) -> None:
    metrics = ctx.metrics
    pool = WorkerPool(spec.name, spec.preallocated_workers, spec.max_workers)
    metrics.note_workers(spec.name, pool.allocated)
    interval = spec.time_unit_sec / spec.rate
    total = max(1, round(spec.duration_sec / interval))
    tasks: set[asyncio.Task[None]] = set()
    dropped = 0

    def _finished(task: asyncio.Task[None]) -> None:
        tasks.discard(task)
        pool.release()

    started_mono = time.perf_counter()
    deadline = started_mono + spec.duration_sec
    for i in range(total):
        await _sleep_until_time(started_mono + i * interval)
        metrics.incr_scenario(spec.name, "issued")
        if not pool.try_acquire():
            dropped += 1
            metrics.incr_scenario(spec.name, "dropped")
            if dropped == 1 or dropped % _DROP_LOG_EVERY == 0:
                logger.warning(
                    "Scenario %s: insufficient capacity, %d iteration(s) dropped (max workers %d)",
                    spec.name,
                    dropped,
                    spec.max_workers,
                )
            continue
        metrics.note_workers(spec.name, pool.allocated)
        metrics.incr_scenario(spec.name, "started")
        task = asyncio.create_task(_run_iteration(spec, traffic, ctx))
        tasks.add(task)
        task.add_done_callback(_finished)
    await _sleep_until_time(deadline)
    await _drain(spec, list(tasks), deadline + spec.graceful_stop_sec)


async def _per_vu_iterations(spec: ScenarioSpec, traffic: TrafficFn, ctx: TrafficContext) -> None:
    metrics = ctx.metrics
    started_mono = time.perf_counter()
    deadline = started_mono + spec.max_duration_sec
    started_count = 0

    async def worker() -> None:
        nonlocal started_count
        for _ in range(spec.iterations):
            if time.perf_counter() >= deadline:
                return
            started_count += 1
            metrics.incr_scenario(spec.name, "issued")
            metrics.incr_scenario(spec.name, "started")
            await _run_iteration(spec, traffic, ctx)

    metrics.note_workers(spec.name, spec.workers)
    tasks = [asyncio.create_task(worker()) for _ in range(spec.workers)]
    _, pending = await asyncio.wait(tasks, timeout=spec.max_duration_sec)
    await _drain(spec, pending, deadline + spec.graceful_stop_sec)
    unstarted = spec.workers * spec.iterations - started_count
    if unstarted > 0:
        metrics.incr_scenario(spec.name, "interrupted", unstarted)
        logger.warning(
            "Scenario %s: %d iteration(s) not started before max duration %.1fs",
            spec.name,
            unstarted,
            spec.max_duration_sec,
        )


async def _constant_vus(spec: ScenarioSpec, traffic: TrafficFn, ctx: TrafficContext) -> None:
    metrics = ctx.metrics
    deadline = time.perf_counter() + spec.duration_sec

    async def worker() -> None:
        while time.perf_counter() < deadline:
            metrics.incr_scenario(spec.name, "issued")
            metrics.incr_scenario(spec.name, "started")
            await _run_iteration(spec, traffic, ctx)

    metrics.note_workers(spec.name, spec.workers)
    tasks = [asyncio.create_task(worker()) for _ in range(spec.workers)]
    _, pending = await asyncio.wait(tasks, timeout=spec.duration_sec)
    await _drain(spec, pending, deadline + spec.graceful_stop_sec)


async def _run_iteration(spec: ScenarioSpec, traffic: TrafficFn, ctx: TrafficContext) -> None:
    try:
        await traffic(ctx)
    except Exception:
        ctx.metrics.incr_scenario(spec.name, "failed")
        logger.exception("Scenario %s: iteration failed", spec.name)
        return
    ctx.metrics.incr_scenario(spec.name, "completed")


async def _drain(spec: ScenarioSpec, tasks: Iterable[asyncio.Task[None]], until: float) -> None:
    """Give in-flight work until ``until`` to finish, then cancel whatever is left."""
    pending = {task for task in tasks if not task.done()}
    if pending:
        _, pending = await asyncio.wait(pending, timeout=max(0.0, until - time.perf_counter()))
    if not pending:
        return
    logger.warning(
        "Scenario %s: cancelling %d task(s) still running after %.1fs graceful stop",
        spec.name,
        len(pending),
        spec.graceful_stop_sec,
    )
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


async def _sleep_until_time(target: float) -> None:
    delay = max(0.0, target - time.perf_counter())
    if delay > 0:
        await asyncio.sleep(delay)


_EXECUTORS: dict[ExecutorMode, Callable[[ScenarioSpec, TrafficFn, TrafficContext], Awaitable[None]]] = {
    ExecutorMode.CONSTANT_ARRIVAL_RATE: _constant_arrival_rate,
    ExecutorMode.PER_VU_ITERATIONS: _per_vu_iterations,
    ExecutorMode.CONSTANT_VUS: _constant_vus,
}
