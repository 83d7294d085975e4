from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from rlprobe.errors import ConfigError

DEFAULT_BASE_URL = "http://localhost:5002"
DEFAULT_PATH = "/api/v0/bundles/"
BASE_URL_ENV = "BASE_URL"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


class ExecutorMode(str, Enum):
    CONSTANT_ARRIVAL_RATE = "constant_arrival_rate"
    PER_VU_ITERATIONS = "per_vu_iterations"
    CONSTANT_VUS = "constant_vus"


class TrafficKind(str, Enum):
    ADVANCED = "advanced"
    WINDOW_BOUNDARY = "window_boundary"


@dataclass(frozen=True, slots=True)
class TargetConfig:
    base_url: str
    path: str = DEFAULT_PATH
    timeout_sec: float = 10.0
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.path.lstrip("/")


@dataclass(frozen=True, slots=True)
class ScenarioSpec:
    name: str
    mode: ExecutorMode
    traffic: TrafficKind = TrafficKind.ADVANCED
    rate: float = 0.0
    time_unit_sec: float = 1.0
    duration_sec: float = 0.0
    preallocated_workers: int = 1
    max_workers: int = 1
    workers: int = 1
    iterations: int = 1
    max_duration_sec: float = 600.0
    start_offset_sec: float = 0.0
    graceful_stop_sec: float = 30.0

    def validate(self) -> None:
        if not self.name:
            raise ConfigError("scenario name must not be empty")
        if self.start_offset_sec < 0:
            raise ConfigError(f"{self.name}: start offset must be >= 0")
        if self.graceful_stop_sec < 0:
            raise ConfigError(f"{self.name}: graceful stop must be >= 0")
        if self.mode is ExecutorMode.CONSTANT_ARRIVAL_RATE:
            if self.rate <= 0 or self.time_unit_sec <= 0:
                raise ConfigError(f"{self.name}: rate and time unit must be > 0")
            if self.duration_sec <= 0:
                raise ConfigError(f"{self.name}: duration must be > 0")
            if self.preallocated_workers < 1:
                raise ConfigError(f"{self.name}: preallocated workers must be >= 1")
            if self.max_workers < self.preallocated_workers:
                raise ConfigError(f"{self.name}: max workers below preallocated workers")
        elif self.mode is ExecutorMode.PER_VU_ITERATIONS:
            if self.workers < 1 or self.iterations < 1:
                raise ConfigError(f"{self.name}: workers and iterations must be >= 1")
            if self.max_duration_sec <= 0:
                raise ConfigError(f"{self.name}: max duration must be > 0")
        elif self.mode is ExecutorMode.CONSTANT_VUS:
            if self.workers < 1:
                raise ConfigError(f"{self.name}: workers must be >= 1")
            if self.duration_sec <= 0:
                raise ConfigError(f"{self.name}: duration must be > 0")

    def planned_end_sec(self) -> float:
        """Latest offset from run start at which this scenario can still be running."""
        if self.mode is ExecutorMode.PER_VU_ITERATIONS:
            budget = self.max_duration_sec
        else:
            budget = self.duration_sec
        return self.start_offset_sec + budget + self.graceful_stop_sec


@dataclass(frozen=True, slots=True)
class ThresholdConfig:
    min_blocked: int = 1
    blocked_p95_ms: float | None = 2000.0
    max_failed_rate: float | None = 0.8


@dataclass(frozen=True, slots=True)
class RunConfig:
    target: TargetConfig
    scenarios: tuple[ScenarioSpec, ...]
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    pacing_delay_sec: float = 0.1
    boundary_batch_size: int = 3
    boundary_max_wait_sec: float = 3.0
    max_connections: int = 200
    preflight: bool = True
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def validate(self) -> None:
        if not self.scenarios:
            raise ConfigError("at least one scenario is required")
        if not self.target.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"target base URL must be http(s): {self.target.base_url!r}")
        if self.pacing_delay_sec < 0:
            raise ConfigError("pacing delay must be >= 0")
        if self.boundary_batch_size < 1:
            raise ConfigError("boundary batch size must be >= 1")
        if self.max_connections < 1:
            raise ConfigError("max connections must be >= 1")
        seen: set[str] = set()
        for scenario in self.scenarios:
            scenario.validate()
            if scenario.name in seen:
                raise ConfigError(f"duplicate scenario name: {scenario.name}")
            seen.add(scenario.name)
        peak = self.peak_connections()
        if peak > self.max_connections:
            raise ConfigError(
                f"overlapping scenarios can hold {peak} requests in flight but max connections is "
                f"{self.max_connections}; raise max connections or lower worker counts"
            )

    def connections_for(self, scenario: ScenarioSpec) -> int:
        """Most requests one scenario can have in flight at once."""
        if scenario.mode is ExecutorMode.CONSTANT_ARRIVAL_RATE:
            workers = scenario.max_workers
        else:
            workers = scenario.workers
        if scenario.traffic is TrafficKind.WINDOW_BOUNDARY:
            return workers * self.boundary_batch_size
        return workers

    def peak_connections(self) -> int:
        """Largest in-flight demand of scenarios whose run windows overlap."""
        peak = 0
        for scenario in self.scenarios:
            at = scenario.start_offset_sec
            demand = sum(
                self.connections_for(other)
                for other in self.scenarios
                if other.start_offset_sec <= at < other.planned_end_sec()
            )
            peak = max(peak, demand)
        return peak

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "target": {
                "url": self.target.url,
                "timeout_sec": self.target.timeout_sec,
                "headers": dict(self.target.headers),
            },
            "pacing_delay_sec": self.pacing_delay_sec,
            "boundary_batch_size": self.boundary_batch_size,
            "boundary_max_wait_sec": self.boundary_max_wait_sec,
            "max_connections": self.max_connections,
            "thresholds": {
                "min_blocked": self.thresholds.min_blocked,
                "blocked_p95_ms": self.thresholds.blocked_p95_ms,
                "max_failed_rate": self.thresholds.max_failed_rate,
            },
            "scenarios": [
                {
                    "name": s.name,
                    "mode": s.mode.value,
                    "traffic": s.traffic.value,
                    "rate": s.rate,
                    "time_unit_sec": s.time_unit_sec,
                    "duration_sec": s.duration_sec,
                    "preallocated_workers": s.preallocated_workers,
                    "max_workers": s.max_workers,
                    "workers": s.workers,
                    "iterations": s.iterations,
                    "max_duration_sec": s.max_duration_sec,
                    "start_offset_sec": s.start_offset_sec,
                    "graceful_stop_sec": s.graceful_stop_sec,
                }
                for s in self.scenarios
            ],
        }


def parse_duration(value: str | float | int) -> float:
    """Parse ``"2m30s"``-style durations (also bare numbers, in seconds)."""
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"invalid duration: {value!r}")
    text = value.strip()
    if not text:
        raise ConfigError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        amount = float(match.group(1))
        unit = match.group(2)
        if unit == "h":
            total += amount * 3600
        elif unit == "m":
            total += amount * 60
        elif unit == "s":
            total += amount
        else:
            total += amount / 1000.0
        pos = match.end()
    if pos != len(text):
        raise ConfigError(f"invalid duration: {value!r}")
    return total


def target_from_env(base_url: str | None = None, env: Mapping[str, str] | None = None) -> TargetConfig:
    environ = os.environ if env is None else env
    url = base_url or environ.get(BASE_URL_ENV) or DEFAULT_BASE_URL
    return TargetConfig(base_url=url)


def default_scenarios() -> tuple[ScenarioSpec, ...]:
    return (
        ScenarioSpec(
            name="sustained_load",
            mode=ExecutorMode.CONSTANT_ARRIVAL_RATE,
            rate=50,
            duration_sec=120,
            preallocated_workers=5,
            max_workers=20,
            start_offset_sec=0,
        ),
        ScenarioSpec(
            name="burst_attack",
            mode=ExecutorMode.CONSTANT_ARRIVAL_RATE,
            rate=500,
            duration_sec=10,
            preallocated_workers=20,
            max_workers=100,
            start_offset_sec=120,
        ),
        ScenarioSpec(
            name="distributed_users",
            mode=ExecutorMode.PER_VU_ITERATIONS,
            workers=20,
            iterations=10,
            max_duration_sec=60,
            start_offset_sec=150,
        ),
        ScenarioSpec(
            name="window_boundary",
            mode=ExecutorMode.CONSTANT_VUS,
            traffic=TrafficKind.WINDOW_BOUNDARY,
            workers=10,
            duration_sec=30,
            graceful_stop_sec=5,
            start_offset_sec=210,
        ),
    )


_SCENARIO_DURATIONS = ("time_unit_sec", "duration_sec", "max_duration_sec", "start_offset_sec", "graceful_stop_sec")
_SCENARIO_KEYS = {
    "time_unit": "time_unit_sec",
    "duration": "duration_sec",
    "max_duration": "max_duration_sec",
    "start_time": "start_offset_sec",
    "graceful_stop": "graceful_stop_sec",
}


_SCENARIO_INTS = ("preallocated_workers", "max_workers", "workers", "iterations")
_SCENARIO_NUMBERS = ("rate",)


def scenario_from_mapping(name: str, raw: Mapping[str, Any]) -> ScenarioSpec:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{name}: scenario must be a mapping, got {type(raw).__name__}")
    params: dict[str, Any] = {}
    for key, value in raw.items():
        params[_SCENARIO_KEYS.get(key, key)] = value
    try:
        params["mode"] = ExecutorMode(params["mode"])
        if "traffic" in params:
            params["traffic"] = TrafficKind(params["traffic"])
        for key in _SCENARIO_DURATIONS:
            if key in params:
                params[key] = parse_duration(params[key])
        for key in _SCENARIO_INTS:
            if key in params and not _is_number(params[key], integral=True):
                raise ConfigError(f"{name}: {key} must be an integer, got {params[key]!r}")
        for key in _SCENARIO_NUMBERS:
            if key in params and not _is_number(params[key]):
                raise ConfigError(f"{name}: {key} must be a number, got {params[key]!r}")
        spec = ScenarioSpec(name=name, **params)
        spec.validate()
        return spec
    except KeyError as exc:
        raise ConfigError(f"{name}: missing field {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"{name}: {exc}") from exc


def scenarios_from_mapping(raw: Mapping[str, Mapping[str, Any]]) -> tuple[ScenarioSpec, ...]:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"scenarios must be a mapping of name to scenario, got {type(raw).__name__}")
    return tuple(scenario_from_mapping(str(name), body) for name, body in raw.items())


def _is_number(value: Any, integral: bool = False) -> bool:
    if isinstance(value, bool):
        return False
    if integral:
        return isinstance(value, int)
    return isinstance(value, (int, float))
