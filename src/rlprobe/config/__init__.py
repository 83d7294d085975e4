from __future__ import annotations

from rlprobe.config.models import (
    BASE_URL_ENV,
    DEFAULT_BASE_URL,
    ExecutorMode,
    RunConfig,
    ScenarioSpec,
    TargetConfig,
    ThresholdConfig,
    TrafficKind,
    default_scenarios,
    parse_duration,
    scenario_from_mapping,
    scenarios_from_mapping,
    target_from_env,
)

__all__ = [
    "BASE_URL_ENV",
    "DEFAULT_BASE_URL",
    "ExecutorMode",
    "RunConfig",
    "ScenarioSpec",
    "TargetConfig",
    "ThresholdConfig",
    "TrafficKind",
    "default_scenarios",
    "parse_duration",
    "scenario_from_mapping",
    "scenarios_from_mapping",
    "target_from_env",
]
