from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from rlprobe.config import (
    RunConfig,
    ScenarioSpec,
    ThresholdConfig,
    default_scenarios,
    scenarios_from_mapping,
    target_from_env,
)
from rlprobe.errors import ConfigError, RlprobeError
from rlprobe.loadgen.runner import run_and_evaluate
from rlprobe.report import render_text, summary_dict, write_json

logger = logging.getLogger(__name__)


def _load_scenarios(path: Path | None) -> tuple[ScenarioSpec, ...]:
    if path is None:
        return default_scenarios()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Cannot read scenario file {path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Scenario file {path} must hold a JSON object of scenarios")
    return scenarios_from_mapping(raw.get("scenarios", raw))


def _select(scenarios: tuple[ScenarioSpec, ...], only: list[str] | None, rebase: bool) -> tuple[ScenarioSpec, ...]:
    if not only:
        return scenarios
    known = {s.name for s in scenarios}
    missing = [name for name in only if name not in known]
    if missing:
        raise ConfigError(f"Unknown scenario(s): {', '.join(missing)}")
    selected = tuple(s for s in scenarios if s.name in only)
    if not rebase:
        return selected
    first = min(s.start_offset_sec for s in selected)
    return tuple(replace(s, start_offset_sec=s.start_offset_sec - first) for s in selected)


def build_config(args: argparse.Namespace) -> RunConfig:
    scenarios = _select(_load_scenarios(args.scenarios), args.only, rebase=not args.keep_offsets)
    thresholds = ThresholdConfig(
        min_blocked=args.min_blocked,
        blocked_p95_ms=args.blocked_p95_ms,
        max_failed_rate=args.max_failed_rate,
    )
    return RunConfig(
        target=target_from_env(args.target),
        scenarios=scenarios,
        thresholds=thresholds,
        pacing_delay_sec=args.pacing_delay,
        max_connections=args.max_connections,
        preflight=not args.no_preflight,
        run_id=args.run_id,
    )


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rate limiter load and contract verification harness")
    parser.add_argument("--target", help="Target base URL (default: $BASE_URL or http://localhost:5002)")
    parser.add_argument("--scenarios", type=Path, help="JSON file of scenarios (default: built-in set)")
    parser.add_argument("--only", nargs="+", metavar="NAME", help="Run only these scenarios")
    parser.add_argument("--keep-offsets", action="store_true", help="Keep start offsets when using --only")
    parser.add_argument("--pacing-delay", type=float, default=0.1)
    parser.add_argument("--max-connections", type=int, default=200, help="HTTP connection pool size")
    parser.add_argument("--min-blocked", type=int, default=1)
    parser.add_argument("--blocked-p95-ms", type=float, default=2000.0)
    parser.add_argument("--max-failed-rate", type=float, default=0.8)
    parser.add_argument("--no-preflight", action="store_true")
    parser.add_argument("--run-id")
    parser.add_argument("--summary-json", type=Path, help="Write the summary as JSON here")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = build_config(args)
        result = asyncio.run(run_and_evaluate(config))
    except RlprobeError as exc:
        logger.error("%s", exc)
        return 2
    print(render_text(result.snapshot, result.thresholds))
    if args.summary_json is not None:
        write_json(args.summary_json, summary_dict(result.snapshot, result.thresholds, result.config))
    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main())
