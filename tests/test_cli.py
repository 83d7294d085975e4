from __future__ import annotations

import json
from pathlib import Path

import pytest

from rlprobe.cli import _parser, build_config, main
from rlprobe.config import ExecutorMode, ThresholdConfig
from rlprobe.errors import ConfigError
from rlprobe.loadgen.classifier import classify
from rlprobe.loadgen.client import ClientResponse
from rlprobe.metrics import RunMetrics, evaluate_thresholds
from rlprobe.report import render_text, summary_dict, write_json


def test_only_rebases_offsets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BASE_URL", "http://limiter:9000")
    args = _parser().parse_args(["--only", "window_boundary", "burst_attack", "--no-preflight"])
    config = build_config(args)
    assert config.target.base_url == "http://limiter:9000"
    assert [s.name for s in config.scenarios] == ["burst_attack", "window_boundary"]
    assert [s.start_offset_sec for s in config.scenarios] == [0, 90]
    assert not config.preflight


def test_unknown_scenario_name() -> None:
    with pytest.raises(ConfigError):
        build_config(_parser().parse_args(["--only", "nope"]))


def test_scenario_file(tmp_path: Path) -> None:
    path = tmp_path / "scenarios.json"
    path.write_text(
        json.dumps({"scenarios": {"steady": {"mode": "constant_vus", "workers": 2, "duration": "5s"}}}),
        encoding="utf-8",
    )
    config = build_config(_parser().parse_args(["--scenarios", str(path), "--target", "http://x"]))
    assert config.scenarios[0].mode is ExecutorMode.CONSTANT_VUS
    assert config.scenarios[0].duration_sec == 5.0


def test_main_exits_2_on_bad_config(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert main(["--scenarios", str(path), "--target", "http://x"]) == 2


def test_summary_renderers(tmp_path: Path) -> None:
    metrics = RunMetrics("r1")
    metrics.record(classify(ClientResponse(200, {"X-RateLimit-Remaining": "1"}, 4.0, 0.0)))
    metrics.record(classify(ClientResponse(429, {}, 2.0, 0.0)))
    metrics.incr_scenario("s", "issued")
    snap = metrics.snapshot()
    thresholds = evaluate_thresholds(snap, ThresholdConfig())
    text = render_text(snap, thresholds)
    assert "blocked .......: 1" in text
    assert "429 has Retry-After: 1 passed, 1 failed" in text
    summary = summary_dict(snap, thresholds)
    assert summary["counts"]["total"] == 2
    assert summary["checks"]["has rate limit headers"] == {"passes": 1, "fails": 1}
    out = tmp_path / "out" / "summary.json"
    write_json(out, summary)
    assert json.loads(out.read_text(encoding="utf-8"))["run_id"] == "r1"


@pytest.mark.parametrize(
    "body",
    [
        {"scenarios": {"steady": {"mode": "constant_vus", "workers": "2", "duration": "5s"}}},
        {"scenarios": [{"mode": "constant_vus", "workers": 2, "duration": "5s"}]},
        {"scenarios": {"steady": "constant_vus"}},
    ],
    ids=["wrong-field-type", "list-of-scenarios", "string-body"],
)
def test_main_exits_2_on_malformed_scenario_shapes(tmp_path: Path, body: object) -> None:
    path = tmp_path / "scenarios.json"
    path.write_text(json.dumps(body), encoding="utf-8")
    assert main(["--scenarios", str(path), "--target", "http://x", "--no-preflight"]) == 2


def test_main_exits_2_when_workers_exceed_connection_pool(tmp_path: Path) -> None:
    path = tmp_path / "scenarios.json"
    path.write_text(
        json.dumps(
            {
                "burst": {
                    "mode": "constant_arrival_rate",
                    "rate": 500,
                    "duration": "10s",
                    "preallocated_workers": 20,
                    "max_workers": 300,
                }
            }
        ),
        encoding="utf-8",
    )
    argv = ["--scenarios", str(path), "--target", "http://x", "--no-preflight"]
    assert main(argv) == 2
    config = build_config(_parser().parse_args(argv + ["--max-connections", "300"]))
    config.validate()
    assert config.to_metadata()["max_connections"] == 300


def test_summary_breaks_latency_down_by_tag() -> None:
    metrics = RunMetrics("r2")
    metrics.record(classify(ClientResponse(200, {"X-RateLimit-Remaining": "1"}, 4.0, 0.0, tag="bundles_probe")))
    metrics.record(classify(ClientResponse(200, {"X-RateLimit-Remaining": "1"}, 8.0, 0.0, tag="window_boundary_1")))
    metrics.record(classify(ClientResponse(200, {"X-RateLimit-Remaining": "1"}, 6.0, 0.0)))
    snap = metrics.snapshot()
    assert list(snap.latency_by_tag) == ["bundles_probe", "window_boundary_1"]
    assert snap.latency_by_tag["window_boundary_1"].max_ms == 8.0
    assert "latency by request tag" in render_text(snap, [])
    assert summary_dict(snap, [])["latency_ms_by_tag"]["bundles_probe"]["count"] == 1
