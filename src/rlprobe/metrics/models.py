from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping


class ErrorType(str, Enum):
    TIMEOUT = "timeout"
    CONNECT = "connect"
    READ = "read"
    OTHER = "other"


class OutcomeKind(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    MALFORMED = "malformed"


class Check(str, Enum):
    HAS_STATUS = "request has status"
    STATUS_EXPECTED = "status OK or rate limited"
    HAS_RATE_LIMIT_HEADERS = "has rate limit headers"
    RETRY_AFTER_ON_429 = "429 has Retry-After"


@dataclass(frozen=True, slots=True)
class RateLimitHeaders:
    remaining: int | None = None
    limit: int | None = None
    reset: str | None = None
    retry_after: str | None = None


@dataclass(frozen=True, slots=True)
class TrafficOutcome:
    kind: OutcomeKind
    latency_ms: float
    status_code: int | None
    error_type: ErrorType | None
    headers: RateLimitHeaders
    has_remaining_header: bool
    has_retry_after: bool
    retry_after_sec: int
    tag: str = ""


@dataclass(frozen=True, slots=True)
class Classification:
    outcome: TrafficOutcome
    checks: Mapping[Check, bool]

    @property
    def violations(self) -> tuple[Check, ...]:
        return tuple(check for check, ok in self.checks.items() if not ok)

    @property
    def ok(self) -> bool:
        return not self.violations


@dataclass(frozen=True, slots=True)
class LatencySummary:
    count: int = 0
    min_ms: float = 0.0
    mean_ms: float = 0.0
    p50_ms: float = 0.0
    p90_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    max_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class CheckTally:
    passes: int = 0
    fails: int = 0


@dataclass(frozen=True, slots=True)
class ScenarioStats:
    issued: int = 0
    started: int = 0
    dropped: int = 0
    completed: int = 0
    interrupted: int = 0
    failed: int = 0
    peak_workers: int = 0


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    run_id: str
    elapsed_sec: float
    allowed: int
    blocked: int
    malformed: int
    abandoned: int
    latency: LatencySummary
    latency_by_kind: Mapping[OutcomeKind, LatencySummary]
    checks: Mapping[Check, CheckTally]
    scenarios: Mapping[str, ScenarioStats] = field(default_factory=dict)
    latency_by_tag: Mapping[str, LatencySummary] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.allowed + self.blocked + self.malformed

    @property
    def violations(self) -> int:
        return sum(tally.fails for tally in self.checks.values())

    @property
    def failed_rate(self) -> float:
        return self.malformed / self.total if self.total else 0.0
