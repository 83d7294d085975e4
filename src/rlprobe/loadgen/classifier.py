from __future__ import annotations

from typing import Mapping

from rlprobe.loadgen.client import ClientResponse
from rlprobe.loadgen.retry_after import parse_retry_after
from rlprobe.metrics import Check, Classification, OutcomeKind, RateLimitHeaders, TrafficOutcome

REMAINING_HEADER = "X-RateLimit-Remaining"
LIMIT_HEADER = "X-RateLimit-Limit"
RESET_HEADER = "X-RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

STATUS_ALLOWED = 200
STATUS_BLOCKED = 429


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    # Proxies and clients re-case hyphenated names (X-RateLimit-* vs X-Ratelimit-*).
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_rate_limit_headers(headers: Mapping[str, str]) -> RateLimitHeaders:
    return RateLimitHeaders(
        remaining=_as_int(header_value(headers, REMAINING_HEADER)),
        limit=_as_int(header_value(headers, LIMIT_HEADER)),
        reset=header_value(headers, RESET_HEADER),
        retry_after=header_value(headers, RETRY_AFTER_HEADER),
    )


def classify(response: ClientResponse) -> Classification:
    """Classify one response against the rate limiter's response contract.

    Pure: the same response always yields an equal ``Classification``; an
    HTTP-date retry hint is measured from when the response arrived.
    Contract violations are reported as failed checks, never raised.
    """
    status = response.status_code
    has_remaining = header_value(response.headers, REMAINING_HEADER) is not None
    retry_raw = header_value(response.headers, RETRY_AFTER_HEADER)
    has_retry_after = retry_raw is not None

    if status == STATUS_ALLOWED:
        kind = OutcomeKind.ALLOWED
    elif status == STATUS_BLOCKED:
        kind = OutcomeKind.BLOCKED
    else:
        kind = OutcomeKind.MALFORMED

    checks = {
        Check.HAS_STATUS: status is not None,
        Check.STATUS_EXPECTED: kind is not OutcomeKind.MALFORMED,
        Check.HAS_RATE_LIMIT_HEADERS: has_remaining,
        Check.RETRY_AFTER_ON_429: status != STATUS_BLOCKED or has_retry_after,
    }
    outcome = TrafficOutcome(
        kind=kind,
        latency_ms=response.latency_ms,
        status_code=status,
        error_type=response.error_type,
        headers=parse_rate_limit_headers(response.headers),
        has_remaining_header=has_remaining,
        has_retry_after=has_retry_after,
        retry_after_sec=parse_retry_after(retry_raw, now=response.received_at) if kind is OutcomeKind.BLOCKED else 0,
        tag=response.tag,
    )
    return Classification(outcome=outcome, checks=checks)


def _as_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None
