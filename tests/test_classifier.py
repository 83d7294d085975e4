from __future__ import annotations

from hypothesis import given, strategies as st

from rlprobe.loadgen.classifier import classify, header_value, parse_rate_limit_headers
from rlprobe.loadgen.client import ClientResponse
from rlprobe.metrics import Check, ErrorType, OutcomeKind


def test_allowed_response_passes_every_check(make_response, valid_headers) -> None:
    result = classify(make_response(200, valid_headers()))
    assert result.outcome.kind is OutcomeKind.ALLOWED
    assert result.ok
    assert result.outcome.headers.remaining == 5
    assert result.outcome.headers.limit == 10


def test_blocked_with_retry_after(make_response, valid_headers) -> None:
    result = classify(make_response(429, valid_headers(remaining=0, retry_after="7")))
    assert result.outcome.kind is OutcomeKind.BLOCKED
    assert result.ok
    assert result.outcome.retry_after_sec == 7


def test_blocked_without_retry_after_is_flagged(make_response, valid_headers) -> None:
    result = classify(make_response(429, valid_headers(remaining=0)))
    assert result.outcome.kind is OutcomeKind.BLOCKED
    assert result.violations == (Check.RETRY_AFTER_ON_429,)
    assert result.outcome.retry_after_sec == 0


def test_missing_remaining_header_flagged_on_allowed(make_response, valid_headers) -> None:
    result = classify(make_response(200, {"X-RateLimit-Limit": "10"}))
    assert result.outcome.kind is OutcomeKind.ALLOWED
    assert result.violations == (Check.HAS_RATE_LIMIT_HEADERS,)


def test_unexpected_status_is_malformed(make_response, valid_headers) -> None:
    result = classify(make_response(503, valid_headers()))
    assert result.outcome.kind is OutcomeKind.MALFORMED
    assert Check.STATUS_EXPECTED in result.violations
    assert Check.HAS_STATUS not in result.violations


def test_transport_failure_is_malformed(make_response) -> None:
    result = classify(make_response(None, {}, error_type=ErrorType.CONNECT))
    assert result.outcome.kind is OutcomeKind.MALFORMED
    assert result.outcome.error_type is ErrorType.CONNECT
    assert set(result.violations) == {
        Check.HAS_STATUS,
        Check.STATUS_EXPECTED,
        Check.HAS_RATE_LIMIT_HEADERS,
    }


def test_header_lookup_ignores_canonicalisation(make_response) -> None:
    headers = {"X-Ratelimit-Remaining": "3", "retry-after": "2"}
    assert header_value(headers, "X-RateLimit-Remaining") == "3"
    parsed = parse_rate_limit_headers(headers)
    assert parsed.remaining == 3
    assert parsed.retry_after == "2"
    result = classify(make_response(429, headers))
    assert result.ok


def test_non_numeric_quota_header_still_counts_as_present(make_response) -> None:
    result = classify(make_response(200, {"X-RateLimit-Remaining": "n/a"}))
    assert result.ok
    assert result.outcome.headers.remaining is None


def test_reclassifying_is_idempotent(make_response, valid_headers) -> None:
    response = make_response(429, valid_headers(remaining=0, retry_after="Wed, 21 Oct 2015 07:28:00 GMT"))
    assert classify(response) == classify(response)


@given(
    status=st.one_of(st.none(), st.integers(min_value=100, max_value=599)),
    with_remaining=st.booleans(),
    with_retry=st.booleans(),
)
def test_exactly_one_outcome_kind(status: int | None, with_remaining: bool, with_retry: bool) -> None:
    headers = {}
    if with_remaining:
        headers["X-RateLimit-Remaining"] = "1"
    if with_retry:
        headers["Retry-After"] = "1"
    response = ClientResponse(status_code=status, headers=headers, latency_ms=1.0, wall_time=0.0)
    result = classify(response)
    expected = {200: OutcomeKind.ALLOWED, 429: OutcomeKind.BLOCKED}.get(status, OutcomeKind.MALFORMED)
    assert result.outcome.kind is expected
    assert result.checks[Check.RETRY_AFTER_ON_429] is (status != 429 or with_retry)
