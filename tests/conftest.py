from __future__ import annotations

import time
from typing import Callable, Mapping

import pytest

from rlprobe.loadgen.client import ClientResponse
from rlprobe.metrics import ErrorType


def _valid_headers(remaining: int = 5, retry_after: str | None = None) -> dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Reset": "1700000000",
    }
    if retry_after is not None:
        headers["Retry-After"] = retry_after
    return headers


@pytest.fixture
def valid_headers() -> Callable[..., dict[str, str]]:
    return _valid_headers


@pytest.fixture
def make_response() -> Callable[..., ClientResponse]:
    def _make(
        status: int | None = 200,
        headers: Mapping[str, str] | None = None,
        latency_ms: float = 12.5,
        error_type: ErrorType | None = None,
    ) -> ClientResponse:
        return ClientResponse(
            status_code=status,
            headers=dict(headers) if headers is not None else {},
            latency_ms=latency_ms,
            wall_time=time.time(),
            error_type=error_type,
        )

    return _make
