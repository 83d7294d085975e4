from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping

import httpx

from rlprobe.config import TargetConfig
from rlprobe.metrics import ErrorType


@dataclass(frozen=True, slots=True)
class ClientResponse:
    status_code: int | None
    headers: Mapping[str, str]
    latency_ms: float
    wall_time: float
    error_type: ErrorType | None = None
    tag: str = ""

    @property
    def received(self) -> bool:
        return self.status_code is not None

    @property
    def received_at(self) -> datetime:
        return datetime.fromtimestamp(self.wall_time + self.latency_ms / 1000.0, timezone.utc)


async def send_request(
    client: httpx.AsyncClient,
    target: TargetConfig,
    tag: str = "",
) -> ClientResponse:
    start_wall = time.time()
    start_mono = time.perf_counter()
    try:
        resp = await client.get(
            target.url,
            headers=dict(target.headers),
            timeout=target.timeout_sec,
        )
        await resp.aread()
    except httpx.TimeoutException:
        err = ErrorType.TIMEOUT
    except httpx.ConnectError:
        err = ErrorType.CONNECT
    except httpx.ReadError:
        err = ErrorType.READ
    except httpx.HTTPError:
        err = ErrorType.OTHER
    else:
        return ClientResponse(
            status_code=resp.status_code,
            headers=resp.headers,
            latency_ms=(time.perf_counter() - start_mono) * 1000.0,
            wall_time=start_wall,
            tag=tag,
        )
    return ClientResponse(
        status_code=None,
        headers={},
        latency_ms=(time.perf_counter() - start_mono) * 1000.0,
        wall_time=start_wall,
        error_type=err,
        tag=tag,
    )
