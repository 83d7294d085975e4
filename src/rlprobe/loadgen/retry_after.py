from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_retry_after(value: str | None, now: datetime | None = None) -> int:
    """Convert a Retry-After value into whole seconds to wait.

    Accepts delta-seconds (``"120"``) or an HTTP-date. Anything unparseable,
    and any date already in the past, yields 0.
    """
    if not value:
        return 0
    match = _LEADING_INT.match(value)
    if match is not None:
        seconds = int(match.group(1))
        if seconds >= 0:
            return seconds
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        return 0
    if retry_at is None:
        return 0
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0, math.ceil((retry_at - current).total_seconds()))
