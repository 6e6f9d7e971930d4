# src/atlas_os/core/retry.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

import httpx
import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = ("SSL", "handshake", "connection", "network")


def is_transient_error(err: BaseException) -> bool:
    """
    Transient = a transport failure anywhere in the cause chain, or a message
    that mentions a TLS/connection/network failure.

    The gateway client wraps its last connection error, so the chain is walked.
    """
    seen: set[int] = set()
    cur: BaseException | None = err
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        if isinstance(cur, (httpx.TransportError, openai.APIConnectionError)):
            return True
        msg = str(cur)
        if any(marker in msg for marker in _TRANSIENT_MARKERS):
            return True
        cur = cur.__cause__
    return False


def with_retry(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    delay_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call fn, retrying only transient network errors.

    Backoff is linear: delay_seconds * (attempt + 1).
    Non-transient errors and the last failure propagate unchanged.
    """
    attempts = max(1, int(max_retries))
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if not is_transient_error(e) or attempt == attempts - 1:
                raise
            logger.info("Retry %d/%d after transient error: %s", attempt + 1, attempts, e)
            sleep(delay_seconds * (attempt + 1))
    raise RuntimeError("unreachable")
