"""Retry with exponential backoff, shared by the feed and download stages."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit and base delay; the delay doubles after each attempt."""

    max_attempts: int = 5
    initial_delay: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return self.initial_delay * (2 ** (attempt - 1))


def retry_with_backoff(
    operation: Callable[[int], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Call ``operation(attempt)`` until it succeeds or attempts run out.

    Only exceptions in *retry_on* are retried; the last one is re-raised
    once ``policy.max_attempts`` calls have failed. *on_retry* receives the
    failed attempt number, the error, and the delay about to be slept.
    """
    attempt = 1
    while True:
        try:
            return operation(attempt)
        except retry_on as exc:
            if attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep(delay)
        attempt += 1
