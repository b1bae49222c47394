# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import time
import functools
from dataclasses import dataclass, field
from typing import Callable


class RetryError(RuntimeError):
    pass


def _never_fatal(exc: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """
    How long and how often to poll, and which errors end the wait early.

    interval_seconds: pause between evaluations
    timeout_seconds: hard bound on the whole wait
    is_fatal: classifies a raised error; False means transient (keep polling)
    clock / sleep: injectable so tests don't wait on real time
    """

    interval_seconds: float = 2.0
    timeout_seconds: float = 1200.0
    is_fatal: Callable[[BaseException], bool] = _never_fatal
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must not be negative")

    def fatal_on(self, *types: type[BaseException]) -> "RetryPolicy":
        """Copy of this policy that also treats the given error types as fatal."""
        previous = self.is_fatal

        def classify(exc: BaseException) -> bool:
            return isinstance(exc, types) or previous(exc)

        return RetryPolicy(
            interval_seconds=self.interval_seconds,
            timeout_seconds=self.timeout_seconds,
            is_fatal=classify,
            clock=self.clock,
            sleep=self.sleep,
        )


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations.

    retries: number of attempts
    delay: seconds between attempts
    retry_on: exception types to retry
    on_retry: callback(attempt, exception)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        break
                    sleep(delay)
            raise RetryError(f"{fn.__name__} failed after {retries} retries") from last_exc
        return wrapper
    return decorator
