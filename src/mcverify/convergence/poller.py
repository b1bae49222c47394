# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/convergence/poller.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from mcverify.errors import ConvergenceTimeout
from mcverify.utils.retry import RetryPolicy

log = logging.getLogger("mcverify")


def poll_until(
    predicate: Callable[[], bool],
    policy: RetryPolicy,
    *,
    target: object,
) -> float:
    """
    Evaluate `predicate` until it returns True or the policy's timeout elapses.

    - True -> converged, return the elapsed seconds
    - False -> not yet, poll again after the interval
    - raises -> policy.is_fatal decides; transient errors are remembered as the
      last observed error and polling continues, fatal ones propagate as-is

    The first evaluation is immediate. The last one happens at the deadline,
    so ConvergenceTimeout is never raised before `timeout_seconds`.
    """
    start = policy.clock()
    last_error: Optional[BaseException] = None
    attempt = 0

    while True:
        attempt += 1
        try:
            if predicate():
                elapsed = policy.clock() - start
                log.debug("[poll] %s converged after %d attempts (%.1fs)", target, attempt, elapsed)
                return elapsed
        except Exception as exc:
            if policy.is_fatal(exc):
                raise
            if last_error is None or str(exc) != str(last_error):
                log.debug("[poll] %s transient error: %s", target, exc)
            last_error = exc

        elapsed = policy.clock() - start
        remaining = policy.timeout_seconds - elapsed
        if remaining <= 0:
            raise ConvergenceTimeout(target, elapsed, last_error)

        if attempt % 15 == 0:
            log.info(
                "[poll] Still waiting for %s (%.0fs/%.0fs)",
                target, elapsed, policy.timeout_seconds,
            )
        policy.sleep(min(policy.interval_seconds, remaining))
