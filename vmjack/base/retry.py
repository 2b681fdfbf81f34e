"""
Bounded retries for transient failures.

Only status reads are retried: operation polls and resource reloads.  A
mutating call is submitted once, and an operation that finished with an
error is reported, never resubmitted.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Iterator, TypeVar

from vmjack.base.config import MIN_POLL_INTERVAL, PollingConfig
from vmjack.base.logger import vj_logger

T = TypeVar("T")


class Backoff:
    """Iterator of sleep intervals, fixed or capped-exponential.

    Args:
        interval: First delay in seconds.
        max_interval: Upper bound for any delay.
        factor: Growth per step; 1 keeps the interval fixed.
    """

    def __init__(self, interval: float, max_interval: float, factor: float = 1.0) -> None:
        self.interval = max(interval, MIN_POLL_INTERVAL)
        self.max_interval = max(max_interval, self.interval)
        self.factor = max(factor, 1.0)

    @classmethod
    def from_policy(cls, policy: PollingConfig, interval: float | None = None) -> Backoff:
        start = policy.interval if interval is None else interval
        return cls(start, max(policy.max_interval, start), policy.backoff_factor)

    def __iter__(self) -> Iterator[float]:
        delay = self.interval
        while True:
            yield delay
            delay = min(delay * self.factor, self.max_interval)


def retry_call(
    fn: Callable[..., T],
    *args: Any,
    max_attempts: int,
    delays: Iterable[float],
    retryable: tuple[type[BaseException], ...],
    context: dict[str, Any] | None = None,
    deadline: float | None = None,
    **kwargs: Any,
) -> T:
    """Call *fn*, retrying on *retryable* exceptions.

    Args:
        fn: Callable to invoke with ``*args`` and ``**kwargs``.
        max_attempts: Total attempts, including the first.
        delays: Sleep intervals between attempts.
        retryable: Exception types that trigger another attempt.
        context: Structured log fields (resource, operation_id, ...).
        deadline: ``time.monotonic()`` value after which no further
            attempt is made; delays are shortened to end by it.

    Raises:
        The last retryable exception once attempts or time run out; any
        other exception immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    context = context or {}
    name = getattr(fn, "__qualname__", repr(fn))
    pending = iter(delays)
    attempt = 1
    while True:
        try:
            return fn(*args, **kwargs)
        except retryable as exc:
            remaining = None if deadline is None else deadline - time.monotonic()
            if attempt >= max_attempts or (remaining is not None and remaining <= 0):
                vj_logger.error(f"Giving up on {name} after {attempt} attempts: {exc}", **context)
                raise
            delay = next(pending)
            if remaining is not None:
                delay = min(delay, remaining)
            vj_logger.warning(
                f"Attempt {attempt}/{max_attempts} for {name} failed ({exc}), "
                f"retrying in {delay:.1f}s",
                **context,
            )
            time.sleep(delay)
            attempt += 1
