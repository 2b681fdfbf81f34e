"""
Generic wait/polling utilities.

:func:`poll_until` is the shared loop behind operation tracking and
predicate waits.  :func:`wait_for` reloads a resource handle until a pure
predicate over its fresh snapshot holds::

    wait_for(server, lambda s: s.stopped, timeout=300)
    wait_for(disk, lambda d: d.attached)
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, TypeVar

from vmjack.base.config import PollingConfig
from vmjack.base.exceptions import OperationError, WaitTimeoutError
from vmjack.base.retry import Backoff, retry_call

T = TypeVar("T")
S = TypeVar("S")

DEFAULT_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError,)


class Reloadable(Protocol[S]):
    name: str

    def reload(self) -> S: ...


def poll_until(
    step: Callable[[], T],
    done: Callable[[T], bool],
    *,
    timeout: float,
    backoff: Backoff,
    on_timeout: Callable[[float], Exception],
) -> T:
    """Call *step* until *done* accepts its result or *timeout* elapses.

    The first check happens immediately; sleeping only follows a check
    that was not done.

    Raises:
        The exception built by *on_timeout* once the deadline passes.
    """
    deadline = time.monotonic() + timeout
    delays = iter(backoff)
    while True:
        result = step()
        if done(result):
            return result
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise on_timeout(timeout)
        time.sleep(min(next(delays), remaining))


def wait_for(
    resource: Reloadable[S],
    predicate: Callable[[S], bool],
    timeout: float | None = None,
    poll_interval: float | None = None,
    policy: PollingConfig | None = None,
) -> S:
    """Block until *predicate* holds for a freshly reloaded snapshot.

    Each reload is retried on the provider's transient errors, up to the
    policy's ``max_poll_attempts`` and never past the deadline.

    Args:
        resource: Handle with a ``reload()`` returning its snapshot.
        predicate: Pure function of the snapshot.
        timeout: Seconds to wait; defaults to the policy's timeout.
        poll_interval: First delay between reloads; defaults to the policy's.
        policy: Polling policy; defaults to the resource's own, if any.

    Returns:
        The snapshot that satisfied the predicate.

    Raises:
        WaitTimeoutError: If the predicate never held before the timeout.
        OperationError: If reloads keep failing with transient errors.
        NotFoundError: If the resource disappears while waiting.
    """
    policy = policy or getattr(resource, "polling", None) or PollingConfig()
    limit = policy.timeout if timeout is None else timeout
    name = getattr(resource, "name", repr(resource))
    provider = getattr(resource, "provider", None)
    transient = getattr(provider, "transient_errors", DEFAULT_TRANSIENT_ERRORS)
    deadline = time.monotonic() + limit

    def _reload() -> S:
        try:
            return retry_call(
                resource.reload,
                max_attempts=policy.max_poll_attempts,
                delays=Backoff.from_policy(policy, poll_interval),
                retryable=transient,
                context={"resource": name},
                deadline=deadline,
            )
        except transient as e:
            raise OperationError(
                f"Could not reload '{name}', transient errors persisted: {e}",
                target=name,
            ) from e

    def _timed_out(seconds: float) -> Exception:
        return WaitTimeoutError(f"Timed out after {seconds:.1f}s waiting for '{name}'")

    return poll_until(
        _reload,
        predicate,
        timeout=limit,
        backoff=Backoff.from_policy(policy, poll_interval),
        on_timeout=_timed_out,
    )
