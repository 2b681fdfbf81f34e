"""
Operation tracking.

Every mutating provider call returns an :class:`Operation`.  The
:class:`OperationTracker` submits the call, polls the operation and
resolves it to DONE or ERROR.  Failed operations are surfaced, never
retried; only the status checks themselves are retried on transient
errors.
"""

from __future__ import annotations

import time
from typing import Callable

from vmjack.base.config import PollingConfig
from vmjack.base.exceptions import OperationError, OperationTimeoutError
from vmjack.base.logger import VmjackLogger, operation_context, vj_logger
from vmjack.base.models import Operation, OperationStatus
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.base.retry import Backoff, retry_call
from vmjack.base.wait import poll_until


def _describe_errors(op: Operation) -> str:
    if not op.errors:
        return "no error details"
    return "; ".join(
        f"{e.get('code', 'UNKNOWN')}: {e.get('message', '')}".rstrip(": ") for e in op.errors
    )


class OperationTracker:
    """Submits mutating calls and waits for their operations.

    Attributes:
        provider: Provider the operations run against.
        polling: Cadence, timeout and retry bounds for polling.
    """

    def __init__(
        self,
        provider: ComputeProviderBlueprint,
        polling: PollingConfig | None = None,
        logger: VmjackLogger | None = None,
    ) -> None:
        self.provider = provider
        self.polling = polling or PollingConfig()
        self._log = logger or vj_logger

    def submit(
        self,
        kind: str,
        call: Callable[[], Operation],
        target: str | None = None,
    ) -> Operation:
        """Issue one remote mutating call and return its operation.

        Provider errors raised by *call* propagate unchanged.
        """
        op = call()
        if not op.kind:
            op.kind = kind
        if target and not op.target:
            op.target = target
        self._log.info(
            f"Submitted {op.kind} ({op.status.value})",
            **operation_context(self.provider.name, op),
        )
        return op

    def poll(self, op: Operation, deadline: float | None = None) -> Operation:
        """Refresh *op* in place with a single status check.

        A terminal operation is returned as is, without a remote call.
        Retries of transient errors stop at *deadline*, a
        ``time.monotonic()`` value.

        Raises:
            OperationError: If transient errors persist past the retry bound.
        """
        if op.done:
            return op
        try:
            fresh = retry_call(
                self.provider.get_operation,
                op,
                max_attempts=self.polling.max_poll_attempts,
                delays=Backoff.from_policy(self.polling),
                retryable=self.provider.transient_errors,
                context=operation_context(self.provider.name, op),
                deadline=deadline,
            )
        except self.provider.transient_errors as e:
            raise OperationError(
                f"Could not poll operation '{op.id}', transient errors persisted: {e}",
                operation_id=op.id,
                target=op.target,
            ) from e
        op.status = fresh.status
        if fresh.status is OperationStatus.ERROR:
            op.errors = list(fresh.errors)
        return op

    def await_completion(
        self,
        op: Operation,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> Operation:
        """Block until *op* is DONE.

        Args:
            op: Operation returned by :meth:`submit`.
            timeout: Seconds to wait; defaults to the polling config.
            poll_interval: First delay between polls.

        Returns:
            The same operation object, now DONE.

        Raises:
            OperationTimeoutError: If the operation is still running at the
                deadline.  The remote operation is left running.
            OperationError: If the operation finished with an error.
        """
        limit = self.polling.timeout if timeout is None else timeout
        deadline = time.monotonic() + limit

        def _timed_out(seconds: float) -> Exception:
            return OperationTimeoutError(
                f"Operation '{op.id}' ({op.kind}) on '{op.target}' still "
                f"{op.status.value} after {seconds:.1f}s"
            )

        poll_until(
            lambda: self.poll(op, deadline),
            lambda o: o.done,
            timeout=limit,
            backoff=Backoff.from_policy(self.polling, poll_interval),
            on_timeout=_timed_out,
        )
        if op.failed:
            self._log.error(
                f"{op.kind} failed: {_describe_errors(op)}",
                **operation_context(self.provider.name, op),
            )
            raise OperationError(
                f"Operation '{op.id}' ({op.kind}) on '{op.target}' failed: "
                f"{_describe_errors(op)}",
                operation_id=op.id,
                target=op.target,
                errors=op.errors,
            )
        self._log.info(f"{op.kind} done", **operation_context(self.provider.name, op))
        return op

    def run(
        self,
        kind: str,
        call: Callable[[], Operation],
        target: str | None = None,
        async_: bool = True,
    ) -> Operation:
        """Submit, and unless *async_*, wait for completion."""
        op = self.submit(kind, call, target)
        if async_:
            return op
        return self.await_completion(op)
