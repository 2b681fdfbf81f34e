"""
Vmjack exception hierarchy.

Every error raised by the library inherits from :class:`VmjackError`.
Compute failures share :class:`ComputeError` as their base, with
specific sub-exceptions for the failure modes callers handle differently
(vanished resources, invalid state, stale fingerprints, failed or
timed-out operations).
"""

from __future__ import annotations

from typing import Any


# ── Base ──────────────────────────────────────────────────────────────
class VmjackError(Exception):
    """Root exception for all Vmjack errors."""


# ── Compute ───────────────────────────────────────────────────────────
class ComputeError(VmjackError):
    """Base exception for server and disk operations."""


class NotFoundError(ComputeError):
    """Server, disk or operation no longer exists."""


class PreconditionError(ComputeError):
    """Operation is not valid for the resource's current status."""


class ConflictError(ComputeError):
    """Write rejected because of a stale fingerprint or a name clash."""


class ConfigurationError(ComputeError):
    """Invalid local input, e.g. a missing public key file."""


class OperationError(ComputeError):
    """A remote operation finished with an error, or could not be polled.

    Attributes:
        operation_id: Provider identifier of the failed operation.
        target: Resource the operation acted on.
        errors: Provider-reported error payload.
    """

    def __init__(
        self,
        message: str,
        *,
        operation_id: str | None = None,
        target: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.operation_id = operation_id
        self.target = target
        self.errors = errors or []


# ── Timeouts ──────────────────────────────────────────────────────────
class OperationTimeoutError(ComputeError, TimeoutError):
    """Operation did not reach a terminal state in time.

    The remote operation keeps running; only the local wait gave up.
    """


class WaitTimeoutError(ComputeError, TimeoutError):
    """Resource did not satisfy the awaited condition in time."""
