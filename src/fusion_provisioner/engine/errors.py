"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fusion_provisioner.engine.guard import FieldViolation


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource type has no registration."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    """Raised when multiple desired resources share the same address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class DependencyCycleError(EngineError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, addresses: list[str]) -> None:
        msg = "Dependency cycle detected"
        if addresses:
            msg += f": {', '.join(addresses)}"
        super().__init__(msg)
        self.addresses = addresses


class ValidationError(EngineError):
    """One or more resources failed plan validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class MalformedAddressError(EngineError):
    """An import path does not match the resource kind's path shape."""

    def __init__(self, kind: str, pattern: str, path: str) -> None:
        super().__init__(
            f"invalid {kind} import path. Expected path in format '{pattern}'"
        )
        self.kind = kind
        self.pattern = pattern
        self.path = path


class NotFoundError(EngineError):
    """The backend answered 404 for a resource that must exist."""

    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(message or f"Resource not found: {path}")
        self.path = path


class ConflictError(EngineError):
    """A resource with the same name already exists in the parent scope."""

    def __init__(self, path: str, message: str = "") -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"Resource already exists: {path}{detail}")
        self.path = path


class ImmutableFieldViolationError(EngineError):
    """An update tried to change one or more immutable fields."""

    def __init__(self, kind: str, violations: Sequence[FieldViolation]) -> None:
        self.kind = kind
        self.violations = list(violations)
        lines = [f"{v.field}: {v.observed!r} -> {v.desired!r}" for v in self.violations]
        super().__init__(
            f"attempt to update an immutable field of {kind}: " + "; ".join(lines)
        )


class InvalidCopyTargetError(EngineError):
    """A copy source was attached to a target that cannot accept it."""


class UnsupportedDeleteOptionError(EngineError):
    """A delete option was requested that the resource kind does not declare."""

    def __init__(self, kind: str, options: Sequence[str]) -> None:
        super().__init__(f"Unsupported delete option(s) for {kind}: {', '.join(sorted(options))}")
        self.kind = kind
        self.options = list(options)


class ApiError(EngineError):
    """The backend answered with an unexpected HTTP status."""

    def __init__(self, method: str, path: str, status_code: int, message: str = "") -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"{method} {path} returned HTTP {status_code}{detail}")
        self.method = method
        self.path = path
        self.status_code = status_code


class OperationFailedError(EngineError):
    """The backend reported a terminal failure for an operation.

    Never retried automatically; the caller decides whether to try again.
    """

    def __init__(
        self,
        *,
        operation_id: str,
        request_type: str,
        message: str,
        pure_code: str,
        http_code: str,
    ) -> None:
        super().__init__(
            f"operation '{request_type}' failed: {message} (Pure '{pure_code}', Http {http_code})"
        )
        self.operation_id = operation_id
        self.request_type = request_type
        self.pure_code = pure_code
        self.http_code = http_code


class IndeterminateOutcomeError(EngineError):
    """Polling stopped before the operation reached a terminal state.

    The backend operation may still complete; re-read before acting again.
    """

    def __init__(self, operation_id: str, message: str) -> None:
        super().__init__(message)
        self.operation_id = operation_id


class OperationTimeoutError(IndeterminateOutcomeError):
    """The poll deadline or attempt budget was exhausted."""


class OperationCancelledError(IndeterminateOutcomeError):
    """The caller canceled while the operation was still running."""


class DeleteVerificationError(EngineError):
    """The resource is still readable after its delete operation succeeded."""

    def __init__(self, path: str, status_code: int) -> None:
        super().__init__(
            f"Delete of {path} did not take effect: verification read returned HTTP {status_code}"
        )
        self.path = path
        self.status_code = status_code


class DestroyedResourceError(EngineError):
    """A declared resource exists only in the soft-deleted (destroyed) state."""

    def __init__(self, address: str, path: str) -> None:
        super().__init__(
            f"{address} is destroyed but not eradicated ({path}); "
            "recover or eradicate it before applying"
        )
        self.address = address
        self.path = path


class ApplyError(EngineError):
    """Raised when an apply fails mid-way through.

    Carries the partial result (what was applied before the failure) so
    callers can inspect progress.  The original exception is chained via
    ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, message: str) -> None:
        from fusion_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied)
        self.address = address
        super().__init__(f"Apply failed on {address}: {message}")


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled (e.g., Ctrl-C)."""
