"""Lifecycle reconciliation and plan/apply engine for Fusion resources.

The driver lives in ``fusion_provisioner.engine.engine`` and the reconciler in
``fusion_provisioner.engine.reconciler``.
"""

from fusion_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    ConflictError,
    DeleteVerificationError,
    DependencyCycleError,
    DestroyedResourceError,
    DuplicateAddressError,
    EngineError,
    ImmutableFieldViolationError,
    IndeterminateOutcomeError,
    InvalidCopyTargetError,
    MalformedAddressError,
    NotFoundError,
    OperationCancelledError,
    OperationFailedError,
    OperationTimeoutError,
    UnknownResourceTypeError,
    UnsupportedDeleteOptionError,
    ValidationError,
)
from fusion_provisioner.engine.registry import ResourceTypeRegistry
from fusion_provisioner.engine.types import (
    Action,
    ApplyResult,
    LifecycleState,
    Plan,
    ReadResult,
    ResourceChange,
    ResourceHandle,
)

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "ConflictError",
    "DeleteVerificationError",
    "DependencyCycleError",
    "DestroyedResourceError",
    "DuplicateAddressError",
    "EngineError",
    "ImmutableFieldViolationError",
    "IndeterminateOutcomeError",
    "InvalidCopyTargetError",
    "LifecycleState",
    "MalformedAddressError",
    "NotFoundError",
    "OperationCancelledError",
    "OperationFailedError",
    "OperationTimeoutError",
    "Plan",
    "ReadResult",
    "ResourceChange",
    "ResourceHandle",
    "ResourceTypeRegistry",
    "UnknownResourceTypeError",
    "UnsupportedDeleteOptionError",
    "ValidationError",
]
