"""Operation polling.

Every backend mutation answers with an operation record that must be polled
until it reaches a terminal status before the change is durable.  Waits
between polls go through ``threading.Event.wait`` so that a caller-owned
cancel event interrupts them immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from fusion_provisioner.core.client import ApiRequest, TransportError
from fusion_provisioner.engine.errors import (
    ApiError,
    ConflictError,
    IndeterminateOutcomeError,
    NotFoundError,
    OperationCancelledError,
    OperationFailedError,
    OperationTimeoutError,
)
from fusion_provisioner.engine.types import ResourceHandle

if TYPE_CHECKING:
    from collections.abc import Callable

    from fusion_provisioner.core.client import ApiResponse, Backend

logger = logging.getLogger(__name__)

ALREADY_EXISTS = "ALREADY_EXISTS"


class OperationStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    ABORTING = "Aborting"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class OperationError(BaseModel):
    message: str = ""
    pure_code: str = ""
    http_code: str = ""

    @field_validator("http_code", mode="before")
    @classmethod
    def _http_code_as_str(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ResultRef(BaseModel):
    """Reference to the resource an operation acted on."""

    id: str | None = None
    name: str | None = None
    self_link: str | None = None


class Operation(BaseModel):
    """Backend operation record (``GET /operations/<id>``)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: OperationStatus
    request_type: str = ""
    result_ref: ResultRef | None = None
    error: OperationError | None = None
    retry_in: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_result_ref(cls, data: Any) -> Any:
        if isinstance(data, dict) and "result_ref" not in data:
            resource = (data.get("result") or {}).get("resource")
            if resource:
                data = {**data, "result_ref": resource}
        return data

    @field_validator("status", mode="before")
    @classmethod
    def _status_case_insensitive(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in (OperationStatus.SUCCEEDED, OperationStatus.FAILED)


def parse_operation(method: str, path: str, response: ApiResponse) -> Operation:
    """Read the operation record out of a mutation or poll response."""
    try:
        return Operation.model_validate(response.body)
    except ValidationError as exc:
        raise ApiError(
            method,
            path,
            response.status_code,
            f"response is not an operation record ({exc.error_count()} validation errors)",
        ) from exc


class PollPolicy(BaseModel):
    """How often and for how long operations are polled."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=1.0, gt=0)
    backoff: float = Field(default=1.0, ge=1.0)
    max_interval: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=600, ge=1)
    per_attempt_timeout: float = Field(default=30.0, gt=0)
    deadline: float | None = Field(default=None, gt=0)


class OperationPoller:
    def __init__(
        self,
        backend: Backend,
        policy: PollPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._policy = policy or PollPolicy()
        self._clock = clock

    @property
    def policy(self) -> PollPolicy:
        return self._policy

    def _fetch(self, operation_id: str) -> Operation:
        path = f"/operations/{operation_id}"
        response = self._backend.call(
            ApiRequest("GET", path, timeout=self._policy.per_attempt_timeout)
        )
        if not response.ok:
            raise ApiError("GET", path, response.status_code, response.error_message())
        return parse_operation("GET", path, response)

    def _next_delay(self, op: Operation, delay: float) -> float:
        if op.retry_in:
            return min(op.retry_in / 1000.0, self._policy.max_interval)
        return delay

    def wait(
        self,
        op: Operation,
        *,
        cancel: threading.Event | None = None,
        path: str | None = None,
    ) -> Operation:
        """Block until *op* is terminal and return the final record.

        Raises:
            OperationFailedError: The operation finished as ``Failed``.
            ConflictError: The operation failed because the name is taken.
            OperationTimeoutError: The deadline or attempt budget ran out.
            OperationCancelledError: *cancel* was set while waiting.
            IndeterminateOutcomeError: Polling itself was rejected; server errors
                and transport failures are retried within the attempt budget.
        """
        cancel = cancel or threading.Event()
        policy = self._policy
        started = self._clock()
        delay = policy.interval
        attempts = 0

        while not op.is_terminal:
            if cancel.is_set():
                raise OperationCancelledError(
                    op.id,
                    f"canceled while waiting for operation '{op.request_type}' ({op.id}); "
                    "it may still complete",
                )
            if attempts >= policy.max_attempts:
                raise OperationTimeoutError(
                    op.id,
                    f"operation '{op.request_type}' ({op.id}) still {op.status.value} "
                    f"after {attempts} polls",
                )

            wait_for = self._next_delay(op, delay)
            if policy.deadline is not None:
                remaining = policy.deadline - (self._clock() - started)
                if remaining <= 0:
                    raise OperationTimeoutError(
                        op.id,
                        f"operation '{op.request_type}' ({op.id}) still {op.status.value} "
                        f"after {policy.deadline:g}s",
                    )
                wait_for = min(wait_for, remaining)

            if cancel.wait(wait_for):
                continue

            attempts += 1
            try:
                op = self._fetch(op.id)
            except TransportError as exc:
                logger.warning("Polling operation %s failed, will retry: %s", op.id, exc)
            except ApiError as exc:
                if exc.status_code < 500:
                    raise IndeterminateOutcomeError(
                        op.id,
                        f"lost track of operation '{op.request_type}' ({op.id}): {exc}; "
                        "it may still complete",
                    ) from exc
                logger.warning("Polling operation %s failed, will retry: %s", op.id, exc)
            else:
                logger.debug("Operation %s (%s): %s", op.id, op.request_type, op.status.value)
            delay = min(delay * policy.backoff, policy.max_interval)

        if op.status is OperationStatus.FAILED:
            self._raise_failed(op, path)
        return op

    @staticmethod
    def _raise_failed(op: Operation, path: str | None) -> None:
        err = op.error or OperationError()
        failure = OperationFailedError(
            operation_id=op.id,
            request_type=op.request_type,
            message=err.message,
            pure_code=err.pure_code,
            http_code=err.http_code,
        )
        if err.pure_code == ALREADY_EXISTS:
            raise ConflictError(path or op.request_type, str(failure)) from failure
        raise failure

    def await_resource(
        self,
        op: Operation,
        *,
        fallback_path: str,
        collection: str | None = None,
        cancel: threading.Event | None = None,
    ) -> tuple[ResourceHandle, dict[str, Any]]:
        """Wait for *op*, then re-read the resource it produced.

        The canonical state is read from the operation's result self link,
        from ``/resources/<collection>/<id>`` when only the id is known, or
        from *fallback_path* when the operation carries no result reference.
        """
        done = self.wait(op, cancel=cancel, path=fallback_path)
        ref = done.result_ref
        if ref is not None and ref.self_link:
            path = ref.self_link
        elif ref is not None and ref.id and collection:
            path = f"/resources/{collection}/{ref.id}"
        else:
            path = fallback_path

        response = self._backend.call(ApiRequest("GET", path))
        if response.status_code == 404:
            raise NotFoundError(path, f"Resource not found after operation {done.id}: {path}")
        if not response.ok:
            raise ApiError("GET", path, response.status_code, response.error_message())

        payload: dict[str, Any] = response.body or {}
        handle = ResourceHandle(
            id=payload.get("id") or (ref.id if ref else None),
            name=payload.get("name") or (ref.name if ref and ref.name else path.rsplit("/", 1)[-1]),
            path=payload.get("self_link") or path,
        )
        return handle, payload
