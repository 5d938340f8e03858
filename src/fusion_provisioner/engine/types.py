"""Engine types (handles, observed state, plan, changes)."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LifecycleState(str, Enum):
    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    UPDATING = "updating"
    DELETING = "deleting"
    DESTROYED = "destroyed"


class ResourceHandle(BaseModel):
    """Backend identity of a resource.

    ``id`` is assigned by the backend and never changes; ``name`` and ``path``
    are the user-facing identity inside the parent scope.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str
    path: str


class ReadResult(BaseModel):
    """Observed state of one resource instance."""

    state: LifecycleState
    handle: ResourceHandle | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def exists(self) -> bool:
        return self.state is LifecycleState.PRESENT


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "no-op"


class ResourceChange(BaseModel):
    address: str
    resource_type: str
    action: Action
    path: str
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    handle: ResourceHandle | None = None


class Plan(BaseModel):
    destroy: bool = False
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in self.changes:
            counts[c.action.value] += 1
        return counts

    @property
    def has_changes(self) -> bool:
        return any(c.action is not Action.NOOP for c in self.changes)


class ApplyResult(BaseModel):
    applied: list[ResourceChange] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in self.applied:
            counts[c.action.value] += 1
        return counts
