"""Static per-kind description consumed by the generic reconciler.

Every resource kind differs from the others only in data: where it lives in
the path hierarchy, which fields are frozen after creation, and which
delete-time flags it understands.  ``ResourceDescriptor`` carries exactly
that, so one reconciler can drive all kinds.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

DeleteEffect = Literal["eradicate", "destroy_snapshots"]


@dataclass(frozen=True, slots=True)
class PathSegment:
    """One ancestor level in a resource path, e.g. ``tenants/<tenant>``.

    ``field`` is the model attribute holding the ancestor's name and
    ``resource_type`` the kind that ancestor is declared as.
    """

    label: str
    field: str
    placeholder: str
    resource_type: str
    required: bool = True


@dataclass(frozen=True, slots=True)
class DeleteOption:
    """A delete-time flag recognised by a resource kind.

    ``snapshot_filter`` names the snapshot query parameter used by the
    ``destroy_snapshots`` effect, and ``snapshot_filter_source`` whether it is
    filled with the resource's ``name`` or its ``id``.
    """

    name: str
    effect: DeleteEffect
    snapshot_filter: str | None = None
    snapshot_filter_source: Literal["name", "id"] = "name"


@dataclass(frozen=True)
class ResourceDescriptor:
    resource_type: str
    kind: str
    collection: str
    placeholder: str
    parents: tuple[PathSegment, ...] = ()
    immutable_fields: frozenset[str] = frozenset()
    computed_fields: frozenset[str] = frozenset()
    delete_options: Mapping[str, DeleteOption] = field(default_factory=dict)
    supports_import: bool = True
    soft_delete: bool = False
    detach_on_delete: Mapping[str, Any] | None = None
    reattach_fields: frozenset[str] = frozenset()
    attachment_field: str | None = None
    # Kinds named by the backend are found by these attributes, not by name.
    lookup_fields: tuple[str, ...] = ()

    @property
    def parent_fields(self) -> tuple[str, ...]:
        return tuple(seg.field for seg in self.parents)

    def pattern(self) -> str:
        """Canonical import path pattern shown to users on decode failures."""
        parts = [f"/{seg.label}/<{seg.placeholder}>" for seg in self.parents]
        parts.append(f"/{self.collection}/<{self.placeholder}>")
        return "".join(parts)
