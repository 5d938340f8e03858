"""Base resource class for Fusion resources."""

from __future__ import annotations

from functools import cache
from typing import Annotated, Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fusion_provisioner.core.address import encode
from fusion_provisioner.resources.descriptor import DeleteOption, PathSegment, ResourceDescriptor
from fusion_provisioner.resources.markers import (
    Computed,
    Immutable,
    ResourceRef,
    Wire,
    collect_compare_strategies,
    collect_delete_flags,
    collect_flagged,
    collect_ref_specs,
    extract_attrs,
    wire_fields,
)

TENANT = PathSegment("tenants", "tenant", "tenant", "fusion_tenant")
TENANT_SPACE = PathSegment("tenant-spaces", "tenant_space", "tenant-space", "fusion_tenant_space")


@cache
def describe(model: type[Resource]) -> ResourceDescriptor:
    """Derive the reconciler descriptor from a model class (built once per class)."""
    delete_options = {
        name: DeleteOption(
            name=name,
            effect=flag.effect,
            snapshot_filter=flag.snapshot_filter,
            snapshot_filter_source=flag.snapshot_filter_source,
        )
        for name, flag in collect_delete_flags(model)
    }
    identity = {"name", *(seg.field for seg in model.parents)}
    return ResourceDescriptor(
        resource_type=model.resource_type,
        kind=model.kind,
        collection=model.collection,
        placeholder=model.placeholder,
        parents=model.parents,
        immutable_fields=collect_flagged(model, Immutable) | identity,
        computed_fields=collect_flagged(model, Computed),
        delete_options=delete_options,
        supports_import=model.supports_import,
        soft_delete=model.soft_delete,
        detach_on_delete=model.detach_on_delete,
        reattach_fields=model.reattach_fields,
        attachment_field=model.attachment_field,
        lookup_fields=model.lookup_fields,
    )


class Resource(BaseModel):
    """Base class for all Fusion resources.

    Resources are pure data - they define the desired state. The reconciler
    drives any resource through its lifecycle using the descriptor derived
    from the class and the field markers.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    kind: ClassVar[str]
    collection: ClassVar[str]
    placeholder: ClassVar[str]
    parents: ClassVar[tuple[PathSegment, ...]] = ()
    plan_priority: ClassVar[int] = 100
    supports_import: ClassVar[bool] = True
    soft_delete: ClassVar[bool] = False
    detach_on_delete: ClassVar[dict[str, Any] | None] = None
    reattach_fields: ClassVar[frozenset[str]] = frozenset()
    attachment_field: ClassVar[str | None] = None
    lookup_fields: ClassVar[tuple[str, ...]] = ()

    id: Annotated[str | None, Wire("id"), Computed()] = None
    name: Annotated[str, Field(min_length=1), Wire("name", post="name")]
    display_name: Annotated[
        str | None,
        Field(min_length=1, max_length=256),
        Wire("display_name", post="display_name", patch="display_name"),
    ] = None

    # Lifecycle
    depends_on: list[str] = []

    @model_validator(mode="after")
    def _default_display_name(self) -> Self:
        if self.display_name is None:
            self.display_name = self.name
        return self

    @classmethod
    def descriptor(cls) -> ResourceDescriptor:
        return describe(cls)

    def scope(self) -> dict[str, str]:
        """Ancestor names keyed by parent field name."""
        return {seg.field: getattr(self, seg.field) for seg in self.parents}

    @property
    def path(self) -> str:
        """Canonical self link, e.g. ``/tenants/t1/tenant-spaces/ts1``."""
        return encode(self.descriptor(), self.scope(), self.name)

    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'fusion_volume.t1.ts1.vol1')."""
        return ".".join([self.resource_type, *self.scope().values(), self.name])

    def references(self) -> list[ResourceRef]:
        """Typed references declared on this resource."""
        return collect_ref_specs(self)

    def parent_addresses(self) -> list[str]:
        """Addresses of the ancestors this resource lives under."""
        addresses: list[str] = []
        for idx, seg in enumerate(self.parents):
            names = [getattr(self, p.field) for p in self.parents[: idx + 1]]
            addresses.append(".".join([seg.resource_type, *names]))
        return addresses

    # ── Wire mapping ────────────────────────────────────────────────

    def wire_value(self, field: str) -> Any:
        """Value of *field* as sent in request bodies."""
        value = getattr(self, field)
        marker = dict(wire_fields(type(self)))[field]
        if isinstance(value, BaseModel):
            if hasattr(value, "self_link"):
                return value.self_link()
            return value.model_dump(mode="json", exclude_none=True)
        if isinstance(value, list | set | frozenset):
            items = sorted(value) if isinstance(value, set | frozenset) else list(value)
            return marker.join.join(items) if marker.join is not None else items
        return value

    def post_body(self) -> dict[str, Any]:
        """Create request body built from ``Wire(post=...)`` markers."""
        return {
            marker.post: self.wire_value(name)
            for name, marker in wire_fields(type(self))
            if marker.post is not None and getattr(self, name) is not None
        }

    def patchable_fields(self) -> list[str]:
        """Fields that can be changed in place, in model field order."""
        return [name for name, marker in wire_fields(type(self)) if marker.patch is not None]

    def patch_body(self, field: str, value: Any | None = None) -> dict[str, Any]:
        """Single-field patch: ``{"<wire key>": {"value": v}}``.

        An unset field is sent as its ``Wire(clear=...)`` value.
        """
        marker = dict(wire_fields(type(self)))[field]
        if value is None:
            value = self.wire_value(field)
        if value is None:
            value = marker.clear
        return {marker.patch: {"value": value}}

    def planned_value(self, field: str) -> Any:
        """Desired value of *field* as shown in a plan diff."""
        value = getattr(self, field)
        return self.wire_value(field) if isinstance(value, BaseModel) else value

    def desired_attributes(self) -> dict[str, Any]:
        """Declared values keyed like observed attributes (computed fields excluded)."""
        computed = self.descriptor().computed_fields
        return {
            name: getattr(self, name)
            for name, _ in wire_fields(type(self))
            if name not in computed
        }

    @classmethod
    def attributes_from_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        """Observed attributes extracted from a backend payload."""
        return extract_attrs(cls, payload)

    @classmethod
    def from_attributes(cls, attributes: dict[str, Any]) -> Self:
        """Rebuild a model from observed attributes (delete flags at their defaults)."""
        return cls.model_validate(
            {k: v for k, v in attributes.items() if v is not None and k in cls.model_fields}
        )

    @classmethod
    def normalizers(cls) -> dict[str, Any]:
        """Per-field normalisers used before comparing desired and observed values."""
        return {
            name: _as_set
            for name, strategy in collect_compare_strategies(cls).items()
            if strategy == "set"
        }


def _as_set(value: Any) -> frozenset[Any]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(v for v in value.split(",") if v)
    return frozenset(value)
