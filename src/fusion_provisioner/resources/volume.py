"""Volume resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fusion_provisioner.core.units import BINARY, data_units
from fusion_provisioner.engine.copy import source_link_path
from fusion_provisioner.resources.base import TENANT, TENANT_SPACE, Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Compare, Computed, DeleteFlag, Ref, Wire

VOLUME_SIZE_MIN = 1 << 20
VOLUME_SIZE_MAX = 4 * (1 << 50)


class SourceLink(BaseModel):
    """Copy source for a volume: another volume, or a volume snapshot.

    Exactly one form is allowed: ``volume``, or ``snapshot`` together with
    ``volume_snapshot``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    tenant: str = Field(min_length=1)
    tenant_space: str = Field(min_length=1)
    volume: str | None = Field(default=None, min_length=1)
    snapshot: str | None = Field(default=None, min_length=1)
    volume_snapshot: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _exactly_one_form(self) -> Self:
        snapshot_form = self.snapshot is not None or self.volume_snapshot is not None
        if self.volume is not None and snapshot_form:
            raise ValueError("source_link: 'volume' conflicts with 'snapshot'/'volume_snapshot'")
        if snapshot_form and (self.snapshot is None or self.volume_snapshot is None):
            raise ValueError("source_link: 'snapshot' and 'volume_snapshot' must be set together")
        if self.volume is None and not snapshot_form:
            raise ValueError("source_link: set either 'volume' or 'snapshot' + 'volume_snapshot'")
        return self

    @classmethod
    def from_self_link(cls, path: str) -> SourceLink:
        """Parse a volume or volume snapshot self link."""
        parts = path.split("/")
        if parts[:2] != ["", "tenants"] or len(parts) < 7 or parts[3] != "tenant-spaces":
            raise ValueError(f"source_link: not a volume or volume snapshot path: {path}")
        tenant, tenant_space, rest = parts[2], parts[4], parts[5:]
        if len(rest) == 2 and rest[0] == "volumes":
            return cls(tenant=tenant, tenant_space=tenant_space, volume=rest[1])
        if len(rest) == 4 and rest[0] == "snapshots" and rest[2] == "volume-snapshots":
            return cls(
                tenant=tenant,
                tenant_space=tenant_space,
                snapshot=rest[1],
                volume_snapshot=rest[3],
            )
        raise ValueError(f"source_link: not a volume or volume snapshot path: {path}")

    @property
    def is_snapshot(self) -> bool:
        return self.snapshot is not None

    def self_link(self) -> str:
        prefix = f"/tenants/{self.tenant}/tenant-spaces/{self.tenant_space}"
        if self.volume is not None:
            return f"{prefix}/volumes/{self.volume}"
        return f"{prefix}/snapshots/{self.snapshot}/volume-snapshots/{self.volume_snapshot}"


class VolumeResource(Resource):
    """A block volume inside a tenant space.

    Deleting a volume first clears its host attachments, then marks it
    destroyed.  The volume is only eradicated (and its name freed) when
    ``eradicate_on_delete`` is set.
    """

    resource_type: ClassVar[str] = "fusion_volume"
    kind: ClassVar[str] = "volume"
    collection: ClassVar[str] = "volumes"
    placeholder: ClassVar[str] = "volume"
    parents: ClassVar[tuple[PathSegment, ...]] = (TENANT, TENANT_SPACE)
    plan_priority: ClassVar[int] = 50
    soft_delete: ClassVar[bool] = True
    detach_on_delete: ClassVar[dict[str, Any] | None] = {"host_access_policies": ""}
    reattach_fields: ClassVar[frozenset[str]] = frozenset({"placement_group_name"})
    attachment_field: ClassVar[str | None] = "host_names"

    tenant: Annotated[str, Field(min_length=1), Wire("tenant.name")]
    tenant_space: Annotated[str, Field(min_length=1), Wire("tenant_space.name")]
    size: Annotated[
        int | None,
        data_units(BINARY, minimum=VOLUME_SIZE_MIN, maximum=VOLUME_SIZE_MAX),
        Wire("size", post="size", patch="size"),
    ] = None
    storage_class_name: Annotated[
        str,
        Field(min_length=1),
        Ref("fusion_storage_class", resolve=False),
        Wire("storage_class.name", post="storage_class", patch="storage_class"),
    ]
    placement_group_name: Annotated[
        str,
        Field(min_length=1),
        Ref("fusion_placement_group"),
        Wire("placement_group.name", post="placement_group", patch="placement_group"),
    ]
    protection_policy_name: Annotated[
        str | None,
        Ref("fusion_protection_policy"),
        Wire(
            "protection_policy.name",
            post="protection_policy",
            patch="protection_policy",
            clear="",
        ),
    ] = None
    host_names: Annotated[
        list[str],
        Ref("fusion_host_access_policy"),
        Wire("host_access_policies", patch="host_access_policies", each="name", join=","),
        Compare("set"),
    ] = Field(default_factory=list)
    source_link: Annotated[
        SourceLink | None, Wire("source.self_link", post="source_link", patch="source_link")
    ] = None

    serial_number: Annotated[str | None, Wire("serial_number"), Computed()] = None
    target_iscsi_iqn: Annotated[str | None, Wire("target.iscsi.iqn"), Computed()] = None
    target_iscsi_addresses: Annotated[
        list[str] | None, Wire("target.iscsi.addresses"), Computed()
    ] = None
    created_at: Annotated[int | None, Wire("created_at"), Computed()] = None

    eradicate_on_delete: Annotated[bool, DeleteFlag("eradicate")] = False

    @field_validator("source_link", mode="before")
    @classmethod
    def _parse_source_self_link(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SourceLink.from_self_link(value)
        return value

    @model_validator(mode="after")
    def _size_conflicts_with_source_link(self) -> Self:
        if self.size is not None and self.source_link is not None:
            raise ValueError("'size' conflicts with 'source_link': a copy takes the source's size")
        return self

    @classmethod
    def from_attributes(cls, attributes: dict[str, Any]) -> Self:
        # A populated copy carries its own size; the source is history.
        return super().from_attributes({**attributes, "source_link": None})

    @classmethod
    def normalizers(cls) -> dict[str, Any]:
        return {**super().normalizers(), "source_link": _source_link_path}


def _source_link_path(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        value = SourceLink.model_validate(value)
    return source_link_path(value)
