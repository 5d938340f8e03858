"""Placement group resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar

from pydantic import Field

from fusion_provisioner.resources.base import TENANT, TENANT_SPACE, Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import DeleteFlag, Immutable, Ref, Wire


class PlacementGroupResource(Resource):
    """A placement group: co-locates volumes on one array in an availability zone.

    ``array`` is not part of the create request; when set it is applied with
    a follow-up patch once the group exists, and removing it unpins the group.
    """

    resource_type: ClassVar[str] = "fusion_placement_group"
    kind: ClassVar[str] = "placement_group"
    collection: ClassVar[str] = "placement-groups"
    placeholder: ClassVar[str] = "placement-group"
    parents: ClassVar[tuple[PathSegment, ...]] = (TENANT, TENANT_SPACE)
    plan_priority: ClassVar[int] = 40

    tenant: Annotated[str, Field(min_length=1), Wire("tenant.name")]
    tenant_space: Annotated[str, Field(min_length=1), Wire("tenant_space.name")]
    region: Annotated[
        str, Field(min_length=1), Ref("fusion_region"), Wire(None, post="region"), Immutable()
    ]
    availability_zone: Annotated[
        str,
        Field(min_length=1),
        Ref("fusion_availability_zone"),
        Wire("availability_zone.name", post="availability_zone"),
        Immutable(),
    ]
    storage_service: Annotated[
        str,
        Field(min_length=1),
        Ref("fusion_storage_service"),
        Wire("storage_service.name", post="storage_service"),
        Immutable(),
    ]
    array: Annotated[str | None, Wire("array.name", patch="array", clear="")] = None
    destroy_snapshots_on_delete: Annotated[
        bool, DeleteFlag("destroy_snapshots", snapshot_filter="placement_group")
    ] = False

    @classmethod
    def attributes_from_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        attrs = super().attributes_from_payload(payload)
        # The region is only reachable through the availability zone self link:
        # /regions/<region>/availability-zones/<zone>
        az_link = (payload.get("availability_zone") or {}).get("self_link", "")
        parts = az_link.split("/")
        attrs["region"] = parts[2] if len(parts) > 2 and parts[1] == "regions" else None
        return attrs
