"""Array resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar

from pydantic import Field

from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Immutable, Wire
from fusion_provisioner.resources.region import AVAILABILITY_ZONE, REGION
from fusion_provisioner.resources.storage import HardwareType


class ArrayResource(Resource):
    """A physical array registered in an availability zone.

    The create request cannot carry ``maintenance_mode`` or
    ``unavailable_mode``; when set they are patched once the array exists.
    Left unset, both stay as the backend reports them.
    """

    resource_type: ClassVar[str] = "fusion_array"
    kind: ClassVar[str] = "array"
    collection: ClassVar[str] = "arrays"
    placeholder: ClassVar[str] = "array"
    parents: ClassVar[tuple[PathSegment, ...]] = (REGION, AVAILABILITY_ZONE)
    plan_priority: ClassVar[int] = 30

    region: Annotated[str, Field(min_length=1), Wire("region.name")]
    availability_zone: Annotated[str, Field(min_length=1), Wire("availability_zone.name")]
    appliance_id: Annotated[
        str, Field(min_length=1), Wire("appliance_id", post="appliance_id"), Immutable()
    ]
    host_name: Annotated[
        str, Field(min_length=1), Wire("host_name", post="host_name", patch="host_name")
    ]
    hardware_type: Annotated[
        HardwareType, Wire("hardware_type.name", post="hardware_type"), Immutable()
    ]
    apartment_id: Annotated[
        str | None, Field(min_length=1), Wire("apartment_id", post="apartment_id"), Immutable()
    ] = None
    maintenance_mode: Annotated[
        bool | None, Wire("maintenance_mode", patch="maintenance_mode")
    ] = None
    unavailable_mode: Annotated[
        bool | None, Wire("unavailable_mode", patch="unavailable_mode")
    ] = None

    def desired_attributes(self) -> dict[str, Any]:
        attrs = super().desired_attributes()
        # Without an apartment id the backend assigns one.
        if self.apartment_id is None:
            del attrs["apartment_id"]
        return attrs
