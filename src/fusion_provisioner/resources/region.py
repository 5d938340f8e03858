"""Region and availability zone resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Wire

REGION = PathSegment("regions", "region", "region", "fusion_region")
AVAILABILITY_ZONE = PathSegment(
    "availability-zones", "availability_zone", "availability-zone", "fusion_availability_zone"
)


class RegionResource(Resource):
    resource_type: ClassVar[str] = "fusion_region"
    kind: ClassVar[str] = "region"
    collection: ClassVar[str] = "regions"
    placeholder: ClassVar[str] = "region"
    plan_priority: ClassVar[int] = 10


class AvailabilityZoneResource(Resource):
    resource_type: ClassVar[str] = "fusion_availability_zone"
    kind: ClassVar[str] = "availability_zone"
    collection: ClassVar[str] = "availability-zones"
    placeholder: ClassVar[str] = "availability-zone"
    parents: ClassVar[tuple[PathSegment, ...]] = (REGION,)
    plan_priority: ClassVar[int] = 20

    region: Annotated[str, Field(min_length=1), Wire("region.name")]
