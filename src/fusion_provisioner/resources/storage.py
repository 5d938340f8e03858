"""Storage service and storage class resource models.

Storage class limits accept a bare integer or a unit suffix and are stored as
integers: size and bandwidth are binary (``1G`` == 1024**3), IOPS is decimal
(``100K`` == 100_000).
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from fusion_provisioner.core.units import BINARY, DECIMAL, data_units
from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Compare, Immutable, Wire

HardwareType = Literal["flash-array-x", "flash-array-c", "flash-array-x-optane", "flash-array-xl"]

STORAGE_SERVICE = PathSegment(
    "storage-services", "storage_service", "storage-service", "fusion_storage_service"
)

SIZE_LIMIT_MIN = 1 << 20
SIZE_LIMIT_MAX = 4 * (1 << 50)
IOPS_LIMIT_MIN = 100
IOPS_LIMIT_MAX = 100 * 1000 * 1000
BANDWIDTH_LIMIT_MIN = 1 << 20
BANDWIDTH_LIMIT_MAX = 512 * (1 << 30)


class StorageServiceResource(Resource):
    """A storage service: the set of array hardware types volumes may land on."""

    resource_type: ClassVar[str] = "fusion_storage_service"
    kind: ClassVar[str] = "storage_service"
    collection: ClassVar[str] = "storage-services"
    placeholder: ClassVar[str] = "storage-service"
    plan_priority: ClassVar[int] = 10

    hardware_types: Annotated[
        list[HardwareType],
        Field(min_length=1),
        Wire("hardware_types", post="hardware_types", each="name"),
        Compare("set"),
        Immutable(),
    ]


class StorageClassResource(Resource):
    """Performance and capacity limits offered by a storage service."""

    resource_type: ClassVar[str] = "fusion_storage_class"
    kind: ClassVar[str] = "storage_class"
    collection: ClassVar[str] = "storage-classes"
    placeholder: ClassVar[str] = "storage-class"
    parents: ClassVar[tuple[PathSegment, ...]] = (STORAGE_SERVICE,)
    plan_priority: ClassVar[int] = 20

    storage_service: Annotated[str, Field(min_length=1), Wire("storage_service.name")]
    size_limit: Annotated[
        int,
        data_units(BINARY, minimum=SIZE_LIMIT_MIN, maximum=SIZE_LIMIT_MAX),
        Wire("size_limit", post="size_limit"),
        Immutable(),
    ] = SIZE_LIMIT_MAX
    iops_limit: Annotated[
        int,
        data_units(DECIMAL, suffixes="KM", minimum=IOPS_LIMIT_MIN, maximum=IOPS_LIMIT_MAX),
        Wire("iops_limit", post="iops_limit"),
        Immutable(),
    ] = IOPS_LIMIT_MAX
    bandwidth_limit: Annotated[
        int,
        data_units(BINARY, suffixes="MG", minimum=BANDWIDTH_LIMIT_MIN, maximum=BANDWIDTH_LIMIT_MAX),
        Wire("bandwidth_limit", post="bandwidth_limit"),
        Immutable(),
    ] = BANDWIDTH_LIMIT_MAX
