"""Default resource type registry factory."""

from __future__ import annotations

from fusion_provisioner.engine.registry import ResourceTypeRegistry
from fusion_provisioner.resources.array import ArrayResource
from fusion_provisioner.resources.host_access_policy import HostAccessPolicyResource
from fusion_provisioner.resources.network_interface_group import NetworkInterfaceGroupResource
from fusion_provisioner.resources.placement_group import PlacementGroupResource
from fusion_provisioner.resources.protection_policy import ProtectionPolicyResource
from fusion_provisioner.resources.region import AvailabilityZoneResource, RegionResource
from fusion_provisioner.resources.role_assignment import RoleAssignmentResource
from fusion_provisioner.resources.storage import StorageClassResource, StorageServiceResource
from fusion_provisioner.resources.storage_endpoint import StorageEndpointResource
from fusion_provisioner.resources.tenant import TenantResource, TenantSpaceResource
from fusion_provisioner.resources.volume import VolumeResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types."""
    registry = ResourceTypeRegistry()

    registry.register(TenantResource)
    registry.register(TenantSpaceResource)
    registry.register(RegionResource)
    registry.register(AvailabilityZoneResource)
    registry.register(ArrayResource)
    registry.register(NetworkInterfaceGroupResource)
    registry.register(StorageEndpointResource)
    registry.register(StorageServiceResource)
    registry.register(StorageClassResource)
    registry.register(ProtectionPolicyResource)
    registry.register(HostAccessPolicyResource)
    registry.register(PlacementGroupResource)
    registry.register(VolumeResource)
    registry.register(RoleAssignmentResource)

    return registry
