"""Fusion resource definitions."""

from fusion_provisioner.resources.array import ArrayResource
from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import DeleteOption, PathSegment, ResourceDescriptor
from fusion_provisioner.resources.host_access_policy import HostAccessPolicyResource
from fusion_provisioner.resources.network_interface_group import (
    EthSettings,
    NetworkInterfaceGroupResource,
)
from fusion_provisioner.resources.placement_group import PlacementGroupResource
from fusion_provisioner.resources.protection_policy import ProtectionPolicyResource
from fusion_provisioner.resources.region import AvailabilityZoneResource, RegionResource
from fusion_provisioner.resources.role_assignment import RoleAssignmentResource
from fusion_provisioner.resources.storage import StorageClassResource, StorageServiceResource
from fusion_provisioner.resources.storage_endpoint import (
    CbsAzureIscsiEndpoint,
    DiscoveryInterface,
    IscsiEndpoint,
    StorageEndpointResource,
)
from fusion_provisioner.resources.tenant import TenantResource, TenantSpaceResource
from fusion_provisioner.resources.volume import SourceLink, VolumeResource

__all__ = [
    "ArrayResource",
    "AvailabilityZoneResource",
    "CbsAzureIscsiEndpoint",
    "DeleteOption",
    "DiscoveryInterface",
    "EthSettings",
    "HostAccessPolicyResource",
    "IscsiEndpoint",
    "NetworkInterfaceGroupResource",
    "PathSegment",
    "PlacementGroupResource",
    "ProtectionPolicyResource",
    "RegionResource",
    "Resource",
    "ResourceDescriptor",
    "RoleAssignmentResource",
    "SourceLink",
    "StorageClassResource",
    "StorageEndpointResource",
    "StorageServiceResource",
    "TenantResource",
    "TenantSpaceResource",
    "VolumeResource",
]
