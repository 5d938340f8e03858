"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fusion_provisioner.engine.poller import PollPolicy
from fusion_provisioner.resources.array import ArrayResource
from fusion_provisioner.resources.base import Resource
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


class ProviderConfig(BaseSettings):
    """Fusion provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``FUSION_`` prefix.  Constructor kwargs take precedence.

    ``access_token`` is typically provided via the ``FUSION_ACCESS_TOKEN``
    environment variable or a Fusion profile file rather than YAML to avoid
    committing secrets to version control.
    """

    model_config = SettingsConfigDict(env_prefix="FUSION_")

    host: str | None = None
    access_token: str | None = None
    verify_ssl: bool = True
    request_timeout: float = Field(default=30.0, gt=0)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration, validated directly from the YAML document."""

    model_config = ConfigDict(extra="forbid")

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    polling: PollPolicy = Field(default_factory=PollPolicy)
    parallelism: int = Field(default=4, ge=1)
    tenants: Annotated[list[TenantResource], BeforeValidator(_none_to_list)] = []
    tenant_spaces: Annotated[list[TenantSpaceResource], BeforeValidator(_none_to_list)] = []
    regions: Annotated[list[RegionResource], BeforeValidator(_none_to_list)] = []
    availability_zones: Annotated[
        list[AvailabilityZoneResource], BeforeValidator(_none_to_list)
    ] = []
    arrays: Annotated[list[ArrayResource], BeforeValidator(_none_to_list)] = []
    network_interface_groups: Annotated[
        list[NetworkInterfaceGroupResource], BeforeValidator(_none_to_list)
    ] = []
    storage_endpoints: Annotated[
        list[StorageEndpointResource], BeforeValidator(_none_to_list)
    ] = []
    storage_services: Annotated[list[StorageServiceResource], BeforeValidator(_none_to_list)] = []
    storage_classes: Annotated[list[StorageClassResource], BeforeValidator(_none_to_list)] = []
    protection_policies: Annotated[
        list[ProtectionPolicyResource], BeforeValidator(_none_to_list)
    ] = []
    host_access_policies: Annotated[
        list[HostAccessPolicyResource], BeforeValidator(_none_to_list)
    ] = []
    placement_groups: Annotated[list[PlacementGroupResource], BeforeValidator(_none_to_list)] = []
    volumes: Annotated[list[VolumeResource], BeforeValidator(_none_to_list)] = []
    role_assignments: Annotated[
        list[RoleAssignmentResource], BeforeValidator(_none_to_list)
    ] = []
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources; ordering is not significant."""
        return [
            *self.tenants,
            *self.tenant_spaces,
            *self.regions,
            *self.availability_zones,
            *self.arrays,
            *self.network_interface_groups,
            *self.storage_endpoints,
            *self.storage_services,
            *self.storage_classes,
            *self.protection_policies,
            *self.host_access_policies,
            *self.placement_groups,
            *self.volumes,
            *self.role_assignments,
        ]
