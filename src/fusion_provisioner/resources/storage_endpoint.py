"""Storage endpoint resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Immutable, ResourceRef, Wire
from fusion_provisioner.resources.network_interface_group import Ipv4Address, Ipv4Cidr
from fusion_provisioner.resources.region import AVAILABILITY_ZONE, REGION

EndpointType = Literal["iscsi", "cbs-azure-iscsi"]

LOAD_BALANCER_ADDRESSES = 2


class DiscoveryInterface(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: Ipv4Cidr
    gateway: Ipv4Address | None = None
    network_interface_groups: list[Annotated[str, Field(min_length=1)]] = Field(
        default_factory=list
    )


class IscsiEndpoint(BaseModel):
    model_config = ConfigDict(extra="forbid")

    discovery_interfaces: list[DiscoveryInterface] = Field(min_length=1)


class CbsAzureIscsiEndpoint(BaseModel):
    """Cloud Block Store iSCSI endpoint behind an Azure load balancer."""

    model_config = ConfigDict(extra="forbid")

    storage_endpoint_collection_identity: str = Field(min_length=1)
    load_balancer: str = Field(min_length=1)
    load_balancer_addresses: list[Ipv4Address] = Field(
        min_length=LOAD_BALANCER_ADDRESSES, max_length=LOAD_BALANCER_ADDRESSES
    )


class StorageEndpointResource(Resource):
    """An iSCSI endpoint hosts connect to, in one availability zone.

    Exactly one of ``iscsi`` and ``cbs_azure_iscsi`` is set; it decides the
    endpoint type.  Only the display name can change once the endpoint exists.
    """

    resource_type: ClassVar[str] = "fusion_storage_endpoint"
    kind: ClassVar[str] = "storage_endpoint"
    collection: ClassVar[str] = "storage-endpoints"
    placeholder: ClassVar[str] = "storage-endpoint"
    parents: ClassVar[tuple[PathSegment, ...]] = (REGION, AVAILABILITY_ZONE)
    plan_priority: ClassVar[int] = 40

    region: Annotated[str, Field(min_length=1), Wire("region.name")]
    availability_zone: Annotated[str, Field(min_length=1), Wire("availability_zone.name")]
    endpoint_type: Annotated[
        EndpointType | None, Wire("endpoint_type", post="endpoint_type"), Immutable()
    ] = None
    iscsi: Annotated[IscsiEndpoint | None, Wire("iscsi", post="iscsi"), Immutable()] = None
    cbs_azure_iscsi: Annotated[
        CbsAzureIscsiEndpoint | None,
        Wire("cbs_azure_iscsi", post="cbs_azure_iscsi"),
        Immutable(),
    ] = None

    @model_validator(mode="after")
    def _exactly_one_endpoint(self) -> Self:
        if (self.iscsi is None) == (self.cbs_azure_iscsi is None):
            raise ValueError("set exactly one of 'iscsi' and 'cbs_azure_iscsi'")
        derived: EndpointType = "iscsi" if self.iscsi is not None else "cbs-azure-iscsi"
        if self.endpoint_type is not None and self.endpoint_type != derived:
            raise ValueError(f"endpoint_type '{self.endpoint_type}' conflicts with '{derived}'")
        self.endpoint_type = derived
        return self

    def network_interface_groups(self) -> list[str]:
        """Groups named by the discovery interfaces, first mention first."""
        if self.iscsi is None:
            return []
        names = (g for di in self.iscsi.discovery_interfaces for g in di.network_interface_groups)
        return list(dict.fromkeys(names))

    def references(self) -> list[ResourceRef]:
        return [
            *super().references(),
            *(
                ResourceRef(
                    name=group, resource_type="fusion_network_interface_group", field="iscsi"
                )
                for group in self.network_interface_groups()
            ),
        ]

    @classmethod
    def attributes_from_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        attrs = super().attributes_from_payload(payload)
        # Discovery interfaces report their groups as references.
        if attrs.get("iscsi"):
            attrs["iscsi"] = {
                "discovery_interfaces": [
                    {
                        "address": di.get("address"),
                        "gateway": di.get("gateway") or None,
                        "network_interface_groups": [
                            g["name"] for g in di.get("network_interface_groups") or []
                        ],
                    }
                    for di in attrs["iscsi"].get("discovery_interfaces") or []
                ]
            }
        return attrs

    @classmethod
    def normalizers(cls) -> dict[str, Any]:
        return {
            **super().normalizers(),
            "iscsi": _discovery_interfaces,
            "cbs_azure_iscsi": _cbs_azure_iscsi,
        }


def _discovery_interfaces(value: Any) -> frozenset[tuple[Any, ...]] | None:
    if value is None:
        return None
    iscsi = IscsiEndpoint.model_validate(value)
    return frozenset(
        (di.address, di.gateway, frozenset(di.network_interface_groups))
        for di in iscsi.discovery_interfaces
    )


def _cbs_azure_iscsi(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    return CbsAzureIscsiEndpoint.model_validate(value).model_dump()
