"""Network interface group resource model."""

from __future__ import annotations

import ipaddress
from typing import Annotated, Any, ClassVar, Literal, Self

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Immutable, Wire
from fusion_provisioner.resources.region import AVAILABILITY_ZONE, REGION


def ipv4_address(value: str) -> str:
    """Validate a bare IPv4 address."""
    try:
        ipaddress.IPv4Address(value)
    except ValueError as exc:
        raise ValueError(f"'{value}' is not a valid IPv4 address") from exc
    return value


def ipv4_cidr(value: str) -> str:
    """Validate an IPv4 address with a prefix length, e.g. ``10.0.0.5/24``."""
    if "/" not in value:
        raise ValueError(f"'{value}' is not in CIDR notation")
    try:
        ipaddress.IPv4Interface(value)
    except ValueError as exc:
        raise ValueError(f"'{value}' is not a valid IPv4 CIDR") from exc
    return value


Ipv4Address = Annotated[str, AfterValidator(ipv4_address)]
Ipv4Cidr = Annotated[str, AfterValidator(ipv4_cidr)]


class EthSettings(BaseModel):
    """Subnet of an ``eth`` group.  ``vlan`` is assigned by the backend."""

    model_config = ConfigDict(extra="forbid")

    gateway: Ipv4Address
    prefix: Ipv4Cidr
    mtu: int = Field(default=1500, gt=0)
    vlan: int | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _gateway_in_prefix(self) -> Self:
        network = ipaddress.IPv4Interface(self.prefix).network
        if ipaddress.IPv4Address(self.gateway) not in network:
            raise ValueError('"gateway" must be an address in subnet "prefix"')
        return self


class NetworkInterfaceGroupResource(Resource):
    """A group of array network interfaces sharing one subnet.

    Only the display name can change once the group exists.
    """

    resource_type: ClassVar[str] = "fusion_network_interface_group"
    kind: ClassVar[str] = "network_interface_group"
    collection: ClassVar[str] = "network-interface-groups"
    placeholder: ClassVar[str] = "network-interface-group"
    parents: ClassVar[tuple[PathSegment, ...]] = (REGION, AVAILABILITY_ZONE)
    plan_priority: ClassVar[int] = 30

    region: Annotated[str, Field(min_length=1), Wire("region.name")]
    availability_zone: Annotated[str, Field(min_length=1), Wire("availability_zone.name")]
    group_type: Annotated[Literal["eth"], Wire("group_type", post="group_type"), Immutable()] = (
        "eth"
    )
    eth: Annotated[EthSettings, Wire("eth", post="eth"), Immutable()]

    @classmethod
    def normalizers(cls) -> dict[str, Any]:
        return {**super().normalizers(), "eth": _eth_subnet}


def _eth_subnet(value: Any) -> dict[str, Any] | None:
    if value is None:
        return None
    return EthSettings.model_validate(value).model_dump()
