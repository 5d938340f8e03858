"""Host access policy resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal

from pydantic import Field

from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.markers import Immutable, Wire

Personality = Literal[
    "windows",
    "linux",
    "esxi",
    "oracle-vm-server",
    "aix",
    "hitachi-vsp",
    "hpux",
    "solaris",
    "vms",
]


class HostAccessPolicyResource(Resource):
    """An iSCSI initiator allowed to attach volumes."""

    resource_type: ClassVar[str] = "fusion_host_access_policy"
    kind: ClassVar[str] = "host_access_policy"
    collection: ClassVar[str] = "host-access-policies"
    placeholder: ClassVar[str] = "host-access-policy"
    plan_priority: ClassVar[int] = 10

    iqn: Annotated[
        str, Field(pattern=r"^iqn\.[^ _]*\.[^ _]*"), Wire("iqn", post="iqn"), Immutable()
    ]
    personality: Annotated[Personality, Wire("personality", post="personality"), Immutable()] = (
        "linux"
    )
