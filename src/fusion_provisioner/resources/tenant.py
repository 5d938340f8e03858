"""Tenant and tenant space resource models."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from fusion_provisioner.resources.base import TENANT, Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Wire


class TenantResource(Resource):
    """A tenant: the top-level isolation boundary."""

    resource_type: ClassVar[str] = "fusion_tenant"
    kind: ClassVar[str] = "tenant"
    collection: ClassVar[str] = "tenants"
    placeholder: ClassVar[str] = "tenant"
    plan_priority: ClassVar[int] = 10


class TenantSpaceResource(Resource):
    """A tenant space inside a tenant."""

    resource_type: ClassVar[str] = "fusion_tenant_space"
    kind: ClassVar[str] = "tenant_space"
    collection: ClassVar[str] = "tenant-spaces"
    placeholder: ClassVar[str] = "tenant-space"
    parents: ClassVar[tuple[PathSegment, ...]] = (TENANT,)
    plan_priority: ClassVar[int] = 20

    tenant: Annotated[str, Field(min_length=1), Wire("tenant.name")]
