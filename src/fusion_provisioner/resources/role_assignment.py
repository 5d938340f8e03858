"""Role assignment resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Self

from pydantic import Field, model_validator

from fusion_provisioner.core.address import collection_path, encode
from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.descriptor import PathSegment
from fusion_provisioner.resources.markers import Computed, Immutable, Ref, Wire

ROLE = PathSegment("roles", "role_name", "role", "fusion_role")


def scope_self_link(tenant: str | None, tenant_space: str | None) -> str:
    """Self link of the organization, a tenant, or a tenant space."""
    if tenant is None:
        return "/"
    if tenant_space is None:
        return f"/tenants/{tenant}"
    return f"/tenants/{tenant}/tenant-spaces/{tenant_space}"


class RoleAssignmentResource(Resource):
    """Grants a role to a principal over the organization, a tenant or a tenant space.

    The backend names assignments itself, so an assignment is identified by
    its role, principal and scope.  Nothing can change in place.
    """

    resource_type: ClassVar[str] = "fusion_role_assignment"
    kind: ClassVar[str] = "role_assignment"
    collection: ClassVar[str] = "role-assignments"
    placeholder: ClassVar[str] = "role-assignment"
    parents: ClassVar[tuple[PathSegment, ...]] = (ROLE,)
    plan_priority: ClassVar[int] = 60
    lookup_fields: ClassVar[tuple[str, ...]] = ("principal", "scope_link")

    name: Annotated[str | None, Wire("name"), Computed()] = None
    display_name: Annotated[str | None, Wire("display_name"), Computed()] = None
    role_name: Annotated[str, Field(min_length=1), Wire("role.name")]
    principal: Annotated[
        str, Field(min_length=1), Wire("principal", post="principal"), Immutable()
    ]
    tenant: Annotated[str | None, Field(min_length=1), Ref("fusion_tenant")] = None
    tenant_space: Annotated[str | None, Field(min_length=1), Ref("fusion_tenant_space")] = None
    scope_link: Annotated[
        str | None, Field(exclude=True), Wire("scope.self_link", post="scope"), Immutable()
    ] = None

    @model_validator(mode="after")
    def _derive_scope_link(self) -> Self:
        if self.tenant_space is not None and self.tenant is None:
            raise ValueError("'tenant_space' requires 'tenant'")
        link = scope_self_link(self.tenant, self.tenant_space)
        if self.scope_link is not None and self.scope_link != link:
            raise ValueError(f"scope_link '{self.scope_link}' conflicts with scope '{link}'")
        self.scope_link = link
        return self

    @property
    def path(self) -> str:
        """Self link once the backend has named the assignment, else its collection."""
        if self.name is None:
            return collection_path(self.descriptor(), self.scope())
        return encode(self.descriptor(), self.scope(), self.name)

    @property
    def address(self) -> str:
        """E.g. ``fusion_role_assignment.tenant-admin.alice.t1``."""
        scope = [s for s in (self.tenant, self.tenant_space) if s is not None]
        return ".".join([self.resource_type, self.role_name, self.principal, *scope])

    @classmethod
    def attributes_from_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        attrs = super().attributes_from_payload(payload)
        # /tenants/<tenant>/tenant-spaces/<tenant-space>, shorter for wider scopes
        parts = (attrs.get("scope_link") or "/").strip("/").split("/")
        attrs["tenant"] = parts[1] if len(parts) >= 2 else None
        attrs["tenant_space"] = parts[3] if len(parts) >= 4 else None
        return attrs
