"""Named reference resolution (name -> backend handle)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fusion_provisioner.core.address import decode, encode
from fusion_provisioner.core.client import ApiRequest
from fusion_provisioner.engine.errors import ApiError, NotFoundError
from fusion_provisioner.engine.types import ResourceHandle

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fusion_provisioner.core.client import Backend
    from fusion_provisioner.engine.registry import ResourceTypeRegistry
    from fusion_provisioner.resources.base import Resource
    from fusion_provisioner.resources.descriptor import ResourceDescriptor

logger = logging.getLogger(__name__)


def resolve_reference(
    backend: Backend,
    descriptor: ResourceDescriptor,
    name_or_path: str,
    scope: Mapping[str, str],
) -> ResourceHandle:
    """Resolve a bare name (inside ``scope``) or a full self link to a handle.

    Raises:
        MalformedAddressError: A full path does not match the kind's shape.
        NotFoundError: The backend answered 404.
    """
    if name_or_path.startswith("/"):
        address = decode(name_or_path, descriptor)
        path, name = address.path, address.name
    else:
        path, name = encode(descriptor, scope, name_or_path), name_or_path

    response = backend.call(ApiRequest("GET", path))
    if response.status_code == 404:
        raise NotFoundError(path, f"{descriptor.kind} '{name}' not found ({path})")
    if not response.ok:
        raise ApiError("GET", path, response.status_code, response.error_message())

    body = response.body or {}
    return ResourceHandle(
        id=body.get("id"),
        name=body.get("name", name),
        path=body.get("self_link") or path,
    )


def resolve_references(
    backend: Backend,
    registry: ResourceTypeRegistry,
    resource: Resource,
) -> dict[str, list[ResourceHandle]]:
    """Resolve every resolvable ``Ref`` field of *resource*.

    The referenced resource's ancestors are taken from same-named fields of
    the referencing resource (a volume's ``tenant`` scopes its placement
    group lookup).
    """
    resolved: dict[str, list[ResourceHandle]] = {}
    for ref in resource.references():
        if not ref.resolve:
            continue
        target = registry.get(ref.resource_type).descriptor()
        scope = {f: getattr(resource, f) for f in target.parent_fields if hasattr(resource, f)}
        logger.debug(
            "Resolving %s.%s -> %s '%s'", resource.address, ref.field, target.kind, ref.name
        )
        try:
            handle = resolve_reference(backend, target, ref.name, scope)
        except NotFoundError as exc:
            raise NotFoundError(
                exc.path,
                f"{resource.kind} field '{ref.field}' references missing {target.kind} "
                f"'{ref.name}' ({exc.path})",
            ) from exc
        resolved.setdefault(ref.field, []).append(handle)
    return resolved
