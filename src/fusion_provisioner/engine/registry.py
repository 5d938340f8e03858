"""Resource type registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fusion_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fusion_provisioner.resources.base import Resource


class ResourceTypeRegistry:
    """Registry mapping resource_type -> model class.

    Every kind is reconciled by the same generic reconciler, so the model
    (and the descriptor derived from it) is all that needs registering.
    """

    def __init__(self) -> None:
        self._models: dict[str, type[Resource]] = {}

    def register(self, model: type[Resource]) -> None:
        resource_type = getattr(model, "resource_type", None)
        if not isinstance(resource_type, str) or not resource_type:
            raise ValueError("Resource model must define a non-empty classvar `resource_type`")

        if resource_type in self._models:
            raise ValueError(f"Resource type already registered: {resource_type}")

        self._models[resource_type] = model

    def get(self, resource_type: str) -> type[Resource]:
        try:
            return self._models[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    def by_kind(self, kind: str) -> type[Resource]:
        """Look a model up by kind (``volume``) or resource type (``fusion_volume``)."""
        for model in self._models.values():
            if kind in (model.kind, model.resource_type):
                return model
        raise UnknownResourceTypeError(kind)

    def __iter__(self) -> Iterator[type[Resource]]:
        return iter(self._models.values())

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._models
