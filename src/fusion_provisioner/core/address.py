"""Hierarchical resource addresses (self links).

Fusion identifies resources by slash-delimited paths that alternate a
collection label and a name, e.g.
``/tenants/t1/tenant-spaces/ts1/placement-groups/pg1``.  The same shape is
used for import addresses typed by users and for the self links returned by
the backend.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fusion_provisioner.engine.errors import MalformedAddressError

if TYPE_CHECKING:
    from fusion_provisioner.resources.descriptor import ResourceDescriptor


@dataclass(frozen=True, slots=True)
class ImportAddress:
    """Decoded address: ordered ``(label, value)`` pairs, resource last."""

    segments: tuple[tuple[str, str], ...]

    @property
    def name(self) -> str:
        return self.segments[-1][1]

    @property
    def path(self) -> str:
        return "".join(f"/{label}/{value}" for label, value in self.segments)

    def scope(self, descriptor: ResourceDescriptor) -> dict[str, str]:
        """Ancestor names keyed by the descriptor's parent field names."""
        return {
            seg.field: value
            for seg, (_, value) in zip(descriptor.parents, self.segments, strict=False)
        }


def scope_path(descriptor: ResourceDescriptor, scope: Mapping[str, str]) -> str:
    """Build the ancestor prefix (``/tenants/t1/tenant-spaces/ts1``) for ``scope``."""
    parts: list[str] = []
    for seg in descriptor.parents:
        value = scope.get(seg.field)
        if not value:
            raise ValueError(f"{descriptor.kind} requires '{seg.field}' to build its path")
        parts.append(f"/{seg.label}/{value}")
    return "".join(parts)


def collection_path(descriptor: ResourceDescriptor, scope: Mapping[str, str]) -> str:
    return f"{scope_path(descriptor, scope)}/{descriptor.collection}"


def encode(descriptor: ResourceDescriptor, scope: Mapping[str, str], name: str) -> str:
    """Build the canonical path of resource ``name`` inside ``scope``."""
    if not name:
        raise ValueError(f"{descriptor.kind} name must not be empty")
    return f"{collection_path(descriptor, scope)}/{name}"


def decode(path: str, descriptor: ResourceDescriptor) -> ImportAddress:
    """Parse ``path`` against the descriptor's path shape.

    Raises:
        MalformedAddressError: When the segment count, a label or a value does
            not match.  The message carries the expected pattern verbatim.
    """
    error = MalformedAddressError(descriptor.kind, descriptor.pattern(), path)
    parts = path.split("/")
    expected_labels = [seg.label for seg in descriptor.parents] + [descriptor.collection]

    if parts[0] != "" or len(parts) - 1 != 2 * len(expected_labels):
        raise error

    segments: list[tuple[str, str]] = []
    for idx, label in enumerate(expected_labels):
        got_label, value = parts[2 * idx + 1], parts[2 * idx + 2]
        if got_label != label or not value:
            raise error
        segments.append((label, value))
    return ImportAddress(segments=tuple(segments))
