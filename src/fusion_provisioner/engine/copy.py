"""Copy-on-create resolution for volumes (clone / snapshot restore)."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from fusion_provisioner.engine.errors import InvalidCopyTargetError

if TYPE_CHECKING:
    from fusion_provisioner.resources.volume import SourceLink


class CopyMode(str, Enum):
    PLAIN_CREATE = "plain_create"
    COPY_FROM_VOLUME = "copy_from_volume"
    COPY_FROM_SNAPSHOT = "copy_from_snapshot"


def classify(source_link: SourceLink | None, *, target_exists: bool) -> CopyMode:
    """Decide how a volume is populated.

    A volume can be overwritten from another volume at any time, but a
    snapshot can only seed a new volume.
    """
    if source_link is None:
        return CopyMode.PLAIN_CREATE
    if not source_link.is_snapshot:
        return CopyMode.COPY_FROM_VOLUME
    if target_exists:
        raise InvalidCopyTargetError("cannot copy snapshot to existing volume")
    return CopyMode.COPY_FROM_SNAPSHOT


def source_link_path(source_link: SourceLink) -> str:
    """Backend self link of the copy source."""
    return source_link.self_link()
