"""Declarative field markers for resource models.

Markers attach to Pydantic fields via ``Annotated``:

- ``Ref``        - field names another resource (resolved before create/update)
- ``Wire``       - where the field lives in the backend payload and request bodies
- ``Compare``    - field-level comparison strategy used by the guard and the driver
- ``Immutable``  - field cannot change after creation
- ``Computed``   - field is assigned by the backend and only ever read
- ``DeleteFlag`` - write-only flag consumed at delete time

Helper functions introspect these markers at runtime so that per-kind models
stay declarative and the reconciler stays generic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

from pydantic_core import PydanticUndefined

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["exact", "set"]


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Resolved reference value extracted from a ``Ref``-annotated field."""

    name: str
    resource_type: str
    field: str
    resolve: bool = True


# ── Marker dataclasses ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Ref:
    """Field references another resource by name.

    ``resolve=False`` marks references whose ancestors cannot be derived from
    the referencing resource (e.g. a storage class seen from a volume).  They
    still order the plan but are left to the backend to validate.
    """

    resource_type: str
    resolve: bool = True


@dataclass(frozen=True, slots=True)
class Wire:
    """Field mapping onto the backend payload.

    ``path`` is dot-separated into the read payload, e.g.
    ``"storage_class.name"`` -> ``payload["storage_class"]["name"]``.
    ``post`` / ``patch`` name the key in create / update bodies; ``None``
    means the field is not sent on that call.  ``each`` picks a key from every
    item of a list of objects, and ``join`` sends list values as one
    delimited string.  ``clear`` is the patch value that detaches an optional
    field once it is removed from the desired state; without it an unset
    field is left as the backend has it.
    """

    path: str | None
    post: str | None = None
    patch: str | None = None
    each: str | None = None
    join: str | None = None
    clear: Any = None


@dataclass(frozen=True, slots=True)
class Compare:
    """How the field is compared.

    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    """

    strategy: CompareStrategy


@dataclass(frozen=True, slots=True)
class Immutable:
    """Field cannot be changed once the resource exists."""


@dataclass(frozen=True, slots=True)
class Computed:
    """Field is assigned by the backend."""


@dataclass(frozen=True, slots=True)
class DeleteFlag:
    """Write-only boolean consumed when the resource is deleted."""

    effect: Literal["eradicate", "destroy_snapshots"]
    snapshot_filter: str | None = None
    snapshot_filter_source: Literal["name", "id"] = "name"


# ── Shared introspection primitives ─────────────────────────────────


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _iter_marked_fields(
    model_or_cls: Any,
    marker_type: type[M],
) -> list[tuple[str, FieldInfo, M]]:
    """Return ``(field_name, field_info, marker)`` for every field carrying *marker_type*."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return [
        (name, fi, marker)
        for name, fi in cls.model_fields.items()
        if (marker := _find_marker(fi, marker_type)) is not None
    ]


def _resolve_path(raw: Any, path: str, default: Any = None) -> Any:
    """Resolve a dot-separated path in a nested dict."""
    current: Any = raw
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def _field_default(fi: FieldInfo) -> Any:
    """Model default for a field, or ``None`` for required fields."""
    if fi.default is not PydanticUndefined:
        return fi.default
    if fi.default_factory is not None:
        return fi.default_factory()  # type: ignore[call-arg]
    return None


def _coerce_to_list(value: Any) -> list[str]:
    """Normalize a scalar, list, or ``None`` to a flat list of strings."""
    if value is None:
        return []
    return list(value) if isinstance(value, list | tuple | set | frozenset) else [value]


# ── Public helpers ──────────────────────────────────────────────────


def collect_ref_specs(resource: Any) -> list[ResourceRef]:
    """Collect typed references from ``Ref``-annotated fields."""
    refs: list[ResourceRef] = []
    for name, _, marker in _iter_marked_fields(resource, Ref):
        refs.extend(
            ResourceRef(
                name=ref, resource_type=marker.resource_type, field=name, resolve=marker.resolve
            )
            for ref in _coerce_to_list(getattr(resource, name))
        )
    return refs


def collect_compare_strategies(resource_or_cls: Any) -> dict[str, CompareStrategy]:
    """Collect per-field compare strategies from ``Compare`` markers."""
    return {
        name: marker.strategy for name, _, marker in _iter_marked_fields(resource_or_cls, Compare)
    }


def collect_flagged(resource_or_cls: Any, marker_type: type) -> frozenset[str]:
    """Names of fields carrying a flag marker (``Immutable``, ``Computed``)."""
    return frozenset(name for name, _, _ in _iter_marked_fields(resource_or_cls, marker_type))


def collect_delete_flags(resource_or_cls: Any) -> list[tuple[str, DeleteFlag]]:
    return [(name, marker) for name, _, marker in _iter_marked_fields(resource_or_cls, DeleteFlag)]


def wire_fields(resource_or_cls: Any) -> list[tuple[str, Wire]]:
    """``(field_name, Wire)`` pairs in model field order."""
    return [(name, marker) for name, _, marker in _iter_marked_fields(resource_or_cls, Wire)]


def extract_attrs(resource_cls: type, payload: dict[str, Any]) -> dict[str, Any]:
    """Extract model attrs from a backend payload via ``Wire`` markers.

    Fields without a read path are omitted: the backend does not report them.
    """
    attrs: dict[str, Any] = {}
    for name, fi, marker in _iter_marked_fields(resource_cls, Wire):
        if marker.path is None:
            continue
        value = _resolve_path(payload, marker.path, _field_default(fi))
        if marker.each is not None:
            value = [item.get(marker.each) for item in value or [] if isinstance(item, dict)]
        attrs[name] = value
    return attrs
