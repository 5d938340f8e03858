"""Immutability guard.

Runs before every update and never reaches the network: a desired state that
changes an immutable field is rejected as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fusion_provisioner.engine.errors import ImmutableFieldViolationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping


@dataclass(frozen=True, slots=True)
class FieldViolation:
    field: str
    observed: Any
    desired: Any


def _normalize(value: Any, normalizer: Callable[[Any], Any] | None) -> Any:
    if normalizer is not None:
        return normalizer(value)
    if isinstance(value, list | tuple | set):
        return frozenset(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def values_differ(
    desired: Any, observed: Any, normalizer: Callable[[Any], Any] | None = None
) -> bool:
    """Compare a desired and an observed value after normalisation."""
    return _normalize(desired, normalizer) != _normalize(observed, normalizer)


def validate_immutable(
    desired: Mapping[str, Any],
    observed: Mapping[str, Any],
    immutable_fields: Iterable[str],
    *,
    computed_fields: Iterable[str] = (),
    normalizers: Mapping[str, Callable[[Any], Any]] | None = None,
) -> list[FieldViolation]:
    """Collect immutable fields whose desired value differs from the observed one.

    Only fields present in both mappings are compared; computed fields are
    never compared.
    """
    normalizers = normalizers or {}
    skip = set(computed_fields)
    violations: list[FieldViolation] = []
    for name in immutable_fields:
        if name in skip or name not in desired or name not in observed:
            continue
        want, have = desired[name], observed[name]
        if values_differ(want, have, normalizers.get(name)):
            violations.append(FieldViolation(field=name, observed=have, desired=want))
    violations.sort(key=lambda v: v.field)
    return violations


def ensure_mutable(
    kind: str,
    desired: Mapping[str, Any],
    observed: Mapping[str, Any],
    immutable_fields: Iterable[str],
    *,
    computed_fields: Iterable[str] = (),
    normalizers: Mapping[str, Callable[[Any], Any]] | None = None,
) -> None:
    """Raise ``ImmutableFieldViolationError`` if any immutable field would change."""
    violations = validate_immutable(
        desired,
        observed,
        immutable_fields,
        computed_fields=computed_fields,
        normalizers=normalizers,
    )
    if violations:
        raise ImmutableFieldViolationError(kind, violations)
