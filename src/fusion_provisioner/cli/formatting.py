"""Plan and apply output rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from fusion_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from fusion_provisioner.engine.types import Plan, ResourceChange


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "delete": _ActionStyle("red", "-", "Destroying", "Destroy complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "delete": "will be destroyed",
    "no-op": "is up-to-date",
}

# Bookkeeping keys that never reach the backend.
_HIDDEN_KEYS = frozenset({"depends_on"})


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key -> formatted value`` pairs from a change."""
    if change.action == Action.CREATE and change.desired:
        return {
            k: _format_value(v) for k, v in change.desired.items() if k not in _HIDDEN_KEYS
        }
    if change.action == Action.UPDATE and change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    if change.action == Action.DELETE and change.handle is not None:
        return {"id": _format_value(change.handle.id)}
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a diff block."""
    style = styler(color)
    action_val = change.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    lines = [
        style(f"  # {change.address} {_ACTION_DESC[action_val]}", bold=True, **sc),
        style(f'  {symbol} {change.resource_type} "{change.path}" {{', **sc),
        *[
            style(f"      {symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-change diff blocks."""
    blocks = [format_change(c, color=color) for c in plan.changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


_PLAN_VERBS = ("to add", "to change", "to destroy")
_APPLY_VERBS = ("added", "changed", "destroyed")
_SUMMARY_COLORS = ("green", "yellow", "red")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, N verb`` part of a summary line."""
    style = styler(color)
    counts = (summary.get("create", 0), summary.get("update", 0), summary.get("delete", 0))
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    ]
    return ", ".join(parts)


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    return f"Plan: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``"""
    style = styler(color)
    header = style("Apply complete!", fg="green", bold=True)
    return f"{header} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."


def format_resource_list(kind: str, items: list[dict[str, Any]]) -> str:
    """Render ``list`` output: one ``name (id)`` line per live resource."""
    if not items:
        return f"No {kind} resources found."
    width = max(len(str(i.get("name", ""))) for i in items)
    return "\n".join(
        f"  {str(i.get('name', '')).ljust(width)}  {i.get('id') or ''}".rstrip() for i in items
    )
