"""CLI command implementations."""

from __future__ import annotations

import io
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from fusion_provisioner.cli import app
from fusion_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from fusion_provisioner.config.schema import Config
    from fusion_provisioner.engine.types import ApplyResult, Plan
    from fusion_provisioner.resources.base import Resource

DEFAULT_CONFIG = Path("fusion.yaml")

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    """Turn repeated ``key=value`` options into a dict."""
    from fusion_provisioner.config.loader import ConfigError

    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key or not value:
            raise ConfigError(f"{option} expects key=value, got {pair!r}")
        parsed[key.replace("-", "_")] = value
    return parsed


def _apply_with_progress(plan_obj: Plan, cfg: Config, *, color: bool) -> ApplyResult:
    """Apply a plan with a Rich progress bar and per-resource status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from fusion_provisioner.cli.formatting import _ACTION_STYLES
    from fusion_provisioner.config import apply
    from fusion_provisioner.engine.types import Action, LifecycleState, ResourceChange

    console = Console(no_color=not color)
    actionable = [c for c in plan_obj.changes if c.action != Action.NOOP]
    lock = threading.Lock()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Applying", total=len(actionable))

        # Called from worker threads; one wave may run several changes at once.
        def on_progress(change: ResourceChange, state: LifecycleState) -> None:
            s = _ACTION_STYLES[change.action.value]
            with lock:
                if state in (
                    LifecycleState.CREATING,
                    LifecycleState.UPDATING,
                    LifecycleState.DELETING,
                ):
                    progress.update(task, description=f"{change.address}: {s.progress_verb}...")
                    return
                suffix = " (destroyed, not eradicated)" if state is LifecycleState.DESTROYED else ""
                progress.console.print(f"  {change.address}: {s.done_verb}{suffix}")
                progress.advance(task)

        return apply(plan_obj, cfg, progress=on_progress, cancel=threading.Event())


def _confirm_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    confirm_msg: str,
    empty_msg: str,
) -> None:
    """Shared flow: show plan -> confirm -> apply with progress -> print summary.

    Exits with code 0 if no actionable changes.
    """
    from fusion_provisioner.cli.formatting import (
        format_apply_summary,
        format_plan,
        format_plan_summary,
    )

    if not plan_obj.has_changes:
        typer.echo(empty_msg)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm(confirm_msg, abort=True)
        except typer.Abort as e:
            typer.echo("Apply canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        result = _apply_with_progress(plan_obj, cfg, color=color)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show changes required by the current configuration.

    Exits with code 2 when there are changes to apply.
    """
    from fusion_provisioner.cli.formatting import format_plan, format_plan_summary
    from fusion_provisioner.config import load
    from fusion_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if plan_obj.has_changes:
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Apply the changes required by the current configuration."""
    from fusion_provisioner.config import load
    from fusion_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        confirm_msg="Do you want to apply these changes?",
        empty_msg="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Destroy all declared resources, honoring their delete options."""
    from fusion_provisioner.config import load
    from fusion_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=True)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        confirm_msg="Do you really want to destroy all resources?",
        empty_msg="No resources to destroy.",
    )


def _to_yaml(resource: Resource) -> str:
    """Render an imported resource as a config snippet under its section key."""
    from ruamel.yaml import YAML

    model = type(resource)
    exclude = {"depends_on", *model.descriptor().computed_fields}
    data = resource.model_dump(mode="json", exclude_none=True, exclude=exclude)
    section = model.collection.replace("-", "_")

    yaml = YAML()
    yaml.default_flow_style = False
    buf = io.StringIO()
    yaml.dump({section: [data]}, buf)
    return buf.getvalue()


@app.command(name="import")
def import_cmd(
    kind: Annotated[str, typer.Argument(help="Resource kind, e.g. volume or fusion_volume.")],
    path: Annotated[str, typer.Argument(help="Self link of the existing resource.")],
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Read an existing resource and print it as configuration."""
    from fusion_provisioner.config import import_resource, load

    color = _use_color(no_color)
    try:
        cfg = load(config)
        resource = import_resource(cfg, kind, path)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(_to_yaml(resource), nl=False)


@app.command(name="list")
def list_cmd(
    kind: Annotated[str, typer.Argument(help="Resource kind, e.g. placement_group.")],
    scope: Annotated[
        list[str] | None,
        typer.Option("--scope", "-s", help="Parent scope as label=value, e.g. tenant=t1."),
    ] = None,
    filters: Annotated[
        list[str] | None,
        typer.Option("--filter", "-f", help="Query filter as key=value."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """List live resources of a kind inside a parent scope."""
    from fusion_provisioner.cli.formatting import format_resource_list
    from fusion_provisioner.config import list_resources, load

    color = _use_color(no_color)
    try:
        scope_map = _parse_pairs(scope or [], "--scope")
        filter_map = _parse_pairs(filters or [], "--filter")
        cfg = load(config)
        items = list_resources(cfg, kind, scope_map, **filter_map)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_resource_list(kind, items))


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Validate the configuration file without contacting the backend."""
    from fusion_provisioner.cli.formatting import styler
    from fusion_provisioner.config import load
    from fusion_provisioner.config import validate as validate_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        order = validate_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(styler(color)(f"Configuration is valid ({len(order)} resources).", fg="green"))
