"""CLI application for fusion-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from fusion_provisioner import __version__

app = typer.Typer(
    name="fusion-provisioner",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fusion-provisioner {__version__}")
        raise typer.Exit


_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
# Apply waves reconcile on worker threads; debug lines name the worker.
_DEBUG_LOG_FORMAT = "%(levelname)s [%(threadName)s] %(name)s: %(message)s"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
# Connection pool chatter from the REST backend, shown only at -vvv.
_HTTP_LOGGER = "urllib3"


def _configure_logging(verbose: int) -> None:
    """Set up stdlib logging based on ``-v`` flags or ``FUSION_LOG`` env var.

    ``-v`` logs resource lifecycle steps, ``-vv`` adds every request, patch
    and operation poll, ``-vvv`` also logs HTTP connections.
    """
    env_level = os.environ.get("FUSION_LOG", "").upper()
    if env_level:
        if env_level not in _VALID_LEVELS:
            print(
                f"WARNING: invalid FUSION_LOG level '{env_level}', "
                f"expected one of {', '.join(sorted(_VALID_LEVELS))}; defaulting to INFO",
                file=sys.stderr,
            )
        level = getattr(logging, env_level, logging.INFO)
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose >= 1:
        level = logging.INFO
    else:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format=_DEBUG_LOG_FORMAT if level <= logging.DEBUG else _LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("fusion_provisioner").setLevel(level)
    logging.getLogger(_HTTP_LOGGER).setLevel(logging.DEBUG if verbose >= 3 else logging.WARNING)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (-v info, -vv debug, -vvv HTTP connections).",
    ),
) -> None:
    """Declarative provisioning for Pure Fusion storage."""
    _ = version
    _configure_logging(verbose)


# Register commands after app is created to avoid circular imports.
from fusion_provisioner.cli import commands as _commands  # noqa: E402, F401
