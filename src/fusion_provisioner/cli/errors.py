"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def _partial_summary(exc: Exception, fg: str | None) -> None:
    s = exc.result.summary()  # type: ignore[attr-defined]
    parts = [
        f"{n} {verb}"
        for n, verb in (
            (s["create"], "added"),
            (s["update"], "changed"),
            (s["delete"], "destroyed"),
        )
        if n
    ]
    if parts:
        _err(f"  Partial result: {', '.join(parts)}.", fg=fg)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from fusion_provisioner.config.loader import ConfigError
    from fusion_provisioner.engine.errors import (
        ApplyCanceled,
        ApplyError,
        ImmutableFieldViolationError,
        IndeterminateOutcomeError,
        ValidationError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, ImmutableFieldViolationError):
        _err(f"Cannot update {exc.kind} in place:", fg=fg)
        for v in exc.violations:
            _err(f"  - {v.field}: {v.observed!r} -> {v.desired!r}", fg=fg)
    elif isinstance(exc, ApplyError):
        _err(f"Apply failed: {exc}", fg=fg)
        if isinstance(exc.__cause__, IndeterminateOutcomeError):
            _err(
                "  The backend operation may still complete; run plan again "
                "before retrying.",
                fg=fg,
            )
        _partial_summary(exc, fg)
    elif isinstance(exc, IndeterminateOutcomeError):
        _err(f"Outcome unknown: {exc}", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
