"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

from fusion_provisioner.config.loader import ConfigError, load_config, load_profile
from fusion_provisioner.config.registry import default_registry
from fusion_provisioner.config.schema import Config, ProviderConfig
from fusion_provisioner.core.provider import FusionProvider, TokenAuth
from fusion_provisioner.engine.engine import FusionEngine, ProgressCallback

if TYPE_CHECKING:
    import threading
    from pathlib import Path

    from fusion_provisioner.engine.types import ApplyResult, Plan
    from fusion_provisioner.resources.base import Resource

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "apply",
    "engine_from_config",
    "import_resource",
    "list_resources",
    "load",
    "load_config",
    "load_profile",
    "plan",
    "plan_and_apply",
    "validate",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def engine_from_config(config: Config) -> FusionEngine:
    """Build a ``FusionEngine`` from a ``Config`` instance."""
    if not config.provider.host:
        raise ConfigError(
            "provider.host is required (set in YAML, FUSION_HOST env var or a Fusion profile)"
        )
    if not config.provider.access_token:
        raise ConfigError(
            "provider.access_token is required (set FUSION_ACCESS_TOKEN env var "
            "or a Fusion profile)"
        )
    auth = TokenAuth(access_token=SecretStr(config.provider.access_token))
    provider = FusionProvider(
        host=config.provider.host,
        auth=auth,
        verify_ssl=config.provider.verify_ssl,
        request_timeout=config.provider.request_timeout,
    )
    return FusionEngine(
        provider=provider,
        registry=default_registry(),
        policy=config.polling,
        parallelism=config.parallelism,
    )


def validate(config: Config) -> list[str]:
    """Check the declared resources offline and return their apply order."""
    engine = FusionEngine(
        provider=FusionProvider(), registry=default_registry(), parallelism=config.parallelism
    )
    return engine.validate(config.resources)


def plan(config: Config, *, destroy: bool = False) -> Plan:
    """Plan changes for the given configuration."""
    engine = engine_from_config(config)
    return engine.plan(config.resources, destroy=destroy)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = engine_from_config(config)
    return engine.apply(plan_obj, progress=progress, cancel=cancel)


def plan_and_apply(config: Config, *, destroy: bool = False) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy)
    return apply(plan_obj, config)


def import_resource(config: Config, kind: str, path: str) -> Resource:
    """Read an existing resource by self link and return it as a model."""
    engine = engine_from_config(config)
    model = engine.registry.by_kind(kind)
    result = engine.reconciler.import_resource(path, model)
    return model.from_attributes(result.attributes)


def list_resources(
    config: Config, kind: str, scope: dict[str, str], **filters: str
) -> list[dict[str, Any]]:
    """List the live resources of a kind inside *scope*."""
    engine = engine_from_config(config)
    model = engine.registry.by_kind(kind)
    return engine.reconciler.list(model, scope, **filters)
