"""YAML configuration file loader."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor

from fusion_provisioner.config.schema import Config

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fusion_provisioner.resources.base import Resource


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "host": "FUSION_HOST",
    "access_token": "FUSION_ACCESS_TOKEN",
    "verify_ssl": "FUSION_VERIFY_SSL",
}

_PROVIDER_BOOL_FIELDS: frozenset[str] = frozenset({"verify_ssl"})

PROFILE_PATH_ENV = "FUSION_CONFIG"
PROFILE_NAME_ENV = "FUSION_CONFIG_PROFILE"
DEFAULT_PROFILE_PATH = Path("~/.pure/fusion.json")


def _lookup(key: str, dotenv_vals: Mapping[str, str | None]) -> str | None:
    val = os.environ.get(key)
    if val is None:
        val = dotenv_vals.get(key)
    return val


def load_profile(path: Path | str, profile_name: str | None = None) -> dict[str, Any]:
    """Read ``endpoint`` and ``access_token`` from a Fusion profile file.

    The file holds ``default_profile`` and a ``profiles`` mapping; each
    profile has an ``endpoint`` and an ``auth`` block.

    Raises:
        ConfigError: Unreadable file, missing fields or unknown profile.
    """
    path = Path(path).expanduser()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot read fusion config {path}: {exc}") from exc

    profiles = raw.get("profiles")
    if not isinstance(profiles, dict):
        raise ConfigError(f"{path}: config does not have required field `profiles`")
    name = profile_name or raw.get("default_profile")
    if not name:
        raise ConfigError(f"{path}: config does not have required field `default_profile`")
    profile = profiles.get(name)
    if not isinstance(profile, dict):
        raise ConfigError(f"{path}: profile does not exist. profile name: {name}")
    if not profile.get("endpoint"):
        raise ConfigError(f"{path}: profile does not have required field `endpoint`")

    resolved: dict[str, Any] = {"host": profile["endpoint"]}
    token = (profile.get("auth") or {}).get("access_token")
    if token:
        resolved["access_token"] = token
    logger.debug("Using Fusion profile '%s' from %s", name, path)
    return resolved


def _profile_values(dotenv_vals: Mapping[str, str | None]) -> dict[str, Any]:
    explicit = _lookup(PROFILE_PATH_ENV, dotenv_vals)
    path = Path(explicit) if explicit else DEFAULT_PROFILE_PATH
    if not explicit and not path.expanduser().is_file():
        return {}
    return load_profile(path, _lookup(PROFILE_NAME_ENV, dotenv_vals))


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve provider fields from YAML, env vars, ``.env`` file and Fusion profile.

    Priority (highest wins): YAML value > env var > ``.env`` file > profile.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved: dict[str, Any] = {k: v for k, v in raw_provider.items() if k not in _PROVIDER_ENV_MAP}
    for field, env_key in _PROVIDER_ENV_MAP.items():
        val = raw_provider.get(field)
        if val is None:
            val = _lookup(env_key, dotenv_vals)
        if val is not None:
            if field in _PROVIDER_BOOL_FIELDS and isinstance(val, str):
                if val.lower() not in SafeConstructor.bool_values:
                    raise ConfigError(f"Invalid boolean for {env_key}: {val!r}")
                val = SafeConstructor.bool_values[val.lower()]
            resolved[field] = val

    if resolved.get("host") is None or resolved.get("access_token") is None:
        for field, val in _profile_values(dotenv_vals).items():
            resolved.setdefault(field, val)

    return resolved


def _validate_unique_names(resources: list[Resource]) -> list[str]:
    """Check that no two resources of a kind share a name within their parent scope."""
    seen: dict[str, str] = {}  # address → kind
    errors: list[str] = []
    for r in resources:
        if r.address in seen:
            errors.append(f"Duplicate {r.kind} name '{r.name or r.address}' in {r.path}")
        else:
            seen[r.address] = r.kind
    return errors


def load_config(path: Path | str) -> Config:
    """Load a YAML configuration file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    errors = _validate_unique_names(config.resources)
    if errors:
        raise ConfigError("\n".join(errors))

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
