"""Tests for config convenience API and engine wiring."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from fusion_provisioner.config import (
    engine_from_config,
    import_resource,
    list_resources,
    load,
    plan,
    plan_and_apply,
    validate,
)
from fusion_provisioner.config.loader import ConfigError, _resolve_provider
from fusion_provisioner.config.registry import default_registry
from fusion_provisioner.config.schema import Config, ProviderConfig
from fusion_provisioner.core.client import RestBackend
from fusion_provisioner.core.provider import FusionProvider
from fusion_provisioner.engine.engine import FusionEngine
from fusion_provisioner.engine.errors import DependencyCycleError
from fusion_provisioner.resources import TenantSpaceResource

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import FakeBackend

_YAML = """\
provider:
  host: https://fusion.example.com
  access_token: test-token

tenants:
  - name: t1
"""


def _config(**provider: object) -> Config:
    return Config(provider=ProviderConfig(**provider))  # type: ignore[arg-type]


class TestEngineFromConfig:
    def test_builds_rest_backend(self) -> None:
        config = _config(host="https://h", access_token="tok", request_timeout=5)
        engine = engine_from_config(config)
        backend = engine.reconciler._backend
        assert isinstance(backend, RestBackend)

    def test_passes_polling_and_parallelism(self) -> None:
        config = Config(
            provider=ProviderConfig(host="https://h", access_token="tok"),
            parallelism=8,
            polling={"interval": 0.25},  # type: ignore[arg-type]
        )
        engine = engine_from_config(config)
        assert engine._parallelism == 8
        assert engine._policy is not None
        assert engine._policy.interval == 0.25

    def test_missing_host_raises(self) -> None:
        with pytest.raises(ConfigError, match="host"):
            engine_from_config(_config(access_token="tok"))

    def test_missing_token_raises(self) -> None:
        with pytest.raises(ConfigError, match="access_token"):
            engine_from_config(_config(host="https://h"))

    def test_verify_ssl_passed_to_provider(self) -> None:
        engine = engine_from_config(_config(host="https://h", access_token="t", verify_ssl=False))
        assert engine._provider.verify_ssl is False


class TestResolveProvider:
    """Unit tests for _resolve_provider priority chain (no YAML parsing)."""

    def test_yaml_value_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_HOST", "https://from-env")
        result = _resolve_provider({"host": "https://from-yaml"}, Path())
        assert result["host"] == "https://from-yaml"

    def test_env_var_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_HOST", "https://from-env")
        result = _resolve_provider({}, Path())
        assert result["host"] == "https://from-env"

    def test_yaml_null_falls_through_to_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_ACCESS_TOKEN", "from-env")
        result = _resolve_provider({"host": "https://h", "access_token": None}, Path())
        assert result["access_token"] == "from-env"

    def test_missing_field_omitted(self) -> None:
        result = _resolve_provider({}, Path())
        assert "host" not in result
        assert "access_token" not in result

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("FUSION_ACCESS_TOKEN=from-dotenv\n")
        result = _resolve_provider({"host": "https://h"}, tmp_path)
        assert result["access_token"] == "from-dotenv"

    def test_env_var_overrides_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("FUSION_ACCESS_TOKEN=from-dotenv\n")
        monkeypatch.setenv("FUSION_ACCESS_TOKEN", "from-env")
        result = _resolve_provider({}, tmp_path)
        assert result["access_token"] == "from-env"

    def test_dotenv_with_bom(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_bytes(b"\xef\xbb\xbfFUSION_ACCESS_TOKEN=from-bom\n")
        result = _resolve_provider({"host": "https://h"}, tmp_path)
        assert result["access_token"] == "from-bom"

    def test_other_fields_passed_through(self) -> None:
        result = _resolve_provider({"request_timeout": 5}, Path())
        assert result["request_timeout"] == 5

    def test_verify_ssl_from_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_VERIFY_SSL", "false")
        result = _resolve_provider({}, Path())
        assert result["verify_ssl"] is False

    def test_verify_ssl_invalid_string_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_VERIFY_SSL", "nope")
        with pytest.raises(ConfigError, match=r"Invalid boolean.*FUSION_VERIFY_SSL"):
            _resolve_provider({}, Path())


class TestProfileFallback:
    @staticmethod
    def _profile(path: Path, endpoint: str = "https://profile") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(
                {
                    "default_profile": "main",
                    "profiles": {
                        "main": {"endpoint": endpoint, "auth": {"access_token": "p-tok"}},
                        "lab": {"endpoint": "https://lab", "auth": {"access_token": "l-tok"}},
                    },
                }
            )
        )
        return path

    def test_default_profile_location(self, tmp_path: Path) -> None:
        self._profile(tmp_path / "home" / ".pure" / "fusion.json")
        result = _resolve_provider({}, Path())
        assert result == {"host": "https://profile", "access_token": "p-tok"}

    def test_profile_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = self._profile(tmp_path / "custom.json")
        monkeypatch.setenv("FUSION_CONFIG", str(path))
        monkeypatch.setenv("FUSION_CONFIG_PROFILE", "lab")
        result = _resolve_provider({}, Path())
        assert result["host"] == "https://lab"

    def test_profile_is_lowest_priority(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._profile(tmp_path / "home" / ".pure" / "fusion.json")
        monkeypatch.setenv("FUSION_ACCESS_TOKEN", "env-tok")
        result = _resolve_provider({"host": "https://yaml"}, Path())
        assert result == {"host": "https://yaml", "access_token": "env-tok"}

    def test_profile_fills_missing_field(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._profile(tmp_path / "home" / ".pure" / "fusion.json")
        monkeypatch.setenv("FUSION_ACCESS_TOKEN", "env-tok")
        result = _resolve_provider({}, Path())
        assert result == {"host": "https://profile", "access_token": "env-tok"}

    def test_explicit_missing_profile_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FUSION_CONFIG", str(tmp_path / "missing.json"))
        with pytest.raises(ConfigError, match="cannot read fusion config"):
            _resolve_provider({}, Path())


class TestLoadFunction:
    def test_load_returns_config(self, make_config: Callable[..., Config]) -> None:
        config = make_config(_YAML)
        assert config.provider.access_token == "test-token"
        assert len(config.resources) == 1

    def test_dotenv_next_to_config(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "provider:\n  host: https://h\n",
            dotenv="FUSION_ACCESS_TOKEN=from-dotenv\n",
        )
        assert config.provider.access_token == "from-dotenv"

    def test_dotenv_from_config_dir_not_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        subdir = tmp_path / "infra"
        subdir.mkdir()
        (subdir / ".env").write_text("FUSION_ACCESS_TOKEN=from-subdir\n")
        (subdir / "fusion.yaml").write_text("provider:\n  host: https://h\n")
        monkeypatch.chdir(tmp_path)
        config = load(subdir / "fusion.yaml")
        assert config.provider.access_token == "from-subdir"

    def test_verify_ssl_from_env(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FUSION_VERIFY_SSL", "false")
        config = make_config(_YAML)
        assert config.provider.verify_ssl is False

    def test_verify_ssl_default_true(self, make_config: Callable[..., Config]) -> None:
        assert make_config(_YAML).provider.verify_ssl is True


class TestValidateFunction:
    def test_runs_offline(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "tenants:\n  - name: t1\ntenant_spaces:\n  - name: ts1\n    tenant: t1\n"
        )
        assert validate(config) == ["fusion_tenant.t1", "fusion_tenant_space.t1.ts1"]

    def test_reports_cycles(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "tenants:\n"
            "  - name: a\n    depends_on: [fusion_tenant.b]\n"
            "  - name: b\n    depends_on: [fusion_tenant.a]\n"
        )
        with pytest.raises(DependencyCycleError, match="fusion_tenant.a, fusion_tenant.b"):
            validate(config)


class TestPlanIntegration:
    @patch("fusion_provisioner.engine.engine.FusionEngine.plan")
    def test_plan_passes_destroy(
        self, mock_engine_plan: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        config = make_config(_YAML)
        mock_engine_plan.return_value = MagicMock()

        plan(config, destroy=True)

        args, kwargs = mock_engine_plan.call_args
        assert args[0] == config.resources
        assert kwargs["destroy"] is True

    @patch("fusion_provisioner.config.apply")
    @patch("fusion_provisioner.config.plan")
    def test_plan_and_apply_chains(
        self, mock_plan: MagicMock, mock_apply: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        config = make_config(_YAML)

        result = plan_and_apply(config, destroy=True)

        mock_plan.assert_called_once_with(config, destroy=True)
        mock_apply.assert_called_once_with(mock_plan.return_value, config)
        assert result is mock_apply.return_value


def _fake_engine(backend: FakeBackend) -> FusionEngine:
    return FusionEngine(provider=FusionProvider.from_backend(backend), registry=default_registry())


class TestImportAndList:
    def test_import_resource_returns_model(
        self, seeded: FakeBackend, make_config: Callable[..., Config]
    ) -> None:
        config = make_config(_YAML)
        engine = _fake_engine(seeded)
        with patch("fusion_provisioner.config.engine_from_config", return_value=engine):
            resource = import_resource(config, "tenant_space", "/tenants/t1/tenant-spaces/ts1")
        assert isinstance(resource, TenantSpaceResource)
        assert resource.address == "fusion_tenant_space.t1.ts1"
        assert resource.id == seeded.store["/tenants/t1/tenant-spaces/ts1"]["id"]

    def test_list_resources(self, seeded: FakeBackend, make_config: Callable[..., Config]) -> None:
        config = make_config(_YAML)
        engine = _fake_engine(seeded)
        scope = {"tenant": "t1", "tenant_space": "ts1"}
        with patch("fusion_provisioner.config.engine_from_config", return_value=engine):
            items = list_resources(config, "placement_group", scope)
        assert [i["name"] for i in items] == ["pg1", "pg2"]
        assert items[0]["region"] == "r1"
