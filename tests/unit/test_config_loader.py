"""Tests for the YAML configuration loader."""

from __future__ import annotations

import json
from io import StringIO
from pathlib import Path

import pytest
from pydantic import ValidationError
from ruamel.yaml import YAML

from fusion_provisioner.config import validate
from fusion_provisioner.config.loader import (
    ConfigError,
    _validate_unique_names,
    load_config,
    load_profile,
)
from fusion_provisioner.config.schema import Config
from fusion_provisioner.resources import (
    ArrayResource,
    HostAccessPolicyResource,
    PlacementGroupResource,
    RoleAssignmentResource,
    SourceLink,
    StorageEndpointResource,
    TenantResource,
    TenantSpaceResource,
)

_FULL_YAML = """\
provider:
  host: https://fusion.example.com

parallelism: 2

polling:
  interval: 0.5
  max_attempts: 20

tenants:
  - name: t1
    display_name: Tenant One

tenant_spaces:
  - name: ts1
    tenant: t1

regions:
  - name: r1

availability_zones:
  - name: az1
    region: r1

storage_services:
  - name: ss1
    hardware_types: [flash-array-x, flash-array-c]

storage_classes:
  - name: sc1
    storage_service: ss1
    size_limit: 1T
    iops_limit: 100K
    bandwidth_limit: 1G

protection_policies:
  - name: pp1
    local_rpo: 15M
    local_retention: 1D

host_access_policies:
  - name: h1
    iqn: iqn.2023-01.com.example:h1
    personality: esxi

placement_groups:
  - name: pg1
    tenant: t1
    tenant_space: ts1
    region: r1
    availability_zone: az1
    storage_service: ss1

volumes:
  - name: v1
    tenant: t1
    tenant_space: ts1
    size: 10G
    storage_class_name: sc1
    placement_group_name: pg1
    protection_policy_name: pp1
    host_names: [h1]

  - name: v2
    tenant: t1
    tenant_space: ts1
    storage_class_name: sc1
    placement_group_name: pg1
    source_link:
      tenant: t1
      tenant_space: ts1
      volume: v1
"""


def _parse(yaml_str: str) -> Config:
    """Parse a YAML string into a Config without touching the filesystem."""
    raw = YAML(typ="safe").load(StringIO(yaml_str))
    try:
        return Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


@pytest.fixture
def full_config() -> Config:
    return _parse(_FULL_YAML)


class TestLoadConfigFull:
    def test_full_yaml_parses(self, full_config: Config) -> None:
        assert full_config.provider.host == "https://fusion.example.com"
        assert full_config.parallelism == 2
        assert full_config.polling.interval == 0.5
        assert full_config.polling.max_attempts == 20
        assert len(full_config.resources) == 11

    def test_units_parsed(self, full_config: Config) -> None:
        sc = full_config.storage_classes[0]
        assert (sc.size_limit, sc.iops_limit, sc.bandwidth_limit) == (1 << 40, 100_000, 1 << 30)
        pp = full_config.protection_policies[0]
        assert (pp.local_rpo, pp.local_retention) == (15, 1440)

    def test_typed_sections(self, full_config: Config) -> None:
        assert isinstance(full_config.tenants[0], TenantResource)
        assert isinstance(full_config.placement_groups[0], PlacementGroupResource)
        assert isinstance(full_config.host_access_policies[0], HostAccessPolicyResource)
        assert full_config.host_access_policies[0].personality == "esxi"

    def test_source_link(self, full_config: Config) -> None:
        copy = full_config.volumes[1]
        assert copy.source_link == SourceLink(tenant="t1", tenant_space="ts1", volume="v1")
        assert copy.size is None

    def test_addresses(self, full_config: Config) -> None:
        addrs = [r.address for r in full_config.resources]
        assert "fusion_tenant_space.t1.ts1" in addrs
        assert "fusion_storage_class.ss1.sc1" in addrs
        assert "fusion_volume.t1.ts1.v2" in addrs

    def test_config_dir_set_to_parent(self, tmp_path: Path) -> None:
        f = tmp_path / "sub" / "fusion.yaml"
        f.parent.mkdir()
        f.write_text("tenants:\n  - name: t1\n")
        config = load_config(f)
        assert config.config_dir == tmp_path / "sub"

    def test_defaults(self) -> None:
        config = _parse("tenants:\n  - name: t1\n")
        assert config.parallelism == 4
        assert config.polling.interval == 1.0
        assert config.provider.verify_ssl is True


_ZONE_YAML = """\
arrays:
  - name: a1
    region: r1
    availability_zone: az1
    appliance_id: "1187351-242133817"
    host_name: flasharray1
    hardware_type: flash-array-x

network_interface_groups:
  - name: nig1
    region: r1
    availability_zone: az1
    eth:
      gateway: 10.0.0.1
      prefix: 10.0.0.0/24

storage_endpoints:
  - name: se1
    region: r1
    availability_zone: az1
    iscsi:
      discovery_interfaces:
        - address: 10.0.0.10/24
          network_interface_groups: [nig1]

role_assignments:
  - role_name: tenant-admin
    principal: alice
    tenant: t1
  - role_name: tenant-admin
    principal: bob
    tenant: t1
"""


class TestZoneAndAccessSections:
    def test_sections_typed(self) -> None:
        config = _parse(_ZONE_YAML)
        assert isinstance(config.arrays[0], ArrayResource)
        assert isinstance(config.storage_endpoints[0], StorageEndpointResource)
        assert config.network_interface_groups[0].eth.mtu == 1500
        assert all(isinstance(r, RoleAssignmentResource) for r in config.role_assignments)

    def test_assignments_told_apart_by_principal(self) -> None:
        config = _parse(_ZONE_YAML)
        addrs = [r.address for r in config.role_assignments]
        assert addrs == [
            "fusion_role_assignment.tenant-admin.alice.t1",
            "fusion_role_assignment.tenant-admin.bob.t1",
        ]
        assert _validate_unique_names(config.resources) == []

    def test_endpoint_ordered_after_its_group(self) -> None:
        order = validate(_parse(_ZONE_YAML))
        assert order.index("fusion_network_interface_group.r1.az1.nig1") < order.index(
            "fusion_storage_endpoint.r1.az1.se1"
        )

    def test_repeated_assignment_is_duplicate(self) -> None:
        entry = "  - {role_name: tenant-admin, principal: alice}\n"
        config = _parse("role_assignments:\n" + entry + entry)
        assert _validate_unique_names(config.resources) == [
            "Duplicate role_assignment name 'fusion_role_assignment.tenant-admin.alice'"
            " in /roles/tenant-admin/role-assignments"
        ]


class TestConfigErrors:
    def test_unknown_section(self) -> None:
        with pytest.raises(ConfigError, match="extra"):
            _parse("snapshots:\n  - name: s1\n")

    def test_unknown_resource_field(self) -> None:
        with pytest.raises(ConfigError, match="extra"):
            _parse("tenants:\n  - name: t1\n    colour: blue\n")

    def test_missing_required_parent(self) -> None:
        with pytest.raises(ConfigError, match="tenant"):
            _parse("tenant_spaces:\n  - name: ts1\n")

    def test_invalid_units(self) -> None:
        with pytest.raises(ConfigError, match="invalid data unit format"):
            _parse(
                "storage_classes:\n  - name: sc\n    storage_service: ss\n    size_limit: lots\n"
            )

    def test_empty_sections(self) -> None:
        config = _parse("tenants:\nvolumes:\n")
        assert config.tenants == []
        assert config.resources == []

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "fusion.yaml"
        f.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="expected a mapping"):
            load_config(f)

    def test_empty_file(self, tmp_path: Path) -> None:
        f = tmp_path / "fusion.yaml"
        f.write_text("")
        assert load_config(f).resources == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_parallelism(self) -> None:
        with pytest.raises(ConfigError, match="parallelism"):
            _parse("parallelism: 0\n")


class TestDuplicateNameValidation:
    def test_duplicate_in_same_scope(self) -> None:
        resources = [TenantResource(name="t1"), TenantResource(name="t1")]
        errors = _validate_unique_names(resources)
        assert errors == ["Duplicate tenant name 't1' in /tenants/t1"]

    def test_same_name_different_scope(self) -> None:
        resources = [
            TenantSpaceResource(name="prod", tenant="a"),
            TenantSpaceResource(name="prod", tenant="b"),
        ]
        assert _validate_unique_names(resources) == []

    def test_same_name_different_kind(self) -> None:
        resources = [TenantResource(name="x"), HostAccessPolicyResource(name="x", iqn="iqn.a.b")]
        assert _validate_unique_names(resources) == []

    def test_load_config_duplicate_names(self, tmp_path: Path) -> None:
        f = tmp_path / "fusion.yaml"
        f.write_text(
            "volumes:\n"
            "  - {name: v1, tenant: t, tenant_space: s, size: 1G,"
            " storage_class_name: sc, placement_group_name: pg}\n"
            "  - {name: v1, tenant: t, tenant_space: s, size: 2G,"
            " storage_class_name: sc, placement_group_name: pg}\n"
        )
        with pytest.raises(ConfigError, match="Duplicate volume name 'v1'"):
            load_config(f)


def _write_profile(path: Path, **profiles: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    default = next(iter(profiles), None)
    path.write_text(json.dumps({"default_profile": default, "profiles": profiles}))
    return path


class TestLoadProfile:
    def test_default_profile(self, tmp_path: Path) -> None:
        path = _write_profile(
            tmp_path / "fusion.json",
            main={"endpoint": "https://main", "auth": {"access_token": "tok"}},
        )
        assert load_profile(path) == {"host": "https://main", "access_token": "tok"}

    def test_named_profile(self, tmp_path: Path) -> None:
        path = _write_profile(
            tmp_path / "fusion.json",
            main={"endpoint": "https://main"},
            lab={"endpoint": "https://lab"},
        )
        assert load_profile(path, "lab") == {"host": "https://lab"}

    def test_unknown_profile(self, tmp_path: Path) -> None:
        path = _write_profile(tmp_path / "fusion.json", main={"endpoint": "https://main"})
        with pytest.raises(ConfigError, match="profile does not exist. profile name: other"):
            load_profile(path, "other")

    def test_missing_endpoint(self, tmp_path: Path) -> None:
        path = _write_profile(tmp_path / "fusion.json", main={"auth": {}})
        with pytest.raises(ConfigError, match="`endpoint`"):
            load_profile(path)

    def test_missing_profiles(self, tmp_path: Path) -> None:
        path = tmp_path / "fusion.json"
        path.write_text('{"default_profile": "main"}')
        with pytest.raises(ConfigError, match="`profiles`"):
            load_profile(path)

    def test_missing_default(self, tmp_path: Path) -> None:
        path = tmp_path / "fusion.json"
        path.write_text('{"profiles": {}}')
        with pytest.raises(ConfigError, match="`default_profile`"):
            load_profile(path)

    def test_unreadable(self, tmp_path: Path) -> None:
        path = tmp_path / "fusion.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="cannot read fusion config"):
            load_profile(path)


class TestShippedExample:
    def test_example_loads_and_orders(self) -> None:
        config = load_config(Path(__file__).parents[2] / "examples" / "fusion.yaml")
        order = validate(config)
        assert len(order) == 15
        pg = order.index("fusion_placement_group.analytics.warehouse.warehouse-pg")
        assert pg < order.index("fusion_volume.analytics.warehouse.orders")
        nig = order.index("fusion_network_interface_group.pure-us-west.az1.iscsi-net")
        assert nig < order.index("fusion_storage_endpoint.pure-us-west.az1.iscsi-ep")
        assert order.index("fusion_tenant.analytics") < order.index(
            "fusion_role_assignment.tenant-admin.analytics-admins.analytics"
        )
        assert config.volumes[1].eradicate_on_delete is True
