"""Shared fixtures for unit tests."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

import pytest

from fusion_provisioner.config import load
from fusion_provisioner.config.registry import default_registry
from fusion_provisioner.core.client import ApiRequest, ApiResponse, TransportError
from fusion_provisioner.engine.poller import OperationPoller, PollPolicy
from fusion_provisioner.engine.reconciler import Reconciler

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from fusion_provisioner.config.schema import Config
    from fusion_provisioner.engine.registry import ResourceTypeRegistry

_FUSION_ENV_VARS = (
    "FUSION_HOST",
    "FUSION_ACCESS_TOKEN",
    "FUSION_VERIFY_SSL",
    "FUSION_REQUEST_TIMEOUT",
    "FUSION_CONFIG",
    "FUSION_CONFIG_PROFILE",
    "FUSION_LOG",
)

# Path label -> payload key of the ancestor reference.
_PARENT_KEYS = {
    "tenants": "tenant",
    "tenant-spaces": "tenant_space",
    "regions": "region",
    "availability-zones": "availability_zone",
    "storage-services": "storage_service",
    "roles": "role",
}

# Request body keys that name another resource.
_REF_KEYS = frozenset(
    {
        "storage_class",
        "placement_group",
        "protection_policy",
        "storage_service",
        "array",
        "hardware_type",
    }
)


def _last_segment(value: str) -> str:
    return value.rsplit("/", 1)[-1]


class FakeBackend:
    """In-memory Fusion control plane.

    Mutations answer with an operation that reports ``Pending`` and
    ``Running`` before finishing, so every call goes through the poller.
    State changes are applied when the mutation is accepted.
    """

    def __init__(self, *, polls_per_operation: int = 2) -> None:
        self.store: dict[str, dict[str, Any]] = {}
        self.calls: list[ApiRequest] = []
        self.polls_per_operation = polls_per_operation
        self.hang_operations = False
        self.poll_transport_errors = 0
        self._failures: list[tuple[str, str, dict[str, Any]]] = []
        self._operations: dict[str, dict[str, Any]] = {}
        self._remaining_polls: dict[str, int] = {}
        self._ids = itertools.count(1)

    # ── Test helpers ────────────────────────────────────────────────

    def add(self, path: str, **payload: Any) -> dict[str, Any]:
        """Seed a resource at *path*."""
        record = {
            "id": payload.pop("id", f"id-{next(self._ids)}"),
            "name": _last_segment(path),
            "display_name": _last_segment(path),
            "self_link": path,
            **self._parent_refs(path),
            **payload,
        }
        self.store[path] = record
        return record

    def fail_next(
        self,
        method: str,
        path: str,
        *,
        message: str = "boom",
        pure_code: str = "INTERNAL",
        http_code: int = 500,
    ) -> None:
        """Make the next *method* on *path* end in a ``Failed`` operation."""
        error = {"message": message, "pure_code": pure_code, "http_code": http_code}
        self._failures.append((method, path, error))

    def mutations(self) -> list[ApiRequest]:
        return [c for c in self.calls if c.method != "GET"]

    def by_id(self, resource_id: str) -> dict[str, Any] | None:
        return next((r for r in self.store.values() if r.get("id") == resource_id), None)

    # ── Backend protocol ────────────────────────────────────────────

    def call(self, request: ApiRequest) -> ApiResponse:
        self.calls.append(request)
        parts = request.path.split("/")
        if request.method == "GET":
            if len(parts) == 3 and parts[1] == "operations":
                return self._poll(parts[2])
            if len(parts) == 4 and parts[1] == "resources":
                record = self.by_id(parts[3])
                return ApiResponse(200, record) if record else self._not_found(request.path)
            if request.path in self.store:
                return ApiResponse(200, self.store[request.path])
            if len(parts) % 2 == 0:
                return ApiResponse(200, {"items": self._list(request.path, request.params)})
            return self._not_found(request.path)
        if request.method == "POST":
            return self._create(request)
        if request.method == "PATCH":
            return self._update(request)
        if request.method == "DELETE":
            return self._delete(request)
        raise AssertionError(f"unexpected method {request.method}")

    # ── Internals ───────────────────────────────────────────────────

    @staticmethod
    def _not_found(path: str) -> ApiResponse:
        return ApiResponse(
            404, {"error": {"message": f"{path} not found", "pure_code": "NOT_FOUND"}}
        )

    @staticmethod
    def _parent_refs(path: str) -> dict[str, Any]:
        parts = path.split("/")[1:-2]
        refs: dict[str, Any] = {}
        for idx in range(0, len(parts), 2):
            label, value = parts[idx], parts[idx + 1]
            if label in _PARENT_KEYS:
                link = "/" + "/".join(parts[: idx + 2])
                refs[_PARENT_KEYS[label]] = {"name": value, "self_link": link}
        return refs

    def _list(self, path: str, params: dict[str, str]) -> list[dict[str, Any]]:
        prefix, _, collection = path.rpartition("/")
        items = []
        for item_path, record in sorted(self.store.items()):
            segments = item_path.split("/")
            if not item_path.startswith(prefix + "/") or segments[-2] != collection:
                continue
            if all(self._matches(record.get(k), v) for k, v in params.items()):
                items.append(record)
        return items

    @staticmethod
    def _matches(value: Any, wanted: str) -> bool:
        if isinstance(value, dict):
            return value.get("name") == wanted
        return value == wanted

    def _wire(self, record: dict[str, Any], key: str, value: Any) -> None:
        """Apply one request-body field to a stored record."""
        if key in _REF_KEYS:
            record[key] = {"name": _last_segment(value)} if value else None
        elif key == "host_access_policies":
            names = value.split(",") if isinstance(value, str) else list(value or [])
            record[key] = [{"name": n} for n in names if n]
        elif key == "hardware_types":
            record[key] = [{"name": h} for h in value]
        elif key == "source_link":
            record["source"] = {"self_link": value}
        elif key == "scope":
            record[key] = {"self_link": value}
        elif key == "iscsi":
            interfaces = []
            for di in value["discovery_interfaces"]:
                groups = di.get("network_interface_groups") or []
                interfaces.append({**di, "network_interface_groups": [{"name": g} for g in groups]})
            record[key] = {"discovery_interfaces": interfaces}
        else:
            record[key] = value

    def _take_failure(self, method: str, path: str) -> dict[str, Any] | None:
        for idx, (m, p, error) in enumerate(self._failures):
            if m == method and p == path:
                del self._failures[idx]
                return error
        return None

    def _operation(
        self, request_type: str, *, resource: dict[str, Any] | None, error: dict[str, Any] | None
    ) -> ApiResponse:
        op_id = f"op-{next(self._ids)}"
        op: dict[str, Any] = {"id": op_id, "request_type": request_type, "status": "Pending"}
        if resource is not None:
            op["result"] = {
                "resource": {
                    "id": resource["id"],
                    "name": resource["name"],
                    "self_link": resource["self_link"],
                }
            }
        if error is not None:
            op["_error"] = error
        self._operations[op_id] = op
        self._remaining_polls[op_id] = self.polls_per_operation
        return ApiResponse(202, {k: v for k, v in op.items() if not k.startswith("_")})

    def _poll(self, op_id: str) -> ApiResponse:
        if self.poll_transport_errors:
            self.poll_transport_errors -= 1
            raise TransportError(f"GET /operations/{op_id} failed: connection reset")
        op = self._operations[op_id]
        if self.hang_operations:
            op["status"] = "Running"
        elif self._remaining_polls[op_id] > 1:
            self._remaining_polls[op_id] -= 1
            op["status"] = "Running"
        elif "_error" in op:
            op["status"] = "Failed"
            op["error"] = op["_error"]
        else:
            op["status"] = "Succeeded"
        return ApiResponse(200, {k: v for k, v in op.items() if not k.startswith("_")})

    def _create(self, request: ApiRequest) -> ApiResponse:
        body = request.json or {}
        # Kinds without a name in the request are named by the backend.
        name = body.get("name") or f"ra-{next(self._ids)}"
        path = f"{request.path}/{name}"
        request_type = f"Create{_last_segment(request.path)}"
        error = self._take_failure("POST", request.path)
        if error is None and path in self.store:
            error = {
                "message": f"{name} already exists",
                "pure_code": "ALREADY_EXISTS",
                "http_code": 409,
            }
        if error is not None:
            return self._operation(request_type, resource=None, error=error)

        record = self.add(path)
        for key, value in body.items():
            if key in ("name", "region"):
                continue
            if key == "availability_zone":
                zone_link = f"/regions/{body.get('region')}/availability-zones/{value}"
                record[key] = {"name": value, "self_link": zone_link}
            else:
                self._wire(record, key, value)
        if path.split("/")[-2] == "volumes":
            record.setdefault("destroyed", False)
            record["serial_number"] = f"SN{record['id']}"
        return self._operation(request_type, resource=record, error=None)

    def _update(self, request: ApiRequest) -> ApiResponse:
        record = self.store.get(request.path)
        if record is None:
            return self._not_found(request.path)
        error = self._take_failure("PATCH", request.path)
        if error is None:
            for key, wrapper in (request.json or {}).items():
                self._wire(record, key, wrapper["value"])
        return self._operation("Update", resource=record, error=error)

    def _delete(self, request: ApiRequest) -> ApiResponse:
        record = self.store.get(request.path)
        if record is None:
            return self._not_found(request.path)
        error = self._take_failure("DELETE", request.path)
        if error is None:
            del self.store[request.path]
        return self._operation("Delete", resource=None, error=error)


@pytest.fixture(autouse=True)
def _clean_fusion_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove FUSION_* env vars so unit tests don't leak host config."""
    for var in _FUSION_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fast_policy() -> PollPolicy:
    return PollPolicy(interval=0.001, max_interval=0.001, max_attempts=50)


@pytest.fixture
def registry() -> ResourceTypeRegistry:
    return default_registry()


@pytest.fixture
def reconciler(
    backend: FakeBackend, registry: ResourceTypeRegistry, fast_policy: PollPolicy
) -> Reconciler:
    return Reconciler(backend, registry, poller=OperationPoller(backend, fast_policy))


@pytest.fixture
def seeded(backend: FakeBackend) -> FakeBackend:
    """Backend holding the ancestors and reference targets of a typical volume."""
    backend.add("/tenants/t1")
    backend.add("/tenants/t1/tenant-spaces/ts1")
    backend.add("/regions/r1")
    backend.add("/regions/r1/availability-zones/az1")
    backend.add(
        "/regions/r1/availability-zones/az1/network-interface-groups/nig1",
        group_type="eth",
        eth={"gateway": "10.0.0.1", "prefix": "10.0.0.0/24", "mtu": 1500, "vlan": 100},
    )
    backend.add("/storage-services/ss1", hardware_types=[{"name": "flash-array-x"}])
    backend.add("/storage-services/ss1/storage-classes/sc1")
    backend.add("/protection-policies/pp1")
    backend.add("/host-access-policies/h1", iqn="iqn.2023-01.com.example:h1")
    backend.add("/host-access-policies/h2", iqn="iqn.2023-01.com.example:h2")
    backend.add(
        "/tenants/t1/tenant-spaces/ts1/placement-groups/pg1",
        availability_zone={"name": "az1", "self_link": "/regions/r1/availability-zones/az1"},
        storage_service={"name": "ss1"},
    )
    backend.add(
        "/tenants/t1/tenant-spaces/ts1/placement-groups/pg2",
        availability_zone={"name": "az1", "self_link": "/regions/r1/availability-zones/az1"},
        storage_service={"name": "ss1"},
    )
    return backend


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make
