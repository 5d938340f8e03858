"""Plan/apply engine.

The engine keeps no state file: every plan reads the live state of each
declared resource by its name path and classifies it as create, update or
no-op.  Apply runs the changes in dependency waves; resources within a wave
are independent and are reconciled concurrently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from functools import cached_property
from typing import TYPE_CHECKING, Any

from fusion_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DestroyedResourceError,
    DuplicateAddressError,
    ValidationError,
)
from fusion_provisioner.engine.graph import DependencyGraph
from fusion_provisioner.engine.reconciler import Reconciler
from fusion_provisioner.engine.types import (
    Action,
    ApplyResult,
    LifecycleState,
    Plan,
    ResourceChange,
)

logger = logging.getLogger(__name__)

# Called with the transitional state when a change starts (creating, updating,
# deleting) and with the observed state when it finishes (present, absent,
# destroyed).
ProgressCallback = Callable[[ResourceChange, LifecycleState], None]

_IN_FLIGHT = {
    Action.CREATE: LifecycleState.CREATING,
    Action.UPDATE: LifecycleState.UPDATING,
    Action.DELETE: LifecycleState.DELETING,
}

DEFAULT_PARALLELISM = 4

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fusion_provisioner.core.provider import FusionProvider
    from fusion_provisioner.engine.poller import PollPolicy
    from fusion_provisioner.engine.registry import ResourceTypeRegistry
    from fusion_provisioner.resources.base import Resource


class FusionEngine:
    """Terraform-like plan/apply engine for Fusion resources."""

    def __init__(
        self,
        *,
        provider: FusionProvider,
        registry: ResourceTypeRegistry,
        policy: PollPolicy | None = None,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self._provider = provider
        self._registry = registry
        self._policy = policy
        self._parallelism = parallelism

    @cached_property
    def reconciler(self) -> Reconciler:
        """Reconciler bound to the provider backend, built on first use."""
        return Reconciler(self._provider.backend, self._registry, policy=self._policy)

    @property
    def registry(self) -> ResourceTypeRegistry:
        return self._registry

    def _index(self, resources: Sequence[Resource]) -> dict[str, Resource]:
        desired_by_addr: dict[str, Resource] = {}
        for r in resources:
            if r.address in desired_by_addr:
                raise DuplicateAddressError(r.address)
            self._registry.get(r.resource_type)
            desired_by_addr[r.address] = r
        return desired_by_addr

    def _resolve_deps(self, desired_by_addr: dict[str, Resource]) -> dict[str, list[str]]:
        """Build dependency map: explicit depends_on + ancestors + ``Ref`` markers.

        Returns addr -> full dep list without mutating the Resource objects.
        """
        typed_name_to_addrs: dict[tuple[str, str], list[str]] = {}
        for addr, r in desired_by_addr.items():
            typed_name_to_addrs.setdefault((r.resource_type, r.name), []).append(addr)

        dep_map: dict[str, list[str]] = {}
        for addr, r in desired_by_addr.items():
            deps = list(r.depends_on)
            candidates = [a for a in r.parent_addresses() if a in desired_by_addr]
            for ref in r.references():
                target = self._registry.get(ref.resource_type)
                parent_fields = target.descriptor().parent_fields
                if all(hasattr(r, f) for f in parent_fields):
                    exact = ".".join(
                        [ref.resource_type, *(getattr(r, f) for f in parent_fields), ref.name]
                    )
                    candidates.extend(a for a in [exact] if a in desired_by_addr)
                else:
                    candidates.extend(typed_name_to_addrs.get((ref.resource_type, ref.name), []))
            for dep in candidates:
                if dep != addr and dep not in deps:
                    deps.append(dep)
            dep_map[addr] = deps
        return dep_map

    def _validate(self, desired_by_addr: dict[str, Resource]) -> None:
        errors: list[str] = []
        for r in desired_by_addr.values():
            for dep in r.depends_on:
                if dep not in desired_by_addr:
                    errors.append(f"Resource '{r.address}' depends on unknown address '{dep}'")
        if errors:
            raise ValidationError(errors)

    def _order(
        self, desired_by_addr: dict[str, Resource], dep_map: dict[str, list[str]]
    ) -> list[str]:
        priorities = {addr: r.plan_priority for addr, r in desired_by_addr.items()}
        graph = DependencyGraph(desired_by_addr, dep_map, priorities=priorities)
        return graph.topological_order()

    @staticmethod
    def _desired_dump(resource: Resource, deps: list[str]) -> dict[str, Any]:
        dump = resource.model_dump(mode="json", exclude_none=True)
        dump["depends_on"] = deps
        return dump

    def _classify_change(self, addr: str, resource: Resource, deps: list[str]) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, or NOOP against live state."""
        observed = self.reconciler.find(resource)
        desired_dump = self._desired_dump(resource, deps)

        if observed.state is LifecycleState.DESTROYED:
            raise DestroyedResourceError(addr, resource.path)

        if observed.state is LifecycleState.ABSENT:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                resource_type=resource.resource_type,
                action=Action.CREATE,
                path=resource.path,
                desired=desired_dump,
            )

        assert observed.handle is not None
        prior = observed.attributes
        diff = {
            k: {"from": prior.get(k), "to": resource.planned_value(k)}
            for k in self.reconciler.check_update(resource, prior)
        }

        action = Action.UPDATE if diff else Action.NOOP
        logger.debug("Classified %s as %s", addr, action.value)
        return ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=action,
            path=observed.handle.path,
            desired=desired_dump,
            prior=prior,
            diff=diff or None,
            handle=observed.handle,
        )

    def _classify_delete(
        self, addr: str, resource: Resource, deps: list[str]
    ) -> ResourceChange | None:
        model = type(resource)
        observed = self.reconciler.find(resource)
        if observed.state is LifecycleState.ABSENT:
            return None
        assert observed.handle is not None
        eradicate = any(
            opt.effect == "eradicate" and getattr(resource, name)
            for name, opt in model.descriptor().delete_options.items()
        )
        if observed.state is LifecycleState.DESTROYED and not eradicate:
            return None
        return ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=Action.DELETE,
            path=observed.handle.path,
            desired=self._desired_dump(resource, deps),
            prior=observed.attributes,
            handle=observed.handle,
        )

    def validate(self, resources: Sequence[Resource]) -> list[str]:
        """Check addresses, dependencies and ordering without contacting the backend.

        Returns the addresses in apply order.
        """
        desired_by_addr = self._index(resources)
        self._validate(desired_by_addr)
        return self._order(desired_by_addr, self._resolve_deps(desired_by_addr))

    def plan(self, resources: Sequence[Resource], *, destroy: bool = False) -> Plan:
        """Read live state for every declared resource and compute the changes."""
        logger.info("Planning %d resources (destroy=%s)", len(resources), destroy)
        desired_by_addr = self._index(resources)
        self._validate(desired_by_addr)
        dep_map = self._resolve_deps(desired_by_addr)
        order = self._order(desired_by_addr, dep_map)

        changes: list[ResourceChange] = []
        if destroy:
            for addr in reversed(order):
                change = self._classify_delete(addr, desired_by_addr[addr], dep_map[addr])
                if change is not None:
                    changes.append(change)
        else:
            changes = [
                self._classify_change(addr, desired_by_addr[addr], dep_map[addr])
                for addr in order
            ]
        return Plan(destroy=destroy, changes=changes)

    # ── Apply ───────────────────────────────────────────────────────

    def _run(self, change: ResourceChange, cancel: threading.Event) -> LifecycleState:
        model = self._registry.get(change.resource_type)
        desired = model.model_validate(change.desired or {})
        match change.action:
            case Action.CREATE:
                return self.reconciler.create(desired, cancel=cancel).state
            case Action.UPDATE:
                assert change.handle is not None
                return self.reconciler.update(
                    change.handle, desired, change.prior or {}, cancel=cancel
                ).state
            case Action.DELETE:
                assert change.handle is not None
                options = [
                    name for name in model.descriptor().delete_options if getattr(desired, name)
                ]
                return self.reconciler.delete(
                    change.handle, model, options=options, cancel=cancel
                )
            case _:
                raise ValueError(f"Unknown action: {change.action}")

    def _waves(self, plan: Plan, changes: list[ResourceChange]) -> list[list[str]]:
        addrs = {c.address for c in changes}
        dep_map = {
            c.address: [d for d in (c.desired or {}).get("depends_on", []) if d in addrs]
            for c in changes
        }
        priorities = {
            c.address: self._registry.get(c.resource_type).plan_priority for c in changes
        }
        graph = DependencyGraph(addrs, dep_map, priorities=priorities)
        return graph.reverse_waves() if plan.destroy else graph.waves()

    def apply(
        self,
        plan: Plan,
        *,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        cancel = cancel or threading.Event()
        changes = [c for c in plan.changes if c.action is not Action.NOOP]
        by_addr = {c.address: c for c in changes}
        applied: list[ResourceChange] = []
        waves = self._waves(plan, changes)
        logger.info("Applying %d changes in %d waves", len(changes), len(waves))

        def run(change: ResourceChange) -> ResourceChange:
            if progress:
                progress(change, _IN_FLIGHT[change.action])
            state = self._run(change, cancel)
            if progress:
                progress(change, state)
            return change

        with ThreadPoolExecutor(max_workers=self._parallelism) as pool:
            for wave in waves:
                futures = {pool.submit(run, by_addr[addr]): addr for addr in wave}
                try:
                    wait(futures)
                except KeyboardInterrupt as e:  # pragma: no cover
                    cancel.set()
                    wait(futures)
                    raise ApplyCanceled("Apply canceled") from e

                failed: tuple[str, BaseException] | None = None
                for future, addr in sorted(futures.items(), key=lambda kv: kv[1]):
                    exc = future.exception()
                    if exc is None:
                        applied.append(future.result())
                    elif failed is None:
                        failed = (addr, exc)
                if failed is not None:
                    addr, exc = failed
                    raise ApplyError(applied=applied, address=addr, message=str(exc)) from exc

        return ApplyResult(applied=applied)
