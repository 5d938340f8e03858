"""Generic lifecycle reconciler.

One state machine drives every resource kind:

    ABSENT -> CREATING -> PRESENT -> UPDATING -> PRESENT -> DELETING -> ABSENT | DESTROYED

Per-kind differences (path shape, immutable fields, delete flags, soft
deletion, attachment sequencing) come from the ``ResourceDescriptor`` derived
from the model class; nothing here branches on the kind itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fusion_provisioner.core.address import collection_path, decode, encode, scope_path
from fusion_provisioner.core.client import ApiRequest, ApiResponse
from fusion_provisioner.engine.copy import CopyMode, classify, source_link_path
from fusion_provisioner.engine.errors import (
    ApiError,
    ConflictError,
    DeleteVerificationError,
    EngineError,
    NotFoundError,
    UnsupportedDeleteOptionError,
)
from fusion_provisioner.engine.guard import ensure_mutable, values_differ
from fusion_provisioner.engine.poller import (
    ALREADY_EXISTS,
    Operation,
    OperationPoller,
    parse_operation,
)
from fusion_provisioner.engine.references import resolve_reference, resolve_references
from fusion_provisioner.engine.types import LifecycleState, ReadResult, ResourceHandle
from fusion_provisioner.resources.markers import wire_fields

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable, Mapping

    from fusion_provisioner.core.client import Backend
    from fusion_provisioner.engine.poller import PollPolicy
    from fusion_provisioner.engine.registry import ResourceTypeRegistry
    from fusion_provisioner.resources.base import Resource
    from fusion_provisioner.resources.descriptor import DeleteOption

logger = logging.getLogger(__name__)


class Reconciler:
    """Create / read / update / delete / import any registered resource kind."""

    def __init__(
        self,
        backend: Backend,
        registry: ResourceTypeRegistry,
        *,
        poller: OperationPoller | None = None,
        policy: PollPolicy | None = None,
    ) -> None:
        self._backend = backend
        self._registry = registry
        self._poller = poller or OperationPoller(backend, policy)

    # ── Backend helpers ─────────────────────────────────────────────

    def _get(self, path: str, params: dict[str, str] | None = None) -> ApiResponse:
        return self._backend.call(ApiRequest("GET", path, params=params or {}))

    def _submit(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        subject: str | None = None,
    ) -> Operation:
        """Send a mutation and return the operation it started."""
        response = self._backend.call(ApiRequest(method, path, json=body))  # type: ignore[arg-type]
        if response.status_code == 409 or response.pure_code() == ALREADY_EXISTS:
            raise ConflictError(subject or path, response.error_message())
        if response.status_code == 404:
            raise NotFoundError(subject or path, response.error_message() or None)
        if not response.ok:
            raise ApiError(method, path, response.status_code, response.error_message())
        return parse_operation(method, path, response)

    def _patch(
        self,
        path: str,
        body: dict[str, Any],
        *,
        cancel: threading.Event | None,
    ) -> Operation:
        logger.debug("PATCH %s %s", path, body)
        op = self._submit("PATCH", path, body=body)
        return self._poller.wait(op, cancel=cancel, path=path)

    @staticmethod
    def _observe(
        model: type[Resource], handle: ResourceHandle, payload: dict[str, Any]
    ) -> ReadResult:
        state = LifecycleState.DESTROYED if payload.get("destroyed") else LifecycleState.PRESENT
        return ReadResult(
            state=state,
            handle=handle,
            attributes=model.attributes_from_payload(payload),
        )

    # ── Read ────────────────────────────────────────────────────────

    def read(self, handle: ResourceHandle, model: type[Resource]) -> ReadResult:
        """Fetch canonical state by id (or by name path when the id is unknown).

        A 404 yields ``ABSENT``; a payload flagged ``destroyed`` yields
        ``DESTROYED``.
        """
        descriptor = model.descriptor()
        path = f"/resources/{descriptor.collection}/{handle.id}" if handle.id else handle.path
        response = self._get(path)
        if response.status_code == 404:
            return ReadResult(state=LifecycleState.ABSENT, handle=handle)
        if not response.ok:
            raise ApiError("GET", path, response.status_code, response.error_message())

        payload: dict[str, Any] = response.body or {}
        current = ResourceHandle(
            id=payload.get("id", handle.id),
            name=payload.get("name", handle.name),
            path=payload.get("self_link") or handle.path,
        )
        return self._observe(model, current, payload)

    def lookup(self, model: type[Resource], name: str, scope: Mapping[str, str]) -> ReadResult:
        """Read a resource by its name inside ``scope``."""
        path = encode(model.descriptor(), scope, name)
        return self.read(ResourceHandle(name=name, path=path), model)

    def find(self, desired: Resource) -> ReadResult:
        """Locate the live counterpart of *desired*.

        Most kinds are read by name path.  Kinds whose names are assigned by
        the backend are matched on their descriptor's ``lookup_fields`` among
        the members of their collection.
        """
        model = type(desired)
        descriptor = model.descriptor()
        if not descriptor.lookup_fields:
            return self.lookup(model, desired.name, desired.scope())

        path = collection_path(descriptor, desired.scope())
        response = self._get(path)
        if not response.ok:
            raise ApiError("GET", path, response.status_code, response.error_message())
        body = response.body or {}
        normalizers = model.normalizers()
        for item in body.get("items", []) if isinstance(body, dict) else body:
            attributes = model.attributes_from_payload(item)
            if not any(
                values_differ(getattr(desired, f), attributes.get(f), normalizers.get(f))
                for f in descriptor.lookup_fields
            ):
                handle = ResourceHandle(
                    id=item.get("id"),
                    name=item["name"],
                    path=item.get("self_link") or f"{path}/{item['name']}",
                )
                return self._observe(model, handle, item)
        return ReadResult(state=LifecycleState.ABSENT)

    def list(
        self, model: type[Resource], scope: Mapping[str, str], **filters: str
    ) -> list[dict[str, Any]]:
        """List a collection, optionally filtered, as observed attributes."""
        path = collection_path(model.descriptor(), scope)
        response = self._get(path, params=filters)
        if not response.ok:
            raise ApiError("GET", path, response.status_code, response.error_message())
        body = response.body or {}
        items = body.get("items", []) if isinstance(body, dict) else body
        return [model.attributes_from_payload(item) for item in items]

    # ── Create ──────────────────────────────────────────────────────

    def create(self, desired: Resource, *, cancel: threading.Event | None = None) -> ReadResult:
        """Create *desired* and return its observed state.

        Raises:
            NotFoundError: A referenced resource does not exist.
            ConflictError: The name is already taken in the parent scope.
        """
        model = type(desired)
        descriptor = model.descriptor()
        path = desired.path

        resolve_references(self._backend, self._registry, desired)
        mode = classify(getattr(desired, "source_link", None), target_exists=False)

        logger.info("Creating %s %s", descriptor.kind, path)
        if mode is not CopyMode.PLAIN_CREATE:
            source = source_link_path(desired.source_link)  # type: ignore[attr-defined]
            logger.info("Populating %s via %s from %s", path, mode.value, source)
        op = self._submit(
            "POST",
            collection_path(descriptor, desired.scope()),
            body=desired.post_body(),
            subject=path,
        )
        handle, payload = self._poller.await_resource(
            op, fallback_path=path, collection=descriptor.collection, cancel=cancel
        )
        observed = self._observe(model, handle, payload)

        # Patchable fields the create request cannot carry (array, host_names).
        normalizers = model.normalizers()
        pending = [
            name
            for name, marker in wire_fields(model)
            if marker.post is None
            and marker.patch is not None
            and getattr(desired, name) is not None
            and values_differ(
                getattr(desired, name), observed.attributes.get(name), normalizers.get(name)
            )
        ]
        for name in pending:
            logger.debug("Post-create patch of %s on %s", name, handle.path)
            self._patch(handle.path, desired.patch_body(name), cancel=cancel)

        result = self.read(handle, model) if pending else observed
        logger.info("Created %s %s (id=%s)", descriptor.kind, handle.path, handle.id)
        return result

    # ── Update ──────────────────────────────────────────────────────

    def changed_fields(self, desired: Resource, observed: Mapping[str, Any]) -> list[str]:
        """Patchable fields whose desired value differs from the observed one.

        Fields the backend does not report are treated as unchanged.  A field
        left unset (``None``) is a change only when it declares a
        ``Wire(clear=...)`` value and the backend still has it set.
        """
        normalizers = type(desired).normalizers()
        changed: list[str] = []
        for name, marker in wire_fields(desired):
            if marker.patch is None or name not in observed:
                continue
            want, have = getattr(desired, name), observed[name]
            if want is None:
                if marker.clear is not None and have not in (None, "", []):
                    changed.append(name)
            elif values_differ(want, have, normalizers.get(name)):
                changed.append(name)
        return changed

    def check_update(self, desired: Resource, observed: Mapping[str, Any]) -> list[str]:
        """Validate an in-place update against observed attributes.

        Returns the fields to patch, in model field order.

        Raises:
            ImmutableFieldViolationError: An immutable field would change.
            InvalidCopyTargetError: A snapshot copy onto this existing volume.
        """
        model = type(desired)
        descriptor = model.descriptor()
        ensure_mutable(
            descriptor.kind,
            desired.desired_attributes(),
            observed,
            descriptor.immutable_fields,
            computed_fields=descriptor.computed_fields,
            normalizers=model.normalizers(),
        )
        changed = self.changed_fields(desired, observed)
        if "source_link" in changed:
            classify(desired.source_link, target_exists=True)  # type: ignore[attr-defined]
        return changed

    def update(
        self,
        handle: ResourceHandle,
        desired: Resource,
        observed: ReadResult | Mapping[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> ReadResult:
        """Bring an existing resource in line with *desired*, one patch per field.

        Raises:
            ImmutableFieldViolationError: Before any backend call.
            InvalidCopyTargetError: A snapshot copy onto this existing volume.
        """
        model = type(desired)
        descriptor = model.descriptor()
        attributes = observed.attributes if isinstance(observed, ReadResult) else observed

        changed = self.check_update(desired, attributes)
        if not changed:
            logger.debug("No changes for %s %s", descriptor.kind, handle.path)
            return self.read(handle, model)

        resolve_references(self._backend, self._registry, desired)

        path = handle.path
        attachment = descriptor.attachment_field
        reattach = attachment is not None and any(
            f in descriptor.reattach_fields for f in changed
        )

        logger.info("Updating %s %s: %s", descriptor.kind, path, ", ".join(changed))
        if reattach:
            assert attachment is not None
            logger.debug("Temporarily clearing %s on %s", attachment, path)
            self._patch(path, desired.patch_body(attachment, ""), cancel=cancel)
        for name in changed:
            if reattach and name == attachment:
                continue
            self._patch(path, desired.patch_body(name), cancel=cancel)
        if reattach:
            assert attachment is not None
            self._patch(path, desired.patch_body(attachment), cancel=cancel)

        return self.read(handle, model)

    # ── Delete ──────────────────────────────────────────────────────

    def _requested_options(
        self, model: type[Resource], options: Iterable[str] | Mapping[str, bool] | None
    ) -> list[DeleteOption]:
        descriptor = model.descriptor()
        if options is None:
            names: list[str] = []
        elif isinstance(options, dict):
            names = [k for k, v in options.items() if v]
        else:
            names = list(options)
        unknown = [n for n in names if n not in descriptor.delete_options]
        if unknown:
            raise UnsupportedDeleteOptionError(descriptor.kind, unknown)
        return [descriptor.delete_options[n] for n in names]

    def _destroy_snapshots(
        self,
        model: type[Resource],
        current: ReadResult,
        option: DeleteOption,
        *,
        cancel: threading.Event | None,
    ) -> None:
        descriptor = model.descriptor()
        assert current.handle is not None
        scope = decode(current.handle.path, descriptor).scope(descriptor)
        snapshots_path = f"{scope_path(descriptor, scope)}/snapshots"
        value = current.handle.id if option.snapshot_filter_source == "id" else current.handle.name
        params = {option.snapshot_filter: value} if option.snapshot_filter and value else {}

        response = self._get(snapshots_path, params=params)
        if not response.ok:
            raise ApiError("GET", snapshots_path, response.status_code, response.error_message())
        items = (response.body or {}).get("items", [])
        if not items:
            logger.debug("No snapshots found for %s", current.handle.path)
            return

        logger.info("Deleting %d snapshot(s) of %s", len(items), current.handle.path)
        for item in items:
            snap_path = item.get("self_link") or f"{snapshots_path}/{item['name']}"
            if not item.get("destroyed"):
                self._patch(snap_path, {"destroyed": {"value": True}}, cancel=cancel)
            op = self._submit("DELETE", snap_path)
            self._poller.wait(op, cancel=cancel, path=snap_path)

    def delete(
        self,
        handle: ResourceHandle,
        model: type[Resource],
        *,
        options: Iterable[str] | Mapping[str, bool] | None = None,
        cancel: threading.Event | None = None,
    ) -> LifecycleState:
        """Delete a resource; returns ``ABSENT`` or, for soft-deleted kinds, ``DESTROYED``.

        Deleting a resource that is already gone is a no-op.

        Raises:
            UnsupportedDeleteOptionError: A flag the kind does not declare.
            DeleteVerificationError: The resource is still readable afterwards.
        """
        descriptor = model.descriptor()
        requested = self._requested_options(model, options)

        current = self.read(handle, model)
        if current.state is LifecycleState.ABSENT:
            logger.info("%s %s already absent", descriptor.kind, handle.path)
            return LifecycleState.ABSENT
        assert current.handle is not None
        path = current.handle.path

        logger.info("Deleting %s %s", descriptor.kind, path)
        for option in requested:
            if option.effect == "destroy_snapshots":
                self._destroy_snapshots(model, current, option, cancel=cancel)

        eradicate = any(option.effect == "eradicate" for option in requested)
        if descriptor.soft_delete:
            if current.state is not LifecycleState.DESTROYED:
                if descriptor.detach_on_delete:
                    detach = {k: {"value": v} for k, v in descriptor.detach_on_delete.items()}
                    self._patch(path, detach, cancel=cancel)
                self._patch(path, {"destroyed": {"value": True}}, cancel=cancel)
            if not eradicate:
                after = self.read(current.handle, model)
                if after.state is LifecycleState.PRESENT:
                    raise DeleteVerificationError(path, 200)
                logger.info("%s %s is %s", descriptor.kind, path, after.state.value)
                return after.state

        try:
            op = self._submit("DELETE", path)
        except NotFoundError:
            logger.info("%s %s disappeared before delete", descriptor.kind, path)
            return LifecycleState.ABSENT
        self._poller.wait(op, cancel=cancel, path=path)

        verify_path = (
            f"/resources/{descriptor.collection}/{current.handle.id}" if current.handle.id else path
        )
        response = self._get(verify_path)
        if response.status_code != 404:
            raise DeleteVerificationError(path, response.status_code)
        logger.info("Deleted %s %s", descriptor.kind, path)
        return LifecycleState.ABSENT

    # ── Import ──────────────────────────────────────────────────────

    def import_resource(self, address: str, model: type[Resource]) -> ReadResult:
        """Adopt an existing resource by its self link.

        Raises:
            MalformedAddressError: The path does not match the kind's shape.
            NotFoundError: Nothing exists at the path.
        """
        descriptor = model.descriptor()
        if not descriptor.supports_import:
            raise EngineError(f"{descriptor.kind} does not support import")

        decoded = decode(address, descriptor)
        handle = resolve_reference(self._backend, descriptor, decoded.path, {})
        result = self.read(handle, model)
        if result.state is LifecycleState.ABSENT:
            raise NotFoundError(decoded.path)
        logger.info("Imported %s %s (id=%s)", descriptor.kind, decoded.path, handle.id)
        return result
