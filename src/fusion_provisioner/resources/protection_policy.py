"""Protection policy resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar

from pydantic import Field

from fusion_provisioner.core.units import Minutes, iso8601_to_minutes, minutes_to_iso8601
from fusion_provisioner.resources.base import Resource
from fusion_provisioner.resources.markers import DeleteFlag, Immutable, Wire

LOCAL_RPO_MIN = 10
LOCAL_RETENTION_MIN = 1


class ProtectionPolicyResource(Resource):
    """Local snapshot schedule (RPO) and retention.

    Durations accept minutes or the compound ``1Y2W3D4H5M`` notation.  A
    protection policy cannot be changed once created; not even its display
    name is patchable.
    """

    resource_type: ClassVar[str] = "fusion_protection_policy"
    kind: ClassVar[str] = "protection_policy"
    collection: ClassVar[str] = "protection-policies"
    placeholder: ClassVar[str] = "protection-policy"
    plan_priority: ClassVar[int] = 10

    display_name: Annotated[
        str | None,
        Field(min_length=1, max_length=256),
        Wire("display_name", post="display_name"),
        Immutable(),
    ] = None
    local_rpo: Annotated[Minutes, Field(ge=LOCAL_RPO_MIN), Wire(None), Immutable()]
    local_retention: Annotated[Minutes, Field(ge=LOCAL_RETENTION_MIN), Wire(None), Immutable()]
    destroy_snapshots_on_delete: Annotated[
        bool,
        DeleteFlag(
            "destroy_snapshots",
            snapshot_filter="protection_policy_id",
            snapshot_filter_source="id",
        ),
    ] = False

    def post_body(self) -> dict[str, Any]:
        body = super().post_body()
        body["objectives"] = [
            {"type": "RPO", "rpo": minutes_to_iso8601(self.local_rpo)},
            {"type": "Retention", "after": minutes_to_iso8601(self.local_retention)},
        ]
        return body

    @classmethod
    def attributes_from_payload(cls, payload: dict[str, Any]) -> dict[str, Any]:
        attrs = super().attributes_from_payload(payload)
        attrs["local_rpo"] = None
        attrs["local_retention"] = None
        for objective in payload.get("objectives") or []:
            if objective.get("type") == "RPO":
                attrs["local_rpo"] = iso8601_to_minutes(objective["rpo"])
            elif objective.get("type") == "Retention":
                attrs["local_retention"] = iso8601_to_minutes(objective["after"])
        return attrs
