"""Base models shared by the Certificate and Secret representations."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OwnerReference(BaseModel):
    """Kubernetes owner reference."""

    model_config = ConfigDict(extra="ignore")

    api_version: str | None = None
    kind: str | None = None
    name: str | None = None
    uid: str | None = None
    controller: bool | None = None
    block_owner_deletion: bool | None = None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> OwnerReference:
        """Create from a kubernetes V1OwnerReference object."""
        if obj is None:
            return cls()
        return cls(
            api_version=getattr(obj, "api_version", None),
            kind=getattr(obj, "kind", None),
            name=getattr(obj, "name", None),
            uid=getattr(obj, "uid", None),
            controller=getattr(obj, "controller", None),
            block_owner_deletion=getattr(obj, "block_owner_deletion", None),
        )

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> OwnerReference:
        """Create from a camelCase ``ownerReferences`` entry of a raw object."""
        return cls(
            api_version=obj.get("apiVersion"),
            kind=obj.get("kind"),
            name=obj.get("name"),
            uid=obj.get("uid"),
            controller=obj.get("controller"),
            block_owner_deletion=obj.get("blockOwnerDeletion"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as a camelCase ``ownerReferences`` entry, omitting unset fields."""
        data = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }
        return {key: value for key, value in data.items() if value is not None}


class K8sEntityBase(BaseModel):
    """Object metadata common to every stored resource.

    ``finalizers`` and ``owner_references`` are carried through unchanged so
    a full replace of the object does not drop metadata set by others.
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    name: str = Field(description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    resource_version: str | None = Field(
        default=None, description="Optimistic concurrency token"
    )
    creation_timestamp: str | None = Field(default=None, description="Creation time")
    labels: dict[str, str] | None = Field(default=None, description="Resource labels")
    annotations: dict[str, str] | None = Field(default=None, description="Resource annotations")
    finalizers: list[str] = Field(default_factory=list, description="Deletion finalizers")
    owner_references: list[OwnerReference] = Field(
        default_factory=list, description="Owning objects"
    )

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the object as ``(namespace, name)``."""
        return (self.namespace or "", self.name)

    def _metadata_to_k8s(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.finalizers:
            metadata["finalizers"] = list(self.finalizers)
        if self.owner_references:
            metadata["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]
        return metadata


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


def _get_timestamp(obj: Any) -> str | None:
    """Extract ISO timestamp string from a datetime or string."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _parse_time(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp (``...Z``) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _format_time(value: datetime | None) -> str | None:
    """Render a datetime the way the API server does (second precision, ``Z``)."""
    if value is None:
        return None
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
