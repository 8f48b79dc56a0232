"""Certificate custom resource models.

Certificates are accessed via ``CustomObjectsApi`` which returns raw ``dict``
objects, so ``from_k8s_object`` uses ``dict.get()`` and ``to_k8s_object``
produces the camelCase wire layout.

The request intent, the obsolete-secret marker and the absolute validity are
typed fields on :class:`Certificate`. They travel between the admission stage
and the reconciler as the ``requestType``, ``deleteSecret`` and
``validityInHours`` annotations.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from k8c_certs_manager.certificates.durations import parse_duration
from k8c_certs_manager.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
    _format_time,
    _parse_time,
)

# certs.k8c.io CRD coordinates
CERTIFICATE_GROUP = "certs.k8c.io"
CERTIFICATE_VERSION = "v1"
CERTIFICATE_PLURAL = "certificates"
CERTIFICATE_KIND = "Certificate"
CERTIFICATE_API_VERSION = f"{CERTIFICATE_GROUP}/{CERTIFICATE_VERSION}"

# Annotations carrying state between admission and reconciliation
INTENT_ANNOTATION = "requestType"
OBSOLETE_SECRET_ANNOTATION = "deleteSecret"
VALIDITY_ANNOTATION = "validityInHours"
MANAGED_ANNOTATIONS = (INTENT_ANNOTATION, OBSOLETE_SECRET_ANNOTATION, VALIDITY_ANNOTATION)


class Intent(StrEnum):
    """What the reconciler has been asked to do next."""

    NONE = "none"
    CREATE = "create"
    UPDATE = "update"
    CLEANUP = "cleanup"

    @property
    def annotation_value(self) -> str | None:
        """Wire value of the ``requestType`` annotation (None: no annotation)."""
        return _INTENT_TO_ANNOTATION.get(self)

    @classmethod
    def from_annotation(cls, value: str | None) -> Intent:
        """Parse a ``requestType`` annotation; unknown values mean no intent."""
        if not value:
            return cls.NONE
        return _ANNOTATION_TO_INTENT.get(value, cls.NONE)


_INTENT_TO_ANNOTATION = {
    Intent.CREATE: "CreateRequest",
    Intent.UPDATE: "UpdateRequest",
    Intent.CLEANUP: "CleanupRequest",
}
_ANNOTATION_TO_INTENT = {value: intent for intent, value in _INTENT_TO_ANNOTATION.items()}


class ConditionType(StrEnum):
    """Lifecycle conditions; at most one is true at a time."""

    PENDING = "Pending"
    ISSUED = "Issued"
    RENEWING = "Renewing"
    RENEWED = "Renewed"
    EXPIRED = "Expired"
    FAILED = "Failed"


class CertificateSubject(BaseModel):
    """X.509 subject attributes requested for the certificate."""

    model_config = ConfigDict(extra="ignore")

    country: list[str] = Field(default_factory=list, description="Country codes")
    organization: list[str] = Field(default_factory=list, description="Organizations")
    organizational_unit: list[str] = Field(
        default_factory=list, description="Organizational units"
    )
    common_name: str = Field(default="", description="Common Name")
    serial_number: str = Field(default="", description="Base-10 serial number")

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> CertificateSubject:
        """Create from a ``spec.subject`` dict."""
        return cls(
            country=list(obj.get("country") or []),
            organization=list(obj.get("organization") or []),
            organizational_unit=list(obj.get("organizationalUnit") or []),
            common_name=obj.get("commonName") or "",
            serial_number=obj.get("serialNumber") or "",
        )

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a ``spec.subject`` dict, omitting empty fields."""
        data: dict[str, Any] = {}
        if self.country:
            data["country"] = list(self.country)
        if self.organization:
            data["organization"] = list(self.organization)
        if self.organizational_unit:
            data["organizationalUnit"] = list(self.organizational_unit)
        if self.common_name:
            data["commonName"] = self.common_name
        if self.serial_number:
            data["serialNumber"] = self.serial_number
        return data


class CertificateSpec(BaseModel):
    """Declared intent of a Certificate."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    subject: CertificateSubject | None = Field(default=None, description="Subject name")
    dns_name: str = Field(default="", description="DNS Subject Alternative Name")
    email_addresses: list[str] = Field(
        default_factory=list, description="Email Subject Alternative Names"
    )
    validity: str = Field(default="", description="Requested lifetime (e.g. 90d, 1y, 12h)")
    renew_before: str = Field(default="", description="Renewal window before expiry (e.g. 5m)")
    secret_name: str = Field(default="", description="Target Secret name (secretRef.name)")

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> CertificateSpec:
        """Create from a ``spec`` dict."""
        subject = obj.get("subject")
        secret_ref: dict[str, Any] = obj.get("secretRef") or {}
        return cls(
            subject=CertificateSubject.from_k8s_object(subject) if subject is not None else None,
            dns_name=obj.get("dnsName") or "",
            email_addresses=list(obj.get("emailAddresses") or []),
            validity=obj.get("validity") or "",
            renew_before=obj.get("renewBefore") or "",
            secret_name=secret_ref.get("name") or "",
        )

    def matches(self, other: CertificateSpec | None) -> bool:
        """Compare only the declared fields (``DECLARED_SPEC_FIELDS``)."""
        if other is None:
            return False
        return all(getattr(self, f) == getattr(other, f) for f in DECLARED_SPEC_FIELDS)

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a ``spec`` dict."""
        data: dict[str, Any] = {
            "dnsName": self.dns_name,
            "validity": self.validity,
            "secretRef": {"name": self.secret_name},
        }
        if self.subject is not None:
            data["subject"] = self.subject.to_k8s_object()
        if self.email_addresses:
            data["emailAddresses"] = list(self.email_addresses)
        if self.renew_before:
            data["renewBefore"] = self.renew_before
        return data


# Fields compared to decide whether a change to a Certificate is "real"
DECLARED_SPEC_FIELDS: tuple[str, ...] = tuple(CertificateSpec.model_fields)


class CertificateCondition(BaseModel):
    """One entry of ``status.conditions``."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(description="Condition type (Pending, Issued, ...)")
    status: bool = Field(default=False, description="Whether the condition holds")
    reason: str = Field(default="", description="Machine-readable reason")
    message: str = Field(default="", description="Human-readable message")
    last_transition_time: datetime | None = Field(
        default=None, description="When status last changed"
    )

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> CertificateCondition:
        """Create from a condition dict."""
        return cls(
            type=obj.get("type", ""),
            status=obj.get("status") == "True",
            reason=obj.get("reason", ""),
            message=obj.get("message", ""),
            last_transition_time=_parse_time(obj.get("lastTransitionTime")),
        )

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a condition dict."""
        return {
            "type": self.type,
            "status": "True" if self.status else "False",
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": _format_time(self.last_transition_time),
        }


class CertificateStatus(BaseModel):
    """Reconciler-owned observed state."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    expiry_date: datetime | None = Field(default=None, description="Current credential expiry")
    renewed_at: datetime | None = Field(default=None, description="Last renewal time")
    observed_generation: int = Field(default=0, description="Last generation processed")
    secret_name: str = Field(default="", description="Secret currently backing the certificate")
    failures: int = Field(default=0, description="Consecutive failed reconciliations")
    conditions: list[CertificateCondition] = Field(
        default_factory=list, description="Condition history"
    )

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> CertificateStatus:
        """Create from a ``status`` dict."""
        raw_conditions: list[dict[str, Any]] = obj.get("conditions") or []
        return cls(
            expiry_date=_parse_time(obj.get("expiryDate")),
            renewed_at=_parse_time(obj.get("renewedAt")),
            observed_generation=obj.get("observedGeneration") or 0,
            secret_name=obj.get("secretRef") or "",
            failures=obj.get("failures") or 0,
            conditions=[CertificateCondition.from_k8s_object(c) for c in raw_conditions],
        )

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a ``status`` dict."""
        data: dict[str, Any] = {
            "observedGeneration": self.observed_generation,
            "conditions": [c.to_k8s_object() for c in self.conditions],
        }
        if self.expiry_date is not None:
            data["expiryDate"] = _format_time(self.expiry_date)
        if self.renewed_at is not None:
            data["renewedAt"] = _format_time(self.renewed_at)
        if self.secret_name:
            data["secretRef"] = self.secret_name
        if self.failures:
            data["failures"] = self.failures
        return data

    def condition(self, condition_type: str) -> CertificateCondition | None:
        """Return the condition of the given type, if recorded."""
        for c in self.conditions:
            if c.type == condition_type:
                return c
        return None

    @property
    def active_condition(self) -> CertificateCondition | None:
        """The single condition currently true, if any."""
        for c in self.conditions:
            if c.status:
                return c
        return None


class Certificate(K8sEntityBase):
    """A desired self-signed certificate and its observed status."""

    generation: int = Field(default=0, description="Spec generation")
    spec: CertificateSpec = Field(default_factory=CertificateSpec)
    status: CertificateStatus = Field(default_factory=CertificateStatus)
    intent: Intent = Field(default=Intent.NONE, description="Pending request for the reconciler")
    obsolete_secret_name: str | None = Field(
        default=None, description="Previous Secret to delete after a rename"
    )
    validity_in_hours: str | None = Field(
        default=None, description="Absolute lifetime computed at admission (e.g. 720h)"
    )

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> Certificate:
        """Create from a Certificate CRD dict."""
        metadata: dict[str, Any] = obj.get("metadata") or {}
        annotations: dict[str, str] = dict(metadata.get("annotations") or {})
        intent = Intent.from_annotation(annotations.pop(INTENT_ANNOTATION, None))
        obsolete = annotations.pop(OBSOLETE_SECRET_ANNOTATION, None) or None
        validity_in_hours = annotations.pop(VALIDITY_ANNOTATION, None) or None

        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace"),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            creation_timestamp=metadata.get("creationTimestamp"),
            labels=metadata.get("labels") or None,
            annotations=annotations or None,
            finalizers=list(metadata.get("finalizers") or []),
            owner_references=[
                OwnerReference.from_dict(ref) for ref in metadata.get("ownerReferences") or []
            ],
            generation=metadata.get("generation") or 0,
            spec=CertificateSpec.from_k8s_object(obj.get("spec") or {}),
            status=CertificateStatus.from_k8s_object(obj.get("status") or {}),
            intent=intent,
            obsolete_secret_name=obsolete,
            validity_in_hours=validity_in_hours,
        )

    def to_k8s_object(self) -> dict[str, Any]:
        """Render as a Certificate CRD dict, folding typed state into annotations."""
        metadata = self._metadata_to_k8s()
        annotations: dict[str, str] = dict(metadata.get("annotations") or {})
        for key in MANAGED_ANNOTATIONS:
            annotations.pop(key, None)
        if (intent_value := self.intent.annotation_value) is not None:
            annotations[INTENT_ANNOTATION] = intent_value
        if self.obsolete_secret_name:
            annotations[OBSOLETE_SECRET_ANNOTATION] = self.obsolete_secret_name
        if self.validity_in_hours:
            annotations[VALIDITY_ANNOTATION] = self.validity_in_hours
        if annotations:
            metadata["annotations"] = annotations
        else:
            metadata.pop("annotations", None)
        if self.generation:
            metadata["generation"] = self.generation

        return {
            "apiVersion": CERTIFICATE_API_VERSION,
            "kind": CERTIFICATE_KIND,
            "metadata": metadata,
            "spec": self.spec.to_k8s_object(),
            "status": self.status.to_k8s_object(),
        }

    def intent_patch(self) -> dict[str, Any]:
        """Merge patch writing only the reconciler-owned annotations.

        The intent and the obsolete-secret marker are set, or removed with
        None. ``resourceVersion`` is included so a stale write is rejected.
        """
        metadata: dict[str, Any] = {
            "annotations": {
                INTENT_ANNOTATION: self.intent.annotation_value,
                OBSOLETE_SECRET_ANNOTATION: self.obsolete_secret_name or None,
            }
        }
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return {"metadata": metadata}

    @property
    def lifetime(self) -> timedelta:
        """Absolute lifetime recovered from ``validity_in_hours``.

        Raises:
            ValueError: If the lifetime was never computed or does not parse.
        """
        if not self.validity_in_hours:
            raise ValueError("certificate has no computed validity")
        return parse_duration(self.validity_in_hours)

    @property
    def renew_before(self) -> timedelta:
        """Renewal window parsed from the spec.

        Raises:
            ValueError: If ``renewBefore`` does not parse.
        """
        return parse_duration(self.spec.renew_before)
