"""TLS Secret model holding an issued key/certificate pair."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from pydantic import Field

from k8c_certs_manager.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
    _get_timestamp,
    _safe_get,
)
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CERTIFICATE_API_VERSION,
    CERTIFICATE_KIND,
)

if TYPE_CHECKING:
    from kubernetes.client import V1Secret

    from k8c_certs_manager.integrations.kubernetes.models.certificate import Certificate

TLS_SECRET_TYPE = "kubernetes.io/tls"
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
TLS_DATA_KEYS = (TLS_CERT_KEY, TLS_PRIVATE_KEY_KEY)
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "k8c-certs-manager"


class TLSCredential(K8sEntityBase):
    """A ``kubernetes.io/tls`` Secret owned by a Certificate."""

    certificate: bytes = Field(default=b"", description="PEM CERTIFICATE block")
    private_key: bytes = Field(default=b"", description="PEM RSA PRIVATE KEY block")
    secret_type: str = Field(default=TLS_SECRET_TYPE, description="Secret type")
    extra_data: dict[str, str] = Field(
        default_factory=dict, description="Other data keys, base64-encoded as stored"
    )

    @classmethod
    def from_k8s_object(cls, obj: Any) -> TLSCredential:
        """Create from a kubernetes V1Secret object."""
        data: dict[str, str] = _safe_get(obj, "data", default={}) or {}
        labels = _safe_get(obj, "metadata", "labels")
        annotations = _safe_get(obj, "metadata", "annotations")
        owners = _safe_get(obj, "metadata", "owner_references", default=[]) or []
        finalizers = _safe_get(obj, "metadata", "finalizers", default=[]) or []
        return cls(
            name=_safe_get(obj, "metadata", "name", default=""),
            namespace=_safe_get(obj, "metadata", "namespace"),
            uid=_safe_get(obj, "metadata", "uid"),
            resource_version=_safe_get(obj, "metadata", "resource_version"),
            creation_timestamp=_get_timestamp(_safe_get(obj, "metadata", "creation_timestamp")),
            labels=dict(labels) if labels else None,
            annotations=dict(annotations) if annotations else None,
            certificate=base64.b64decode(data.get(TLS_CERT_KEY, "")),
            private_key=base64.b64decode(data.get(TLS_PRIVATE_KEY_KEY, "")),
            secret_type=_safe_get(obj, "type", default=TLS_SECRET_TYPE),
            extra_data={k: v for k, v in data.items() if k not in TLS_DATA_KEYS},
            finalizers=list(finalizers),
            owner_references=[OwnerReference.from_k8s_object(o) for o in owners],
        )

    def to_k8s_object(self) -> V1Secret:
        """Render as a kubernetes V1Secret object."""
        from kubernetes import client

        owner_references = [
            client.V1OwnerReference(
                api_version=ref.api_version,
                kind=ref.kind,
                name=ref.name,
                uid=ref.uid,
                controller=ref.controller,
                block_owner_deletion=ref.block_owner_deletion,
            )
            for ref in self.owner_references
        ]
        return client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=self.name,
                namespace=self.namespace,
                resource_version=self.resource_version,
                labels=self.labels,
                annotations=self.annotations,
                finalizers=list(self.finalizers) or None,
                owner_references=owner_references or None,
            ),
            type=self.secret_type,
            data={
                **self.extra_data,
                TLS_CERT_KEY: base64.b64encode(self.certificate).decode("ascii"),
                TLS_PRIVATE_KEY_KEY: base64.b64encode(self.private_key).decode("ascii"),
            },
        )

    @classmethod
    def for_certificate(
        cls,
        certificate: Certificate,
        cert_pem: bytes,
        key_pem: bytes,
    ) -> TLSCredential:
        """Build the Secret backing ``certificate.spec.secret_name``.

        The Secret is controller-owned by the Certificate so it is garbage
        collected together with it.
        """
        owner = OwnerReference(
            api_version=CERTIFICATE_API_VERSION,
            kind=CERTIFICATE_KIND,
            name=certificate.name,
            uid=certificate.uid,
            controller=True,
            block_owner_deletion=True,
        )
        return cls(
            name=certificate.spec.secret_name,
            namespace=certificate.namespace,
            labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            certificate=cert_pem,
            private_key=key_pem,
            owner_references=[owner] if certificate.uid else [],
        )

    def with_contents(self, cert_pem: bytes, key_pem: bytes) -> TLSCredential:
        """Copy of this Secret holding a new key/certificate pair.

        Metadata, type and other data keys are kept as read, so the Secret is
        overwritten in place rather than recreated.
        """
        return self.model_copy(
            update={"certificate": cert_pem, "private_key": key_pem}, deep=True
        )
