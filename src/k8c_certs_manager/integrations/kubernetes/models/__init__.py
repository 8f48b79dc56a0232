"""Certificate and TLS Secret models."""

from k8c_certs_manager.integrations.kubernetes.models.base import (
    K8sEntityBase,
    OwnerReference,
)
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    DECLARED_SPEC_FIELDS,
    Certificate,
    CertificateCondition,
    CertificateSpec,
    CertificateStatus,
    CertificateSubject,
    ConditionType,
    Intent,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import TLSCredential

__all__ = [
    "DECLARED_SPEC_FIELDS",
    "Certificate",
    "CertificateCondition",
    "CertificateSpec",
    "CertificateStatus",
    "CertificateSubject",
    "ConditionType",
    "Intent",
    "K8sEntityBase",
    "OwnerReference",
    "TLSCredential",
]
