"""Kubernetes-backed services."""

from k8c_certs_manager.services.kubernetes.certificate_store import (
    KubernetesCertificateStore,
    ObjectStore,
)

__all__ = [
    "KubernetesCertificateStore",
    "ObjectStore",
]
