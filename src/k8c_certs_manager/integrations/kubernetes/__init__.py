"""Kubernetes integration - API client and configuration models."""

from k8c_certs_manager.integrations.kubernetes.client import KubernetesClient
from k8c_certs_manager.integrations.kubernetes.config import KubernetesConfig
from k8c_certs_manager.integrations.kubernetes.exceptions import (
    KubernetesAlreadyExistsError,
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)

__all__ = [
    "KubernetesAlreadyExistsError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConfig",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
]
