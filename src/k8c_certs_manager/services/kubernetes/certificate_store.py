"""Object store for Certificates and their TLS Secrets.

Certificates are custom resources accessed through ``CustomObjectsApi``;
Secrets go through ``CoreV1Api``. Every write sends the ``resourceVersion``
that was read, so a stale write fails with ``KubernetesConflictError``
instead of overwriting a concurrent writer. Certificate metadata is merge
patched, so fields this operator does not own (finalizers, owner
references, other annotations) are left to whoever set them.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, NoReturn, Protocol, TypeVar

import structlog

from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CERTIFICATE_GROUP,
    CERTIFICATE_KIND,
    CERTIFICATE_PLURAL,
    CERTIFICATE_VERSION,
    Certificate,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import TLSCredential

if TYPE_CHECKING:
    from k8c_certs_manager.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

T = TypeVar("T")

SECRET_KIND = "Secret"


class ObjectStore(Protocol):
    """Store operations the admission stages and the reconciler depend on.

    Implementations raise ``KubernetesNotFoundError`` for missing objects,
    ``KubernetesAlreadyExistsError`` when a create hits a taken name and
    ``KubernetesConflictError`` when a write carries a stale version.
    """

    def get_certificate(self, namespace: str, name: str) -> Certificate: ...

    def update_certificate(self, certificate: Certificate) -> Certificate: ...

    def update_certificate_status(self, certificate: Certificate) -> Certificate: ...

    def get_credential(self, namespace: str, name: str) -> TLSCredential: ...

    def create_credential(self, credential: TLSCredential) -> TLSCredential: ...

    def update_credential(self, credential: TLSCredential) -> TLSCredential: ...

    def delete_credential(self, namespace: str, name: str) -> None: ...


class KubernetesCertificateStore:
    """``ObjectStore`` backed by the Kubernetes API.

    Transient connection errors are retried with exponential backoff; every
    other API error is translated and raised.
    """

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._log = logger.bind(entity="certificate_store")

    def _resolve_namespace(self, namespace: str | None) -> str:
        return namespace or self._client.default_namespace

    def _handle_api_error(
        self,
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> NoReturn:
        raise self._client.translate_api_exception(
            e,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    def _call(
        self,
        fn: Callable[..., T],
        *args: Any,
        resource_type: str,
        resource_name: str | None,
        namespace: str | None,
    ) -> T:
        def attempt() -> T:
            try:
                return fn(*args)
            except Exception as e:
                self._handle_api_error(e, resource_type, resource_name, namespace)

        retry_decorator = self._client.make_retry_decorator()
        result: T = retry_decorator(attempt)()
        return result

    # =========================================================================
    # Certificate Operations
    # =========================================================================

    def get_certificate(self, namespace: str, name: str) -> Certificate:
        """Get a Certificate by name.

        Raises:
            KubernetesNotFoundError: If the Certificate does not exist.
        """
        self._log.debug("getting_certificate", name=name, namespace=namespace)
        result = self._call(
            self._client.custom_objects.get_namespaced_custom_object,
            CERTIFICATE_GROUP,
            CERTIFICATE_VERSION,
            namespace,
            CERTIFICATE_PLURAL,
            name,
            resource_type=CERTIFICATE_KIND,
            resource_name=name,
            namespace=namespace,
        )
        return Certificate.from_k8s_object(result)

    def update_certificate(self, certificate: Certificate) -> Certificate:
        """Write a Certificate's intent and obsolete-secret annotations.

        Only those two annotations are patched; the spec and the rest of the
        metadata are untouched.

        Raises:
            KubernetesConflictError: If the Certificate changed since it was read.
        """
        ns = self._resolve_namespace(certificate.namespace)
        self._log.debug("updating_certificate", name=certificate.name, namespace=ns)
        result = self._call(
            functools.partial(
                self._client.custom_objects.patch_namespaced_custom_object,
                _content_type="application/merge-patch+json",
            ),
            CERTIFICATE_GROUP,
            CERTIFICATE_VERSION,
            ns,
            CERTIFICATE_PLURAL,
            certificate.name,
            certificate.intent_patch(),
            resource_type=CERTIFICATE_KIND,
            resource_name=certificate.name,
            namespace=ns,
        )
        return Certificate.from_k8s_object(result)

    def update_certificate_status(self, certificate: Certificate) -> Certificate:
        """Replace a Certificate's status sub-resource.

        Raises:
            KubernetesConflictError: If the Certificate changed since it was read.
        """
        ns = self._resolve_namespace(certificate.namespace)
        self._log.debug("updating_certificate_status", name=certificate.name, namespace=ns)
        result = self._call(
            self._client.custom_objects.replace_namespaced_custom_object_status,
            CERTIFICATE_GROUP,
            CERTIFICATE_VERSION,
            ns,
            CERTIFICATE_PLURAL,
            certificate.name,
            certificate.to_k8s_object(),
            resource_type=CERTIFICATE_KIND,
            resource_name=certificate.name,
            namespace=ns,
        )
        return Certificate.from_k8s_object(result)

    # =========================================================================
    # Secret Operations
    # =========================================================================

    def get_credential(self, namespace: str, name: str) -> TLSCredential:
        """Get a TLS Secret by name.

        Raises:
            KubernetesNotFoundError: If the Secret does not exist.
        """
        self._log.debug("getting_credential", name=name, namespace=namespace)
        result = self._call(
            self._client.core_v1.read_namespaced_secret,
            name,
            namespace,
            resource_type=SECRET_KIND,
            resource_name=name,
            namespace=namespace,
        )
        return TLSCredential.from_k8s_object(result)

    def create_credential(self, credential: TLSCredential) -> TLSCredential:
        """Create a TLS Secret.

        Raises:
            KubernetesAlreadyExistsError: If a Secret with that name exists.
        """
        ns = self._resolve_namespace(credential.namespace)
        self._log.debug("creating_credential", name=credential.name, namespace=ns)
        result = self._call(
            self._client.core_v1.create_namespaced_secret,
            ns,
            credential.to_k8s_object(),
            resource_type=SECRET_KIND,
            resource_name=credential.name,
            namespace=ns,
        )
        self._log.info("created_credential", name=credential.name, namespace=ns)
        return TLSCredential.from_k8s_object(result)

    def update_credential(self, credential: TLSCredential) -> TLSCredential:
        """Replace a TLS Secret's contents.

        Raises:
            KubernetesConflictError: If the Secret changed since it was read.
        """
        ns = self._resolve_namespace(credential.namespace)
        self._log.debug("updating_credential", name=credential.name, namespace=ns)
        result = self._call(
            self._client.core_v1.replace_namespaced_secret,
            credential.name,
            ns,
            credential.to_k8s_object(),
            resource_type=SECRET_KIND,
            resource_name=credential.name,
            namespace=ns,
        )
        self._log.info("updated_credential", name=credential.name, namespace=ns)
        return TLSCredential.from_k8s_object(result)

    def delete_credential(self, namespace: str, name: str) -> None:
        """Delete a TLS Secret.

        Raises:
            KubernetesNotFoundError: If the Secret does not exist.
        """
        self._log.debug("deleting_credential", name=name, namespace=namespace)
        self._call(
            self._client.core_v1.delete_namespaced_secret,
            name,
            namespace,
            resource_type=SECRET_KIND,
            resource_name=name,
            namespace=namespace,
        )
        self._log.info("deleted_credential", name=name, namespace=namespace)
