"""Shared fixtures for unit tests: an in-memory object store and object builders."""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from k8c_certs_manager.certificates.factory import CertificateFactory
from k8c_certs_manager.integrations.kubernetes.exceptions import (
    KubernetesAlreadyExistsError,
    KubernetesConflictError,
    KubernetesNotFoundError,
)
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CERTIFICATE_API_VERSION,
    CERTIFICATE_KIND,
    Certificate,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import TLSCredential

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock passed wherever a component takes ``clock=``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeObjectStore:
    """In-memory ``ObjectStore`` with API-server-like versioning.

    Certificates are kept as raw dicts so every read and write goes through
    the model codec. ``update_certificate`` merges only the managed
    annotations, the way the real store patches them. Writes carrying a
    stale ``resourceVersion`` raise ``KubernetesConflictError``. ``fail``
    queues an exception for the next call(s) of a method.
    """

    def __init__(self) -> None:
        self.certificates: dict[tuple[str, str], dict[str, Any]] = {}
        self.credentials: dict[tuple[str, str], TLSCredential] = {}
        self.calls: list[str] = []
        self._failures: dict[str, list[Exception]] = {}
        self._version = 0

    # -- test helpers ---------------------------------------------------------

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def fail(self, method: str, error: Exception, times: int = 1) -> None:
        self._failures.setdefault(method, []).extend([error] * times)

    def _record(self, method: str) -> None:
        self.calls.append(method)
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def add_certificate(self, cert: Certificate) -> Certificate:
        body = cert.to_k8s_object()
        metadata = body["metadata"]
        metadata.setdefault("namespace", "default")
        metadata.setdefault("uid", f"uid-{metadata['name']}")
        metadata.setdefault("generation", 1)
        metadata["resourceVersion"] = self._next_version()
        self.certificates[(metadata["namespace"], metadata["name"])] = body
        return Certificate.from_k8s_object(copy.deepcopy(body))

    def add_credential(self, credential: TLSCredential) -> TLSCredential:
        stored = credential.model_copy(
            update={"resource_version": self._next_version()}, deep=True
        )
        self.credentials[stored.key] = stored
        return stored.model_copy(deep=True)

    def raw(self, namespace: str, name: str) -> dict[str, Any]:
        return self.certificates[(namespace, name)]

    def certificate(self, namespace: str, name: str) -> Certificate:
        return Certificate.from_k8s_object(copy.deepcopy(self.raw(namespace, name)))

    def replace_certificate(self, certificate: Certificate) -> Certificate:
        """Full replace, as a user's ``kubectl apply`` would do."""
        key = certificate.key
        current = self.certificates[key]
        incoming = certificate.to_k8s_object()
        metadata = dict(incoming["metadata"])
        metadata["uid"] = current["metadata"].get("uid")
        metadata["generation"] = current["metadata"].get("generation", 1)
        if incoming["spec"] != current["spec"]:
            metadata["generation"] += 1
        metadata["resourceVersion"] = self._next_version()
        self.certificates[key] = {
            "apiVersion": CERTIFICATE_API_VERSION,
            "kind": CERTIFICATE_KIND,
            "metadata": metadata,
            "spec": incoming["spec"],
            "status": current.get("status", {}),
        }
        return self.certificate(*key)

    def _check_version(self, current: str | None, incoming: str | None, name: str) -> None:
        if incoming is not None and incoming != current:
            raise KubernetesConflictError(resource_name=name)

    # -- ObjectStore ----------------------------------------------------------

    def get_certificate(self, namespace: str, name: str) -> Certificate:
        self._record("get_certificate")
        if (namespace, name) not in self.certificates:
            raise KubernetesNotFoundError(
                resource_type=CERTIFICATE_KIND, resource_name=name, namespace=namespace
            )
        return self.certificate(namespace, name)

    def update_certificate(self, certificate: Certificate) -> Certificate:
        self._record("update_certificate")
        key = certificate.key
        if key not in self.certificates:
            raise KubernetesNotFoundError(resource_name=certificate.name)
        current = self.certificates[key]
        patch = certificate.intent_patch()["metadata"]
        self._check_version(
            current["metadata"]["resourceVersion"], patch.get("resourceVersion"), certificate.name
        )
        annotations = current["metadata"].setdefault("annotations", {})
        for name, value in patch["annotations"].items():
            if value is None:
                annotations.pop(name, None)
            else:
                annotations[name] = value
        current["metadata"]["resourceVersion"] = self._next_version()
        return self.certificate(*key)

    def update_certificate_status(self, certificate: Certificate) -> Certificate:
        self._record("update_certificate_status")
        key = certificate.key
        if key not in self.certificates:
            raise KubernetesNotFoundError(resource_name=certificate.name)
        current = self.certificates[key]
        self._check_version(
            current["metadata"]["resourceVersion"], certificate.resource_version, certificate.name
        )
        current["status"] = certificate.status.to_k8s_object()
        current["metadata"]["resourceVersion"] = self._next_version()
        return self.certificate(*key)

    def get_credential(self, namespace: str, name: str) -> TLSCredential:
        self._record("get_credential")
        if (namespace, name) not in self.credentials:
            raise KubernetesNotFoundError(
                resource_type="Secret", resource_name=name, namespace=namespace
            )
        return self.credentials[(namespace, name)].model_copy(deep=True)

    def create_credential(self, credential: TLSCredential) -> TLSCredential:
        self._record("create_credential")
        if credential.key in self.credentials:
            raise KubernetesAlreadyExistsError(resource_name=credential.name)
        return self.add_credential(credential)

    def update_credential(self, credential: TLSCredential) -> TLSCredential:
        self._record("update_credential")
        if credential.key not in self.credentials:
            raise KubernetesNotFoundError(resource_name=credential.name)
        current = self.credentials[credential.key]
        self._check_version(current.resource_version, credential.resource_version, credential.name)
        return self.add_credential(credential)

    def delete_credential(self, namespace: str, name: str) -> None:
        self._record("delete_credential")
        if (namespace, name) not in self.credentials:
            raise KubernetesNotFoundError(resource_name=name, namespace=namespace)
        del self.credentials[(namespace, name)]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> FakeObjectStore:
    """Empty in-memory object store."""
    return FakeObjectStore()


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at ``NOW`` until advanced."""
    return FakeClock()


@pytest.fixture
def certificate_body() -> Callable[..., dict[str, Any]]:
    """Build a raw Certificate dict as a user would submit it."""

    def build(
        name: str = "web",
        namespace: str = "default",
        dns_name: str = "web.example.com",
        validity: str = "30d",
        secret_name: str = "web-tls",
        **spec: Any,
    ) -> dict[str, Any]:
        body_spec: dict[str, Any] = {
            "dnsName": dns_name,
            "validity": validity,
            "secretRef": {"name": secret_name},
        }
        body_spec.update(spec)
        return {
            "apiVersion": CERTIFICATE_API_VERSION,
            "kind": CERTIFICATE_KIND,
            "metadata": {"name": name, "namespace": namespace},
            "spec": body_spec,
        }

    return build


@pytest.fixture
def make_certificate(
    certificate_body: Callable[..., dict[str, Any]],
) -> Callable[..., Certificate]:
    """Build a Certificate model as it looks after admission."""

    def build(validity_in_hours: str | None = "720h", **kwargs: Any) -> Certificate:
        body = certificate_body(**kwargs)
        body["spec"].setdefault("renewBefore", "5m")
        cert = Certificate.from_k8s_object(body)
        cert.validity_in_hours = validity_in_hours
        return cert

    return build


@pytest.fixture(scope="session")
def issued_pem() -> tuple[bytes, bytes]:
    """A real certificate/key pair valid from ``NOW`` for 30 days."""
    from k8c_certs_manager.integrations.kubernetes.models.certificate import CertificateSpec

    factory = CertificateFactory(clock=lambda: NOW)
    return factory.issue(
        CertificateSpec(dns_name="web.example.com", validity="30d", secret_name="web-tls"),
        timedelta(days=30),
    )
