"""kopf handlers for the Certificate operator.

Handlers are registered on a registry built from the operator configuration
so the timer interval and webhook settings come from config rather than
import-time globals. Collaborators (store, factory, reconciler, admission
handler) are created at startup and carried on kopf's ``memo``.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import kopf
import structlog

from k8c_certs_manager.admission import (
    AdmissionDeniedError,
    AdmissionHandler,
    CertificateDefaulter,
    CertificateValidator,
)
from k8c_certs_manager.certificates.factory import CertificateFactory
from k8c_certs_manager.controller import CertificateReconciler, ReconcileError, spec_changed
from k8c_certs_manager.core.config import OperatorConfig
from k8c_certs_manager.integrations.kubernetes import KubernetesClient
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CERTIFICATE_GROUP,
    CERTIFICATE_PLURAL,
    CERTIFICATE_VERSION,
    MANAGED_ANNOTATIONS,
)
from k8c_certs_manager.services.kubernetes import KubernetesCertificateStore

logger = structlog.get_logger()

RESOURCE = (CERTIFICATE_GROUP, CERTIFICATE_VERSION, CERTIFICATE_PLURAL)
WEBHOOK_CONFIGURATION_NAME = f"k8c-certs-manager.{CERTIFICATE_GROUP}"
ADMISSION_OPERATIONS = ["CREATE", "UPDATE"]


# =============================================================================
# Startup / Cleanup
# =============================================================================


def build_memo(config: OperatorConfig, client: KubernetesClient | None = None) -> kopf.Memo:
    """Create the collaborators shared by all handlers.

    Args:
        config: Operator configuration.
        client: Existing API client; one is created from ``config`` if omitted.
    """
    client = client or KubernetesClient(config.kubernetes)
    store = KubernetesCertificateStore(client)
    factory = CertificateFactory(key_size=config.key_size)
    reconciler = CertificateReconciler(
        store,
        factory,
        poll_interval=config.poll_interval_delta,
        failure_backoff=config.failure_backoff_delta,
    )
    admission = AdmissionHandler(CertificateDefaulter(store), CertificateValidator(store))
    return kopf.Memo(
        config=config,
        client=client,
        store=store,
        reconciler=reconciler,
        admission=admission,
    )


def configure_settings(settings: kopf.OperatorSettings, config: OperatorConfig) -> None:
    """Apply operator configuration to kopf settings."""
    # Handler progress in annotations keeps status owned by the reconciler
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=CERTIFICATE_GROUP
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=CERTIFICATE_GROUP
    )
    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = float(config.kubernetes.timeout)
    settings.execution.max_workers = 4

    webhook = config.webhook
    if webhook.enabled:
        settings.admission.server = kopf.WebhookServer(
            port=webhook.port,
            host=webhook.host,
            certfile=webhook.certfile,
            pkeyfile=webhook.pkeyfile,
        )
        settings.admission.managed = WEBHOOK_CONFIGURATION_NAME


# =============================================================================
# Reconciliation
# =============================================================================


def reconcile_certificate(name: str, namespace: str, memo: kopf.Memo, **_: Any) -> None:
    """Run one reconcile pass; failures are retried after the computed backoff."""
    reconciler: CertificateReconciler = memo.reconciler
    try:
        reconciler.reconcile(namespace, name)
    except ReconcileError as e:
        raise kopf.TemporaryError(e.message, delay=e.requeue_after.total_seconds()) from e


def spec_was_changed(old: Any = None, new: Any = None, **_: Any) -> bool:
    """Filter for update events: only declared spec changes trigger a pass."""
    old_spec = (old or {}).get("spec")
    new_spec = (new or {}).get("spec")
    return spec_changed(old_spec, new_spec)


# =============================================================================
# Admission
# =============================================================================


def _annotations(obj: dict[str, Any]) -> dict[str, Any]:
    return dict((obj.get("metadata") or {}).get("annotations") or {})


def build_mutation_patch(original: dict[str, Any], mutated: dict[str, Any]) -> dict[str, Any]:
    """Express the defaulting result as a merge patch against ``original``.

    Only the spec and the managed annotations are patched; a managed
    annotation that was removed is patched to None.
    """
    patch: dict[str, Any] = {}
    if mutated.get("spec") != original.get("spec"):
        patch["spec"] = mutated.get("spec")

    before = _annotations(original)
    after = _annotations(mutated)
    changed = {
        key: after.get(key)
        for key in MANAGED_ANNOTATIONS
        if after.get(key) != before.get(key)
    }
    if changed:
        patch["metadata"] = {"annotations": changed}
    return patch


def mutate_certificate(
    body: kopf.Body,
    patch: kopf.Patch,
    memo: kopf.Memo,
    **_: Any,
) -> None:
    """Mutating webhook: apply defaults and stamp the request intent."""
    admission: AdmissionHandler = memo.admission
    original = copy.deepcopy(dict(body))
    try:
        mutated = admission.on_mutate(original)
    except AdmissionDeniedError as e:
        raise kopf.AdmissionError(e.message, code=e.code) from e

    for key, value in build_mutation_patch(original, mutated).items():
        patch[key] = value


def validate_certificate(
    body: kopf.Body,
    memo: kopf.Memo,
    warnings: list[str],
    **kwargs: Any,
) -> None:
    """Validating webhook: reject malformed Certificates and Secret collisions."""
    admission: AdmissionHandler = memo.admission
    operation = kwargs.get("operation")
    try:
        warnings.extend(admission.on_validate(copy.deepcopy(dict(body)), operation=operation))
    except AdmissionDeniedError as e:
        raise kopf.AdmissionError(e.message, code=e.code) from e


# =============================================================================
# Registry
# =============================================================================


def build_registry(config: OperatorConfig) -> kopf.OperatorRegistry:
    """Register every Certificate handler on a fresh registry."""
    registry = kopf.OperatorRegistry()

    def startup(settings: kopf.OperatorSettings, **_: Any) -> None:
        configure_settings(settings, config)
        logger.info(
            "operator_starting",
            namespaces=config.namespaces or "all",
            poll_interval=config.poll_interval,
            webhook=config.webhook.enabled,
        )

    def cleanup(memo: kopf.Memo, **_: Any) -> None:
        client: KubernetesClient | None = memo.get("client")
        if client is not None:
            client.close()
        logger.info("operator_stopped")

    kopf.on.startup(registry=registry)(startup)
    kopf.on.cleanup(registry=registry)(cleanup)

    kopf.on.create(*RESOURCE, registry=registry, id="reconcile")(reconcile_certificate)
    kopf.on.update(*RESOURCE, registry=registry, id="reconcile", when=spec_was_changed)(
        reconcile_certificate
    )
    kopf.on.resume(*RESOURCE, registry=registry, id="reconcile")(reconcile_certificate)
    kopf.timer(
        *RESOURCE,
        registry=registry,
        id="poll",
        interval=float(config.poll_interval),
        initial_delay=float(config.poll_interval),
    )(reconcile_certificate)

    if config.webhook.enabled:
        kopf.on.mutate(
            *RESOURCE,
            registry=registry,
            id="defaulting",
            operations=ADMISSION_OPERATIONS,
        )(mutate_certificate)
        kopf.on.validate(
            *RESOURCE,
            registry=registry,
            id="validation",
            operations=ADMISSION_OPERATIONS,
        )(validate_certificate)

    return registry


def run_operator(config: OperatorConfig) -> None:
    """Run the operator until interrupted."""
    memo = build_memo(config)
    kopf.run(
        registry=build_registry(config),
        memo=memo,
        clusterwide=config.clusterwide,
        namespaces=config.namespaces,
        standalone=True,
    )
