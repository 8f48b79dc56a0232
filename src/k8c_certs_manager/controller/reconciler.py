"""Certificate reconciler.

Each pass reads the Certificate and its Secret, asks the state machine what
to do and carries that out against the object store. Every pass is
idempotent: it can be re-driven from either object at any time.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt

from k8c_certs_manager.certificates.durations import (
    MINIMUM_RENEW_BEFORE,
    parse_duration,
    validity_to_hours,
)
from k8c_certs_manager.certificates.exceptions import (
    CertificateError,
    CertificateValidationError,
)
from k8c_certs_manager.certificates.factory import CertificateFactory
from k8c_certs_manager.controller.conditions import set_condition
from k8c_certs_manager.controller.state_machine import Action, Observation, Transition, plan
from k8c_certs_manager.integrations.kubernetes.exceptions import (
    KubernetesAlreadyExistsError,
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
)
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    Certificate,
    CertificateStatus,
    ConditionType,
    Intent,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import TLSCredential
from k8c_certs_manager.services.kubernetes.certificate_store import ObjectStore

logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = timedelta(minutes=5)
DEFAULT_FAILURE_BACKOFF = timedelta(seconds=30)
CONFLICT_RETRY_ATTEMPTS = 5

# Condition reasons
REASON_CREATE = "CreateRequest"
REASON_UPDATE = "UpdateRequest"
REASON_CLEANUP = "CleanupRequest"
REASON_RECONCILE = "ReconcileRequest"

_INTENT_REASONS = {
    Intent.CREATE: REASON_CREATE,
    Intent.UPDATE: REASON_UPDATE,
    Intent.CLEANUP: REASON_CLEANUP,
    Intent.NONE: REASON_RECONCILE,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _reset_failures(status: CertificateStatus) -> None:
    status.failures = 0


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful pass."""

    action: Action | None
    requeue_after: timedelta | None


class ReconcileError(Exception):
    """A pass failed; the failure is recorded on the Certificate status.

    Attributes:
        message: What failed.
        requeue_after: Delay before the next attempt.
        original_error: The underlying exception.
    """

    def __init__(
        self,
        message: str,
        requeue_after: timedelta,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.requeue_after = requeue_after
        self.original_error = original_error


class _Failure(Exception):
    """Carries the condition reason/message for a failed step."""

    def __init__(self, message: str, cause: Exception) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class CertificateReconciler:
    """Drives Certificates towards an issued, unexpired Secret.

    Example:
        >>> reconciler = CertificateReconciler(store, CertificateFactory())
        >>> result = reconciler.reconcile("default", "web")
        >>> result.requeue_after
        datetime.timedelta(seconds=300)
    """

    _entity_name = "reconciler"

    def __init__(
        self,
        store: ObjectStore,
        factory: CertificateFactory,
        poll_interval: timedelta = DEFAULT_POLL_INTERVAL,
        failure_backoff: timedelta = DEFAULT_FAILURE_BACKOFF,
        clock: Callable[[], datetime] = _utcnow,
        conflict_retries: int = CONFLICT_RETRY_ATTEMPTS,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Object store for Certificates and Secrets.
            factory: Issues certificates and reads back their expiry.
            poll_interval: Delay until the next pass after a success.
            failure_backoff: Delay after the first consecutive failure;
                doubles per further failure, capped at ``poll_interval``.
            clock: Source of the current time.
            conflict_retries: Attempts for writes that hit a stale version.
        """
        self._store = store
        self._factory = factory
        self._poll_interval = poll_interval
        self._failure_backoff = failure_backoff
        self._clock = clock
        self._conflict_retries = conflict_retries
        self._log = logger.bind(entity=self._entity_name)

    @property
    def poll_interval(self) -> timedelta:
        """Delay between passes over a healthy Certificate."""
        return self._poll_interval

    def backoff(self, failures: int) -> timedelta:
        """Delay after ``failures`` consecutive failed passes."""
        if failures <= 0:
            return self._poll_interval
        delay = self._failure_backoff * 2 ** min(failures - 1, 32)
        return min(delay, self._poll_interval)

    # =========================================================================
    # Entry Point
    # =========================================================================

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Run one pass for the Certificate ``namespace/name``.

        Returns:
            The action taken and when to run again. ``requeue_after`` is None
            when the Certificate no longer exists.

        Raises:
            ReconcileError: If the pass failed; the failure is recorded as a
                ``Failed`` condition first.
        """
        log = self._log.bind(namespace=namespace, name=name)
        try:
            cert = self._store.get_certificate(namespace, name)
        except KubernetesNotFoundError:
            log.info("certificate_deleted")
            return ReconcileResult(action=None, requeue_after=None)

        now = self._clock()
        reason = _INTENT_REASONS[cert.intent]
        try:
            credential = self._get_credential(namespace, cert.spec.secret_name)
            transition = plan(self._observe(cert, credential, now))
            log.info(
                "reconciling_certificate",
                intent=cert.intent.value,
                action=transition.action.value,
                credential_exists=credential is not None,
            )
            self._execute(cert, credential, transition, reason, now)
        except _Failure as f:
            raise self._fail(cert, reason, f.message, f.cause) from f.cause
        except (CertificateError, KubernetesError) as e:
            raise self._fail(cert, reason, str(e), e) from e

        return ReconcileResult(action=transition.action, requeue_after=self._poll_interval)

    # =========================================================================
    # Observation
    # =========================================================================

    def _get_credential(self, namespace: str, secret_name: str) -> TLSCredential | None:
        if not secret_name:
            return None
        try:
            return self._store.get_credential(namespace, secret_name)
        except KubernetesNotFoundError:
            return None

    def _observe(
        self,
        cert: Certificate,
        credential: TLSCredential | None,
        now: datetime,
    ) -> Observation:
        renewal_due = expired = False
        if credential is not None:
            expiry = cert.status.expiry_date or self._read_expiry(credential)
            if expiry is None:
                renewal_due = True
            else:
                renewal_due = now >= expiry - self._renew_before(cert)
                expired = now >= expiry
        obsolete = cert.obsolete_secret_name
        return Observation(
            intent=cert.intent,
            credential_exists=credential is not None,
            renewal_due=renewal_due,
            expired=expired,
            has_obsolete=bool(obsolete) and obsolete != cert.spec.secret_name,
        )

    def _read_expiry(self, credential: TLSCredential) -> datetime | None:
        try:
            return self._factory.read_expiry(credential.certificate)
        except ValueError:
            self._log.warning(
                "unreadable_credential",
                namespace=credential.namespace,
                secret_name=credential.name,
            )
            return None

    def _renew_before(self, cert: Certificate) -> timedelta:
        try:
            return cert.renew_before
        except ValueError:
            return MINIMUM_RENEW_BEFORE

    def _lifetime(self, cert: Certificate) -> timedelta:
        """Stored absolute lifetime, recomputed from ``validity`` if missing."""
        try:
            return cert.lifetime
        except ValueError:
            pass
        try:
            return parse_duration(validity_to_hours(cert.spec.validity))
        except ValueError as e:
            raise CertificateValidationError(
                f"invalid value {cert.spec.validity} for Validity field err: {e}",
                field="validity",
                resource_name=cert.name,
                namespace=cert.namespace,
            ) from e

    # =========================================================================
    # Actions
    # =========================================================================

    def _execute(
        self,
        cert: Certificate,
        credential: TLSCredential | None,
        transition: Transition,
        reason: str,
        now: datetime,
    ) -> None:
        action = transition.action
        if action in (Action.ISSUE, Action.ROTATE):
            self._issue(cert, credential, reason, now)
        elif action == Action.ADOPT and credential is not None:
            self._adopt(cert, credential, reason, now)
        elif action == Action.RENEW and credential is not None:
            self._renew(cert, credential, reason, now)

        next_intent = transition.next_intent
        clear_obsolete = False
        if transition.delete_obsolete:
            deleted = self._delete_obsolete(cert, raise_on_error=action == Action.CLEANUP)
            if deleted:
                clear_obsolete = True
            else:
                next_intent = Intent.CLEANUP

        if not transition.issues_credential and action != Action.ADOPT and cert.status.failures:
            self._update_status(cert, _reset_failures)
        self._update_intent(cert, next_intent, clear_obsolete)

    def _issue(
        self,
        cert: Certificate,
        credential: TLSCredential | None,
        reason: str,
        now: datetime,
    ) -> None:
        secret_name = cert.spec.secret_name
        lifetime = self._lifetime(cert)
        self._update_status(
            cert,
            lambda status: set_condition(
                status,
                ConditionType.PENDING,
                reason,
                f"Operation in progress to generate certificate: {secret_name}",
                now,
            ),
        )

        try:
            cert_pem, key_pem = self._factory.issue(cert.spec, lifetime)
        except CertificateError as e:
            raise _Failure("Failed to generate self-signed certificate", e) from e

        if credential is None:
            try:
                self._store.create_credential(
                    TLSCredential.for_certificate(cert, cert_pem, key_pem)
                )
            except KubernetesAlreadyExistsError:
                self._log.info(
                    "credential_already_exists",
                    namespace=cert.namespace,
                    secret_name=secret_name,
                )
                existing = self._store.get_credential(cert.namespace or "", secret_name)
                self._adopt(cert, existing, reason, now)
                return
            except KubernetesError as e:
                raise _Failure("Failed to create secret for TLS certificate", e) from e
        else:
            try:
                self._store.update_credential(credential.with_contents(cert_pem, key_pem))
            except KubernetesError as e:
                raise _Failure(
                    f"Failed to update secret from updated TLS certificate: {secret_name}", e
                ) from e

        expiry = now + lifetime
        self._update_status(
            cert,
            self._success(
                cert,
                ConditionType.ISSUED,
                reason,
                f"Certificate successfully issued and stored at secretRef: {secret_name}",
                now,
                expiry,
            ),
        )
        self._log.info(
            "certificate_issued",
            namespace=cert.namespace,
            name=cert.name,
            secret_name=secret_name,
            expiry=expiry.isoformat(),
        )

    def _adopt(
        self,
        cert: Certificate,
        credential: TLSCredential,
        reason: str,
        now: datetime,
    ) -> None:
        expiry = self._read_expiry(credential)
        if expiry is None:
            self._log.info("adopt_fallback_rotate", namespace=cert.namespace, name=cert.name)
            self._issue(cert, credential, reason, now)
            return
        secret_name = cert.spec.secret_name
        self._update_status(
            cert,
            self._success(
                cert,
                ConditionType.ISSUED,
                reason,
                f"Certificate already exists at secretRef: {secret_name}",
                now,
                expiry,
            ),
        )
        self._log.info("credential_adopted", namespace=cert.namespace, name=cert.name)

    def _renew(
        self,
        cert: Certificate,
        credential: TLSCredential,
        reason: str,
        now: datetime,
    ) -> None:
        secret_name = cert.spec.secret_name
        lifetime = self._lifetime(cert)
        expiry = cert.status.expiry_date
        if expiry is not None and now >= expiry:
            self._update_status(
                cert,
                lambda status: set_condition(
                    status,
                    ConditionType.EXPIRED,
                    reason,
                    f"Certificate expired at {expiry.isoformat()}: {secret_name}",
                    now,
                ),
            )
            self._log.warning("certificate_expired", namespace=cert.namespace, name=cert.name)

        self._update_status(
            cert,
            lambda status: set_condition(
                status,
                ConditionType.RENEWING,
                reason,
                f"Operation in progress to renew certificate: {secret_name}",
                now,
            ),
        )
        try:
            cert_pem, key_pem = self._factory.issue(cert.spec, lifetime)
        except CertificateError as e:
            raise _Failure("Failed to renew self-signed certificate", e) from e

        try:
            self._store.update_credential(credential.with_contents(cert_pem, key_pem))
        except KubernetesError as e:
            raise _Failure(
                f"Failed to update secret from renewed TLS certificate: {secret_name}", e
            ) from e

        new_expiry = now + lifetime
        mark_success = self._success(
            cert,
            ConditionType.RENEWED,
            reason,
            f"Certificate successfully renewed and stored at secretRef: {secret_name}",
            now,
            new_expiry,
        )

        def mark_renewed(status: CertificateStatus) -> None:
            mark_success(status)
            status.renewed_at = now

        self._update_status(cert, mark_renewed)
        self._log.info(
            "certificate_renewed",
            namespace=cert.namespace,
            name=cert.name,
            expiry=new_expiry.isoformat(),
        )

    def _delete_obsolete(self, cert: Certificate, raise_on_error: bool) -> bool:
        """Delete the renamed-away Secret; a missing Secret counts as deleted."""
        obsolete = cert.obsolete_secret_name
        if not obsolete:
            return True
        try:
            self._store.delete_credential(cert.namespace or "", obsolete)
        except KubernetesNotFoundError:
            pass
        except KubernetesError as e:
            if raise_on_error:
                raise _Failure(f"Failed to delete obsolete secret: {obsolete}", e) from e
            self._log.warning(
                "obsolete_credential_delete_failed",
                namespace=cert.namespace,
                name=cert.name,
                secret_name=obsolete,
                error=str(e),
            )
            return False
        self._log.info(
            "obsolete_credential_deleted",
            namespace=cert.namespace,
            name=cert.name,
            secret_name=obsolete,
        )
        return True

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def _success(
        cert: Certificate,
        condition_type: ConditionType,
        reason: str,
        message: str,
        now: datetime,
        expiry: datetime,
    ) -> Callable[[CertificateStatus], None]:
        def mutate(status: CertificateStatus) -> None:
            set_condition(status, condition_type, reason, message, now)
            status.expiry_date = expiry
            status.secret_name = cert.spec.secret_name
            status.observed_generation = cert.generation
            status.failures = 0

        return mutate

    def _update_status(
        self,
        cert: Certificate,
        mutate: Callable[[CertificateStatus], object],
    ) -> Certificate:
        """Apply ``mutate`` to the latest status and write it back.

        A write that loses to a concurrent writer is retried against a fresh
        read of the object.
        """

        @retry(
            retry=retry_if_exception_type(KubernetesConflictError),
            stop=stop_after_attempt(self._conflict_retries),
            reraise=True,
        )
        def _write() -> Certificate:
            latest = self._store.get_certificate(cert.namespace or "", cert.name)
            mutate(latest.status)
            return self._store.update_certificate_status(latest)

        updated = _write()
        cert.status = updated.status
        return updated

    def _update_intent(self, cert: Certificate, intent: Intent, clear_obsolete: bool) -> None:
        if cert.intent == intent and not (clear_obsolete and cert.obsolete_secret_name):
            return

        @retry(
            retry=retry_if_exception_type(KubernetesConflictError),
            stop=stop_after_attempt(self._conflict_retries),
            reraise=True,
        )
        def _write() -> None:
            latest = self._store.get_certificate(cert.namespace or "", cert.name)
            if latest.generation != cert.generation:
                # A newer spec carries its own intent
                self._log.info(
                    "intent_superseded",
                    namespace=cert.namespace,
                    name=cert.name,
                    generation=latest.generation,
                )
                return
            latest.intent = intent
            if clear_obsolete:
                latest.obsolete_secret_name = None
            self._store.update_certificate(latest)

        _write()
        self._log.debug(
            "intent_updated",
            namespace=cert.namespace,
            name=cert.name,
            intent=intent.value,
        )

    def _fail(
        self,
        cert: Certificate,
        reason: str,
        message: str,
        error: Exception,
    ) -> ReconcileError:
        failures = cert.status.failures + 1
        now = self._clock()

        def mutate(status: CertificateStatus) -> None:
            nonlocal failures
            failures = status.failures + 1
            set_condition(status, ConditionType.FAILED, reason, message, now)
            status.failures = failures

        try:
            self._update_status(cert, mutate)
        except KubernetesError as e:
            self._log.error(
                "failure_not_recorded",
                namespace=cert.namespace,
                name=cert.name,
                error=str(e),
            )

        delay = self.backoff(failures)
        self._log.error(
            "reconcile_failed",
            namespace=cert.namespace,
            name=cert.name,
            reason=reason,
            message=message,
            error=str(error),
            failures=failures,
            requeue_after=delay.total_seconds(),
        )
        return ReconcileError(message, requeue_after=delay, original_error=error)
