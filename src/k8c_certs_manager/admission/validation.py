"""Admission validator for Certificates.

Rejects structurally invalid objects and, on update, detects when the target
Secret has been renamed so the reconciler can remove the old one.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from k8c_certs_manager.certificates.durations import (
    MINIMUM_RENEW_BEFORE,
    parse_duration,
)
from k8c_certs_manager.certificates.exceptions import (
    CertificateValidationError,
    CredentialConflictError,
)
from k8c_certs_manager.certificates.factory import parse_serial_number
from k8c_certs_manager.integrations.kubernetes.exceptions import KubernetesNotFoundError
from k8c_certs_manager.integrations.kubernetes.models.certificate import Certificate, Intent

if TYPE_CHECKING:
    from k8c_certs_manager.services.kubernetes.certificate_store import ObjectStore

logger = structlog.get_logger()

COUNTRY_CODE_LENGTH = 2


class CertificateValidator:
    """Validates Certificates on create, update and delete.

    ``validate_create`` and ``validate_update`` may stamp the intent and the
    obsolete-secret marker on the candidate. Both are idempotent, so the
    same object can be validated again after it has been stamped.
    """

    _entity_name = "validation"

    def __init__(self, store: ObjectStore | None = None) -> None:
        """Initialize the validator.

        Args:
            store: Used for Secret collision checks and to look up the prior
                object. None disables both (offline use).
        """
        self._store = store
        self._log = logger.bind(entity=self._entity_name)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def validate(self, candidate: Certificate, prior: Certificate | None = None) -> list[str]:
        """Validate ``candidate`` as a create or an update.

        The prior object is looked up from the store when not given; if there
        is none the request is treated as a create.

        Returns:
            Admission warnings.
        """
        if prior is None:
            prior = self._lookup(candidate)
        if prior is None:
            return self.validate_create(candidate)
        return self.validate_update(candidate, prior)

    def validate_create(self, candidate: Certificate) -> list[str]:
        """Validate a new Certificate and mark it for issuance.

        Raises:
            CertificateValidationError: If the object is malformed.
            CredentialConflictError: If the target Secret already exists.
        """
        log = self._log.bind(name=candidate.name, namespace=candidate.namespace)
        log.info("validating_create")
        warnings = self._validate_structure(candidate)

        if self._credential_exists(candidate.namespace, candidate.spec.secret_name):
            log.warning("credential_conflict", secret_name=candidate.spec.secret_name)
            raise CredentialConflictError(
                secret_name=candidate.spec.secret_name,
                resource_name=candidate.name,
                namespace=candidate.namespace,
            )

        candidate.intent = Intent.CREATE
        return warnings

    def validate_update(self, candidate: Certificate, prior: Certificate) -> list[str]:
        """Validate a changed Certificate and detect Secret renames.

        Raises:
            CertificateValidationError: If the object is malformed.
        """
        log = self._log.bind(name=candidate.name, namespace=candidate.namespace)
        log.info("validating_update")
        warnings = self._validate_structure(candidate)

        old_name = prior.spec.secret_name
        new_name = candidate.spec.secret_name
        if old_name and old_name != new_name and self._credential_exists(
            candidate.namespace, old_name
        ):
            previous_marker = candidate.obsolete_secret_name
            if previous_marker and previous_marker != old_name:
                warnings.append(
                    f"secret {previous_marker} is still pending deletion and will be left in place"
                )
                log.warning("obsolete_marker_replaced", previous=previous_marker, new=old_name)
            candidate.obsolete_secret_name = old_name
            candidate.intent = Intent.UPDATE
            log.info("credential_renamed", old=old_name, new=new_name)

        return warnings

    def validate_delete(self, candidate: Certificate) -> list[str]:
        """Deletes are always allowed."""
        self._log.debug("validating_delete", name=candidate.name, namespace=candidate.namespace)
        return []

    # =========================================================================
    # Checks
    # =========================================================================

    def _validate_structure(self, cert: Certificate) -> list[str]:
        """Run the checks shared by create and update; return warnings."""
        warnings: list[str] = []

        if not cert.spec.dns_name:
            raise self._error(cert, "dnsName is required", "dnsName")
        if not cert.spec.secret_name:
            raise self._error(cert, "secretRef.name is required", "secretRef")

        lifetime = self._check_validity(cert)
        renew_before = self._check_renew_before(cert)
        self._check_subject(cert)

        if renew_before >= lifetime:
            warnings.append(
                f"renewBefore {cert.spec.renew_before} is not shorter than validity "
                f"{cert.validity_in_hours}; the certificate will be renewed on every check"
            )
        return warnings

    def _check_validity(self, cert: Certificate) -> timedelta:
        if not cert.validity_in_hours:
            raise self._error(cert, "no validity value annotations found", "validity")
        try:
            lifetime = parse_duration(cert.validity_in_hours)
        except ValueError as e:
            raise self._error(
                cert,
                f"invalid value {cert.validity_in_hours} for Validity field err: {e}",
                "validity",
            ) from e
        return lifetime

    def _check_renew_before(self, cert: Certificate) -> timedelta:
        value = cert.spec.renew_before
        try:
            renew_before = parse_duration(value)
        except ValueError as e:
            raise self._error(
                cert, f"invalid value {value} for RenewBefore field eg: 5m, 1h", "renewBefore"
            ) from e
        if renew_before < MINIMUM_RENEW_BEFORE:
            raise self._error(
                cert,
                f"invalid value {value} for RenewBefore field minimum value should be 5m",
                "renewBefore",
            )
        return renew_before

    def _check_subject(self, cert: Certificate) -> None:
        subject = cert.spec.subject
        if subject is None:
            return
        if subject.serial_number and parse_serial_number(subject.serial_number) is None:
            raise self._error(
                cert,
                f"invalid value {subject.serial_number} for SerialNumber field, "
                "should be a positive base-10 integer of at most 20 octets",
                "subject.serialNumber",
            )
        for country in subject.country:
            if country and len(country) != COUNTRY_CODE_LENGTH:
                raise self._error(
                    cert,
                    f"invalid value {country} for Country field, should be a 2-letter code",
                    "subject.country",
                )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _error(self, cert: Certificate, message: str, field: str) -> CertificateValidationError:
        self._log.warning(
            "certificate_rejected",
            name=cert.name,
            namespace=cert.namespace,
            field=field,
            reason=message,
        )
        return CertificateValidationError(
            message, field=field, resource_name=cert.name, namespace=cert.namespace
        )

    def _lookup(self, candidate: Certificate) -> Certificate | None:
        if self._store is None or not candidate.namespace:
            return None
        try:
            return self._store.get_certificate(candidate.namespace, candidate.name)
        except KubernetesNotFoundError:
            return None

    def _credential_exists(self, namespace: str | None, name: str) -> bool:
        if self._store is None or not namespace or not name:
            return False
        try:
            self._store.get_credential(namespace, name)
        except KubernetesNotFoundError:
            return False
        return True
