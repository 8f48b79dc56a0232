"""Defaulting stage run on every Certificate create/update admission."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from k8c_certs_manager.certificates.durations import DEFAULT_RENEW_BEFORE, validity_to_hours
from k8c_certs_manager.certificates.exceptions import CertificateValidationError
from k8c_certs_manager.integrations.kubernetes.exceptions import KubernetesNotFoundError
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    Certificate,
    CertificateSubject,
    Intent,
)

if TYPE_CHECKING:
    from k8c_certs_manager.services.kubernetes.certificate_store import ObjectStore

logger = structlog.get_logger()

SERIAL_NUMBER_BITS = 128
# Used when the random source is unavailable
FALLBACK_SERIAL_NUMBER = "123456789123456789123456789"


def random_serial_number() -> str:
    """Return a random 128-bit serial number in decimal."""
    return str(secrets.randbits(SERIAL_NUMBER_BITS))


class CertificateDefaulter:
    """Fills unset Certificate fields and stamps the request intent.

    Example:
        >>> defaulter = CertificateDefaulter(store)
        >>> mutated = defaulter.apply_defaults(incoming)
    """

    _entity_name = "defaulting"

    def __init__(
        self,
        store: ObjectStore | None = None,
        serial_source: Callable[[], str] = random_serial_number,
    ) -> None:
        """Initialize the defaulter.

        Args:
            store: Used to look up the persisted Certificate when the caller
                does not pass it. None disables the lookup (offline use).
            serial_source: Produces serial numbers for defaulted subjects.
        """
        self._store = store
        self._serial_source = serial_source
        self._log = logger.bind(entity=self._entity_name)

    def _lookup_existing(self, incoming: Certificate) -> Certificate | None:
        if self._store is None or not incoming.namespace:
            return None
        try:
            return self._store.get_certificate(incoming.namespace, incoming.name)
        except KubernetesNotFoundError:
            return None

    def _serial_number(self) -> str:
        try:
            return self._serial_source()
        except (OSError, NotImplementedError) as e:
            self._log.warning(
                "random_serial_unavailable",
                error=str(e),
                fallback=FALLBACK_SERIAL_NUMBER,
            )
            return FALLBACK_SERIAL_NUMBER

    def apply_defaults(
        self,
        incoming: Certificate,
        existing: Certificate | None = None,
    ) -> Certificate:
        """Return ``incoming`` with defaults applied.

        The input is not modified. When the declared spec is identical to the
        persisted one the object is returned unchanged, so metadata-only
        writes (including the reconciler's own) cause no further mutation.

        Args:
            incoming: Certificate being admitted.
            existing: Persisted Certificate, looked up from the store if omitted.

        Returns:
            The defaulted Certificate.

        Raises:
            CertificateValidationError: If ``validity`` cannot be converted.
        """
        if existing is None:
            existing = self._lookup_existing(incoming)
        if existing is not None and incoming.spec.matches(existing.spec):
            self._log.debug("spec_unchanged", name=incoming.name, namespace=incoming.namespace)
            return incoming

        log = self._log.bind(name=incoming.name, namespace=incoming.namespace)
        log.info("mutating_certificate")
        cert = incoming.model_copy(deep=True)
        spec = cert.spec

        if spec.subject is None:
            spec.subject = CertificateSubject(
                common_name=spec.dns_name,
                serial_number=self._serial_number(),
            )

        try:
            cert.validity_in_hours = validity_to_hours(spec.validity)
        except ValueError as e:
            log.warning("invalid_validity", validity=spec.validity, error=str(e))
            raise CertificateValidationError(
                str(e),
                field="validity",
                resource_name=incoming.name,
                namespace=incoming.namespace,
            ) from e

        if not spec.renew_before:
            spec.renew_before = DEFAULT_RENEW_BEFORE

        observed_generation = (
            existing.status.observed_generation
            if existing is not None
            else incoming.status.observed_generation
        )
        cert.intent = Intent.CREATE if observed_generation == 0 else Intent.UPDATE

        log.info(
            "mutated_certificate",
            intent=cert.intent.value,
            validity_in_hours=cert.validity_in_hours,
        )
        return cert
