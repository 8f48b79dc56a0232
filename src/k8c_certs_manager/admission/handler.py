"""Admission callbacks exposed to the webhook transport.

Validating webhooks cannot persist changes, so the mutating callback runs the
defaulting stage followed by the validator (which stamps the intent and the
obsolete-secret marker), and the validating callback re-runs the validator
only to reject invalid writes.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from k8c_certs_manager.admission.defaulting import CertificateDefaulter
from k8c_certs_manager.admission.validation import CertificateValidator
from k8c_certs_manager.certificates.exceptions import CertificateError, CredentialConflictError
from k8c_certs_manager.integrations.kubernetes.models.certificate import Certificate

logger = structlog.get_logger()

OPERATION_CREATE = "CREATE"
OPERATION_UPDATE = "UPDATE"
OPERATION_DELETE = "DELETE"


class AdmissionDeniedError(Exception):
    """An admission request is rejected; ``message`` is shown to the requester.

    Attributes:
        message: Reason surfaced verbatim by the API server.
        code: HTTP status code for the admission response.
    """

    def __init__(self, message: str, code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AdmissionHandler:
    """Mutating and validating callbacks over raw Certificate dicts."""

    _entity_name = "admission"

    def __init__(self, defaulter: CertificateDefaulter, validator: CertificateValidator) -> None:
        self._defaulter = defaulter
        self._validator = validator
        self._log = logger.bind(entity=self._entity_name)

    def on_mutate(
        self,
        body: dict[str, Any],
        prior_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Default and stamp a Certificate being created or updated.

        Args:
            body: The object as submitted.
            prior_body: The persisted object for updates, if the transport
                supplies it.

        Returns:
            The mutated object as a dict.

        Raises:
            AdmissionDeniedError: If the object must be rejected.
        """
        incoming = self._parse(body)
        prior = self._parse(prior_body) if prior_body else None
        try:
            mutated = self._defaulter.apply_defaults(incoming, prior)
            self._validator.validate(mutated, prior)
        except CertificateError as e:
            raise self._deny(e) from e
        return mutated.to_k8s_object()

    def on_validate(
        self,
        body: dict[str, Any],
        prior_body: dict[str, Any] | None = None,
        operation: str | None = None,
    ) -> list[str]:
        """Accept or reject a Certificate write.

        Args:
            body: The object as it will be persisted.
            prior_body: The persisted object for updates, if known.
            operation: Admission operation; when unknown, create and update
                are told apart by looking up the persisted object.

        Returns:
            Admission warnings.

        Raises:
            AdmissionDeniedError: If the object must be rejected.
        """
        candidate = self._parse(body)
        if operation == OPERATION_DELETE:
            return self._validator.validate_delete(candidate)

        prior = self._parse(prior_body) if prior_body else None
        try:
            if operation == OPERATION_CREATE:
                return self._validator.validate_create(candidate)
            return self._validator.validate(candidate, prior)
        except CertificateError as e:
            raise self._deny(e) from e

    def _parse(self, body: dict[str, Any]) -> Certificate:
        try:
            return Certificate.from_k8s_object(body)
        except ValidationError as e:
            self._log.warning("malformed_certificate", error=str(e))
            raise AdmissionDeniedError(f"malformed Certificate: {e}") from e

    def _deny(self, error: CertificateError) -> AdmissionDeniedError:
        code = 409 if isinstance(error, CredentialConflictError) else 400
        self._log.info(
            "admission_denied",
            name=error.resource_name,
            namespace=error.namespace,
            reason=error.message,
        )
        return AdmissionDeniedError(error.message, code=code)
