"""Certificate lifecycle exceptions.

Admission-time errors are surfaced verbatim to the requester, so their
messages are written for the person running ``kubectl apply``.
"""

from __future__ import annotations


class CertificateError(Exception):
    """Base exception for certificate lifecycle failures.

    Attributes:
        message: Human-readable error message.
        resource_name: Name of the Certificate involved (if known).
        namespace: Namespace of the Certificate (if known).
    """

    def __init__(
        self,
        message: str,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        return self.message


class CertificateValidationError(CertificateError):
    """The Certificate is structurally invalid (bad durations, missing fields)."""

    def __init__(
        self,
        message: str = "Invalid certificate specification",
        field: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message, resource_name=resource_name, namespace=namespace)
        self.field = field


class CredentialConflictError(CertificateError):
    """The requested Secret name is already occupied."""

    def __init__(
        self,
        message: str = "TLS secret reference already exists",
        secret_name: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message, resource_name=resource_name, namespace=namespace)
        self.secret_name = secret_name


class CertificateGenerationError(CertificateError):
    """Key generation or certificate signing failed."""

    def __init__(
        self,
        message: str = "Failed to generate self-signed certificate",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.original_error = original_error
