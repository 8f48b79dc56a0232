"""Self-signed X.509 certificate issuance."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from k8c_certs_manager.certificates.exceptions import CertificateGenerationError

if TYPE_CHECKING:
    from k8c_certs_manager.integrations.kubernetes.models.certificate import (
        CertificateSpec,
        CertificateSubject,
    )

logger = structlog.get_logger()

DEFAULT_KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537
# X.509 serials are at most 20 octets and must be positive
MAX_SERIAL_BITS = 159


def parse_serial_number(value: str) -> int | None:
    """Return ``value`` as a usable certificate serial, or None if it is not one."""
    if not value or not value.isascii() or not value.isdigit():
        return None
    serial = int(value)
    if serial <= 0 or serial.bit_length() > MAX_SERIAL_BITS:
        return None
    return serial


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CertificateFactory:
    """Generates a fresh RSA key and a certificate signed by that same key.

    Every call yields new key material; only the structure of the certificate
    is determined by the inputs.

    Example:
        >>> factory = CertificateFactory()
        >>> cert_pem, key_pem = factory.issue(spec, timedelta(hours=1))
    """

    def __init__(
        self,
        key_size: int = DEFAULT_KEY_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the factory.

        Args:
            key_size: RSA modulus size in bits (at least 2048).
            clock: Source of the current time, used for ``notBefore``.
        """
        if key_size < DEFAULT_KEY_SIZE:
            raise ValueError(f"key_size must be at least {DEFAULT_KEY_SIZE}")
        self._key_size = key_size
        self._clock = clock

    def issue(self, spec: CertificateSpec, lifetime: timedelta) -> tuple[bytes, bytes]:
        """Issue a self-signed certificate for ``spec``.

        Args:
            spec: Defaulted Certificate spec (subject, DNS name, emails).
            lifetime: Absolute validity; ``notAfter = notBefore + lifetime``.

        Returns:
            Tuple of (certificate PEM, PKCS#1 private key PEM).

        Raises:
            CertificateGenerationError: If key generation or signing fails.
        """
        try:
            private_key = rsa.generate_private_key(
                public_exponent=PUBLIC_EXPONENT,
                key_size=self._key_size,
            )

            subject = issuer = self._build_name(spec)
            not_before = self._clock()
            serial = None
            if spec.subject is not None:
                serial = parse_serial_number(spec.subject.serial_number)

            san: list[x509.GeneralName] = [x509.DNSName(spec.dns_name)]
            san.extend(x509.RFC822Name(email) for email in spec.email_addresses)

            cert = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(issuer)
                .public_key(private_key.public_key())
                .serial_number(serial if serial is not None else x509.random_serial_number())
                .not_valid_before(not_before)
                .not_valid_after(not_before + lifetime)
                .add_extension(x509.SubjectAlternativeName(san), critical=False)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .sign(private_key, hashes.SHA256())
            )

            cert_pem = cert.public_bytes(serialization.Encoding.PEM)
            key_pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
        except Exception as e:
            logger.error("certificate_generation_failed", dns_name=spec.dns_name, error=str(e))
            raise CertificateGenerationError(
                message=f"Failed to generate self-signed certificate: {e}",
                original_error=e,
            ) from e

        logger.debug(
            "certificate_generated",
            dns_name=spec.dns_name,
            serial=cert.serial_number,
            not_after=cert.not_valid_after_utc.isoformat(),
        )
        return cert_pem, key_pem

    @staticmethod
    def _build_name(spec: CertificateSpec) -> x509.Name:
        """Build the subject (and issuer) name; blank values are skipped."""
        subject: CertificateSubject | None = spec.subject
        attributes: list[x509.NameAttribute] = []
        if subject is not None:
            attributes.extend(
                x509.NameAttribute(NameOID.COUNTRY_NAME, c) for c in subject.country if c
            )
            attributes.extend(
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, o) for o in subject.organization if o
            )
            attributes.extend(
                x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, ou)
                for ou in subject.organizational_unit
                if ou
            )
            if subject.serial_number:
                attributes.append(
                    x509.NameAttribute(NameOID.SERIAL_NUMBER, subject.serial_number)
                )
        common_name = subject.common_name if subject is not None and subject.common_name else ""
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name or spec.dns_name))
        return x509.Name(attributes)

    @staticmethod
    def read_expiry(cert_pem: bytes) -> datetime:
        """Return the ``notAfter`` of a PEM certificate.

        Raises:
            ValueError: If ``cert_pem`` is not a PEM certificate.
        """
        cert = x509.load_pem_x509_certificate(cert_pem)
        return cert.not_valid_after_utc
