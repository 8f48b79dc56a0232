"""Admission stages for Certificates: defaulting and validation."""

from k8c_certs_manager.admission.defaulting import (
    FALLBACK_SERIAL_NUMBER,
    CertificateDefaulter,
    random_serial_number,
)
from k8c_certs_manager.admission.handler import AdmissionDeniedError, AdmissionHandler
from k8c_certs_manager.admission.validation import CertificateValidator

__all__ = [
    "FALLBACK_SERIAL_NUMBER",
    "AdmissionDeniedError",
    "AdmissionHandler",
    "CertificateDefaulter",
    "CertificateValidator",
    "random_serial_number",
]
