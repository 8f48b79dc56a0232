"""Unit tests for CertificateValidator."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from k8c_certs_manager.admission.validation import CertificateValidator
from k8c_certs_manager.certificates.exceptions import (
    CertificateValidationError,
    CredentialConflictError,
)
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    Certificate,
    CertificateSubject,
    Intent,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import TLSCredential


@pytest.fixture
def validator(store: Any) -> CertificateValidator:
    """Validator backed by the in-memory store."""
    return CertificateValidator(store)


def _secret(name: str, namespace: str = "default") -> TLSCredential:
    return TLSCredential(name=name, namespace=namespace, certificate=b"C", private_key=b"K")


@pytest.mark.unit
class TestStructureChecks:
    """Checks shared by create and update."""

    def test_valid_certificate(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A well-formed Certificate passes without warnings."""
        assert validator.validate_create(make_certificate()) == []

    def test_missing_dns_name(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """dnsName is mandatory."""
        with pytest.raises(CertificateValidationError, match="dnsName is required"):
            validator.validate_create(make_certificate(dns_name=""))

    def test_missing_secret_name(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """secretRef.name is mandatory."""
        with pytest.raises(CertificateValidationError) as exc_info:
            validator.validate_create(make_certificate(secret_name=""))
        assert exc_info.value.field == "secretRef"

    def test_missing_validity_in_hours(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A Certificate that skipped defaulting is rejected."""
        with pytest.raises(
            CertificateValidationError, match="no validity value annotations found"
        ):
            validator.validate_create(make_certificate(validity_in_hours=None))

    def test_unparseable_validity_in_hours(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A corrupted computed validity is rejected."""
        with pytest.raises(CertificateValidationError, match="invalid value 12x for Validity"):
            validator.validate_create(make_certificate(validity_in_hours="12x"))

    def test_zero_validity_only_warns(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A zero lifetime is admitted; renewBefore covering it is only a warning."""
        warnings = validator.validate_create(make_certificate(validity_in_hours="0h"))

        assert len(warnings) == 1
        assert "renewed on every check" in warnings[0]

    @pytest.mark.parametrize("renew_before", ["soon", "5", "1d"])
    def test_unparseable_renew_before(
        self,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
        renew_before: str,
    ) -> None:
        """renewBefore must be a unit-suffixed duration."""
        with pytest.raises(
            CertificateValidationError,
            match=f"invalid value {renew_before} for RenewBefore field eg: 5m, 1h",
        ):
            validator.validate_create(make_certificate(renewBefore=renew_before))

    @pytest.mark.parametrize("renew_before", ["4m", "299s", "0"])
    def test_renew_before_below_minimum(
        self,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
        renew_before: str,
    ) -> None:
        """renewBefore must be at least five minutes."""
        with pytest.raises(CertificateValidationError, match="minimum value should be 5m"):
            validator.validate_create(make_certificate(renewBefore=renew_before))

    def test_invalid_subject_serial(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Subject serial numbers must be positive decimal integers."""
        cert = make_certificate()
        cert.spec.subject = CertificateSubject(common_name="web", serial_number="-1")

        with pytest.raises(CertificateValidationError) as exc_info:
            validator.validate_create(cert)

        assert exc_info.value.field == "subject.serialNumber"

    def test_invalid_country(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Country entries must be two-letter codes."""
        cert = make_certificate()
        cert.spec.subject = CertificateSubject(country=["Germany"])

        with pytest.raises(CertificateValidationError, match="2-letter code"):
            validator.validate_create(cert)

    def test_renew_before_not_shorter_than_lifetime_warns(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A renewal window covering the whole lifetime is allowed with a warning."""
        warnings = validator.validate_create(
            make_certificate(validity_in_hours="2h", renewBefore="3h")
        )

        assert len(warnings) == 1
        assert "renewed on every check" in warnings[0]


@pytest.mark.unit
class TestValidateCreate:
    """Tests for CertificateValidator.validate_create."""

    def test_stamps_create_intent(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """A valid new Certificate is marked for issuance."""
        cert = make_certificate()
        validator.validate_create(cert)
        assert cert.intent is Intent.CREATE

    def test_existing_secret_is_conflict(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """Creating over an existing Secret is rejected."""
        store.add_credential(_secret("web-tls"))

        with pytest.raises(CredentialConflictError, match="TLS secret reference already exists"):
            validator.validate_create(make_certificate())

    def test_secret_in_other_namespace_is_fine(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """Collisions are checked in the Certificate's own namespace."""
        store.add_credential(_secret("web-tls", namespace="other"))
        assert validator.validate_create(make_certificate()) == []

    def test_offline_skips_collision_check(
        self, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Without a store only the structure is checked."""
        assert CertificateValidator().validate_create(make_certificate()) == []


@pytest.mark.unit
class TestValidateUpdate:
    """Tests for CertificateValidator.validate_update."""

    def test_same_secret_no_marker(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """An update keeping the Secret name records nothing."""
        prior = make_certificate()
        candidate = make_certificate(validity="60d", validity_in_hours="1440h")

        assert validator.validate_update(candidate, prior) == []
        assert candidate.obsolete_secret_name is None

    def test_rename_marks_old_secret(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """Renaming the target Secret records the old one for deletion."""
        store.add_credential(_secret("web-tls"))
        prior = make_certificate()
        candidate = make_certificate(secret_name="web-tls-v2")

        validator.validate_update(candidate, prior)

        assert candidate.obsolete_secret_name == "web-tls"
        assert candidate.intent is Intent.UPDATE

    def test_rename_without_old_secret(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Nothing to delete when the old Secret never existed."""
        candidate = make_certificate(secret_name="web-tls-v2")

        validator.validate_update(candidate, make_certificate())

        assert candidate.obsolete_secret_name is None

    def test_rename_replaces_pending_marker_with_warning(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """A second rename before cleanup warns about the abandoned Secret."""
        store.add_credential(_secret("web-tls-v2"))
        prior = make_certificate(secret_name="web-tls-v2")
        candidate = make_certificate(secret_name="web-tls-v3")
        candidate.obsolete_secret_name = "web-tls"

        warnings = validator.validate_update(candidate, prior)

        assert candidate.obsolete_secret_name == "web-tls-v2"
        assert warnings == [
            "secret web-tls is still pending deletion and will be left in place"
        ]

    def test_revalidating_stamped_object_is_stable(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """Validating the same rename twice gives the same result."""
        store.add_credential(_secret("web-tls"))
        prior = make_certificate()
        candidate = make_certificate(secret_name="web-tls-v2")

        validator.validate_update(candidate, prior)
        warnings = validator.validate_update(candidate, prior)

        assert warnings == []
        assert candidate.obsolete_secret_name == "web-tls"

    def test_structure_still_checked(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Updates go through the same structural checks."""
        with pytest.raises(CertificateValidationError):
            validator.validate_update(make_certificate(dns_name=""), make_certificate())


@pytest.mark.unit
class TestValidateDispatch:
    """Tests for validate and validate_delete."""

    def test_validate_without_prior_is_create(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """No persisted object means create semantics, including the collision check."""
        store.add_credential(_secret("web-tls"))

        with pytest.raises(CredentialConflictError):
            validator.validate(make_certificate())

    def test_validate_with_persisted_is_update(
        self,
        store: Any,
        validator: CertificateValidator,
        make_certificate: Callable[..., Certificate],
    ) -> None:
        """A persisted object means update semantics; its own Secret is no conflict."""
        persisted = store.add_certificate(make_certificate())
        store.add_credential(_secret("web-tls"))

        assert validator.validate(persisted.model_copy(deep=True)) == []

    def test_validate_delete_always_allowed(
        self, validator: CertificateValidator, make_certificate: Callable[..., Certificate]
    ) -> None:
        """Deletes have nothing to check."""
        assert validator.validate_delete(make_certificate(dns_name="")) == []
