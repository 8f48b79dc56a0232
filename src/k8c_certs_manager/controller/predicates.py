"""Change filter deciding whether an update needs reconciliation."""

from __future__ import annotations

from typing import Any

from k8c_certs_manager.integrations.kubernetes.models.certificate import CertificateSpec

SpecLike = CertificateSpec | dict[str, Any] | None


def _as_spec(value: SpecLike) -> CertificateSpec | None:
    if value is None or isinstance(value, CertificateSpec):
        return value
    return CertificateSpec.from_k8s_object(value)


def spec_changed(old: SpecLike, new: SpecLike) -> bool:
    """Whether any declared spec field differs between ``old`` and ``new``.

    Status, metadata and undeclared fields are ignored, so the reconciler's
    own status and annotation writes do not trigger another pass.
    """
    new_spec = _as_spec(new)
    if new_spec is None:
        return False
    return not new_spec.matches(_as_spec(old))
