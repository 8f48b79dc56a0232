"""Exclusive condition bookkeeping on a Certificate status."""

from __future__ import annotations

from datetime import datetime

from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CertificateCondition,
    CertificateStatus,
)


def set_condition(
    status: CertificateStatus,
    condition_type: str,
    reason: str,
    message: str,
    now: datetime,
) -> CertificateCondition:
    """Make ``condition_type`` the single true condition.

    Every other condition is set false but keeps its reason, message and
    transition time. The target's ``last_transition_time`` moves only when
    its own status changes.

    Returns:
        The condition that is now true.
    """
    target: CertificateCondition | None = None
    for condition in status.conditions:
        if condition.type == condition_type:
            target = condition
        elif condition.status:
            condition.status = False

    if target is None:
        target = CertificateCondition(type=condition_type)
        status.conditions.append(target)

    if not target.status or target.last_transition_time is None:
        target.last_transition_time = now
    target.status = True
    target.reason = reason
    target.message = message
    return target


def is_condition_true(status: CertificateStatus, condition_type: str) -> bool:
    """Whether ``condition_type`` is recorded and true."""
    condition = status.condition(condition_type)
    return condition is not None and condition.status
