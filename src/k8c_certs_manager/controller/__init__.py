"""Certificate lifecycle controller."""

from k8c_certs_manager.controller.conditions import is_condition_true, set_condition
from k8c_certs_manager.controller.predicates import spec_changed
from k8c_certs_manager.controller.reconciler import (
    CertificateReconciler,
    ReconcileError,
    ReconcileResult,
)
from k8c_certs_manager.controller.state_machine import Action, Observation, Transition, plan

__all__ = [
    "Action",
    "CertificateReconciler",
    "Observation",
    "ReconcileError",
    "ReconcileResult",
    "Transition",
    "is_condition_true",
    "plan",
    "set_condition",
    "spec_changed",
]
