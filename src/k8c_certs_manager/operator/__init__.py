"""kopf runtime for the Certificate operator."""

from k8c_certs_manager.operator.handlers import (
    build_memo,
    build_mutation_patch,
    build_registry,
    run_operator,
)

__all__ = ["build_memo", "build_mutation_patch", "build_registry", "run_operator"]
