"""Configuration management with Pydantic validation."""

from k8c_certs_manager.core.config.models import (
    LoggingConfig,
    OperatorConfig,
    WebhookConfig,
    load_config,
)

__all__ = [
    "LoggingConfig",
    "OperatorConfig",
    "WebhookConfig",
    "load_config",
]
