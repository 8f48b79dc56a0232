"""Operator configuration models with Pydantic validation."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from k8c_certs_manager.integrations.kubernetes.config import KubernetesConfig

# The reconciler must observe every Certificate at least this often
MAX_POLL_INTERVAL_SECONDS = 300
MIN_KEY_SIZE = 2048


class WebhookConfig(BaseModel):
    """Admission webhook server settings."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    host: str | None = None
    port: int = 9443
    certfile: str | None = None
    pkeyfile: str | None = None

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is a usable TCP port."""
        if not 0 < v < 65536:
            raise ValueError("port must be between 1 and 65535")
        return v


class LoggingConfig(BaseModel):
    """Logging flags passed to ``configure_logging``."""

    model_config = ConfigDict(extra="forbid")

    verbose: bool = True
    debug: bool = False
    json_output: bool = False
    log_to_file: bool = False


class OperatorConfig(BaseModel):
    """Complete operator configuration."""

    model_config = ConfigDict(extra="forbid")

    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    namespaces: list[str] = Field(default_factory=list)
    poll_interval: int = MAX_POLL_INTERVAL_SECONDS
    failure_backoff_base: int = 30
    key_size: int = MIN_KEY_SIZE

    @field_validator("poll_interval")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        """Validate the periodic re-check never exceeds five minutes."""
        if not 0 < v <= MAX_POLL_INTERVAL_SECONDS:
            raise ValueError(f"poll_interval must be between 1 and {MAX_POLL_INTERVAL_SECONDS}")
        return v

    @field_validator("failure_backoff_base")
    @classmethod
    def validate_failure_backoff_base(cls, v: int) -> int:
        """Validate failure_backoff_base is positive."""
        if v <= 0:
            raise ValueError("failure_backoff_base must be positive")
        return v

    @field_validator("key_size")
    @classmethod
    def validate_key_size(cls, v: int) -> int:
        """Validate the RSA key size meets the minimum strength."""
        if v < MIN_KEY_SIZE:
            raise ValueError(f"key_size must be at least {MIN_KEY_SIZE}")
        return v

    @property
    def poll_interval_delta(self) -> timedelta:
        return timedelta(seconds=self.poll_interval)

    @property
    def failure_backoff_delta(self) -> timedelta:
        return timedelta(seconds=self.failure_backoff_base)

    @property
    def clusterwide(self) -> bool:
        """Whether the operator watches every namespace."""
        return not self.namespaces

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> OperatorConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            K8C_CERTS_KUBECONFIG: Kubeconfig path
            K8C_CERTS_CONTEXT: Kubeconfig context
            K8C_CERTS_NAMESPACES: Comma-separated namespaces to watch (empty: all)
            K8C_CERTS_POLL_INTERVAL: Periodic re-check interval in seconds
            K8C_CERTS_KEY_SIZE: RSA key size in bits
            K8C_CERTS_WEBHOOK_PORT: Admission webhook listen port
            K8C_CERTS_WEBHOOK_HOST: Hostname the API server uses to reach the webhook
            K8C_CERTS_WEBHOOK_CERTFILE: Webhook serving certificate
            K8C_CERTS_WEBHOOK_PKEYFILE: Webhook serving private key
            K8C_CERTS_LOG_JSON: Emit JSON logs on the console ("1"/"true")
        """
        config_dict = dict(base_config) if base_config else {}
        kubernetes = dict(config_dict.get("kubernetes") or {})
        webhook = dict(config_dict.get("webhook") or {})
        logging_cfg = dict(config_dict.get("logging") or {})

        if kubeconfig := os.environ.get("K8C_CERTS_KUBECONFIG"):
            kubernetes["kubeconfig"] = kubeconfig
        if context := os.environ.get("K8C_CERTS_CONTEXT"):
            kubernetes["context"] = context
        if (namespaces := os.environ.get("K8C_CERTS_NAMESPACES")) is not None:
            config_dict["namespaces"] = [ns.strip() for ns in namespaces.split(",") if ns.strip()]
        if poll_interval := os.environ.get("K8C_CERTS_POLL_INTERVAL"):
            config_dict["poll_interval"] = int(poll_interval)
        if key_size := os.environ.get("K8C_CERTS_KEY_SIZE"):
            config_dict["key_size"] = int(key_size)
        if port := os.environ.get("K8C_CERTS_WEBHOOK_PORT"):
            webhook["port"] = int(port)
        if host := os.environ.get("K8C_CERTS_WEBHOOK_HOST"):
            webhook["host"] = host
        if certfile := os.environ.get("K8C_CERTS_WEBHOOK_CERTFILE"):
            webhook["certfile"] = certfile
        if pkeyfile := os.environ.get("K8C_CERTS_WEBHOOK_PKEYFILE"):
            webhook["pkeyfile"] = pkeyfile
        if log_json := os.environ.get("K8C_CERTS_LOG_JSON"):
            logging_cfg["json_output"] = log_json.lower() in ("1", "true", "yes")

        config_dict["kubernetes"] = kubernetes
        config_dict["webhook"] = webhook
        config_dict["logging"] = logging_cfg
        return cls.model_validate(config_dict)


def load_config(path: Path | str | None = None) -> OperatorConfig:
    """Load configuration from a YAML file, then apply environment overrides.

    Args:
        path: YAML config file. A missing or unset path yields the defaults.

    Returns:
        The validated operator configuration.
    """
    base: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path).expanduser()
        if config_path.exists():
            loaded = yaml.safe_load(config_path.read_text()) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"{config_path} must contain a mapping")
            base = loaded
    return OperatorConfig.from_env(base)
