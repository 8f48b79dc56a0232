"""Unit tests for core config models."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from k8c_certs_manager.core.config.models import (
    MAX_POLL_INTERVAL_SECONDS,
    LoggingConfig,
    OperatorConfig,
    WebhookConfig,
    load_config,
)


@pytest.mark.unit
class TestWebhookConfig:
    """Tests for WebhookConfig model."""

    def test_defaults(self) -> None:
        """The webhook is enabled on port 9443 by default."""
        config = WebhookConfig()
        assert config.enabled is True
        assert config.port == 9443
        assert config.certfile is None

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_invalid_port(self, port: int) -> None:
        """Ports outside the TCP range are rejected."""
        with pytest.raises(ValidationError, match="port must be between"):
            WebhookConfig(port=port)


@pytest.mark.unit
class TestLoggingConfig:
    """Tests for LoggingConfig model."""

    def test_defaults(self) -> None:
        """The operator logs at INFO to the console only."""
        config = LoggingConfig()
        assert config.verbose is True
        assert config.debug is False
        assert config.log_to_file is False


@pytest.mark.unit
class TestOperatorConfig:
    """Tests for OperatorConfig model."""

    def test_defaults(self) -> None:
        """Defaults watch all namespaces and poll every five minutes."""
        config = OperatorConfig()

        assert config.clusterwide is True
        assert config.poll_interval == MAX_POLL_INTERVAL_SECONDS
        assert config.poll_interval_delta == timedelta(minutes=5)
        assert config.failure_backoff_delta == timedelta(seconds=30)
        assert config.key_size == 2048

    def test_namespaced(self) -> None:
        """Listing namespaces turns off cluster-wide watching."""
        assert OperatorConfig(namespaces=["certs"]).clusterwide is False

    @pytest.mark.parametrize("interval", [0, MAX_POLL_INTERVAL_SECONDS + 1])
    def test_poll_interval_bounds(self, interval: int) -> None:
        """The poll interval must be positive and at most five minutes."""
        with pytest.raises(ValidationError, match="poll_interval"):
            OperatorConfig(poll_interval=interval)

    def test_failure_backoff_positive(self) -> None:
        """A zero backoff is rejected."""
        with pytest.raises(ValidationError, match="failure_backoff_base"):
            OperatorConfig(failure_backoff_base=0)

    def test_key_size_floor(self) -> None:
        """Keys below 2048 bits are rejected."""
        with pytest.raises(ValidationError, match="key_size must be at least 2048"):
            OperatorConfig(key_size=1024)

    def test_unknown_key_rejected(self) -> None:
        """Misspelled keys fail validation."""
        with pytest.raises(ValidationError):
            OperatorConfig.model_validate({"poll_intervall": 60})


@pytest.mark.unit
class TestOperatorConfigFromEnv:
    """Tests for OperatorConfig.from_env."""

    def test_no_overrides(self) -> None:
        """Without environment variables the base config is used."""
        config = OperatorConfig.from_env({"poll_interval": 60, "namespaces": ["a"]})
        assert config.poll_interval == 60
        assert config.namespaces == ["a"]

    def test_env_overrides_base(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables win over file values."""
        monkeypatch.setenv("K8C_CERTS_POLL_INTERVAL", "30")
        monkeypatch.setenv("K8C_CERTS_NAMESPACES", "certs, web ,")
        monkeypatch.setenv("K8C_CERTS_CONTEXT", "staging")
        monkeypatch.setenv("K8C_CERTS_WEBHOOK_PORT", "8443")
        monkeypatch.setenv("K8C_CERTS_LOG_JSON", "true")
        monkeypatch.setenv("K8C_CERTS_KEY_SIZE", "4096")

        config = OperatorConfig.from_env({"poll_interval": 60, "webhook": {"host": "op.svc"}})

        assert config.poll_interval == 30
        assert config.namespaces == ["certs", "web"]
        assert config.kubernetes.context == "staging"
        assert config.webhook.port == 8443
        assert config.webhook.host == "op.svc"
        assert config.logging.json_output is True
        assert config.key_size == 4096

    def test_empty_namespaces_means_clusterwide(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An empty K8C_CERTS_NAMESPACES clears the file's namespace list."""
        monkeypatch.setenv("K8C_CERTS_NAMESPACES", "")

        config = OperatorConfig.from_env({"namespaces": ["certs"]})

        assert config.clusterwide is True

    def test_does_not_mutate_base(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The caller's dict is left untouched."""
        monkeypatch.setenv("K8C_CERTS_CONTEXT", "staging")
        base: dict[str, object] = {"kubernetes": {"namespace": "certs"}}

        OperatorConfig.from_env(base)

        assert base == {"kubernetes": {"namespace": "certs"}}


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_load_from_file(self, temp_config_file: Path) -> None:
        """A YAML file populates the config."""
        config = load_config(temp_config_file)

        assert config.namespaces == ["certs"]
        assert config.poll_interval == 120
        assert config.kubernetes.namespace == "certs"
        assert config.webhook.port == 8443
        assert config.logging.debug is True

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        """A missing file is not an error."""
        config = load_config(tmp_path / "absent.yaml")
        assert config == OperatorConfig()

    def test_none_uses_defaults(self) -> None:
        """No path means defaults plus environment."""
        assert load_config(None).poll_interval == MAX_POLL_INTERVAL_SECONDS

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty YAML document is an empty mapping."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == OperatorConfig()

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        """A YAML list at the top level is rejected."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="must contain a mapping"):
            load_config(path)
