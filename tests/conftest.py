"""Shared pytest fixtures for k8c_certs_manager tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from k8c_certs_manager.cli.main import app


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary operator config file."""
    config_path = tmp_path / "k8c-certs.yaml"
    config_path.write_text(
        """
namespaces:
  - certs
poll_interval: 120
kubernetes:
  namespace: certs
webhook:
  port: 8443
logging:
  debug: true
"""
    )
    return config_path


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    # Clear any K8C_CERTS_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("K8C_CERTS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def capture_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Fixture to capture log output."""
    import logging

    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app
