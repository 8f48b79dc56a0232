"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from k8c_certs_manager.integrations.kubernetes.client import KubernetesClient


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    API groups (core_v1, custom_objects) are auto-created MagicMocks. Retries
    are disabled and errors go through the real translation.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.make_retry_decorator.return_value = lambda fn: fn
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client
