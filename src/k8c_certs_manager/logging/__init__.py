"""Logging configuration for k8c_certs_manager."""

from k8c_certs_manager.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
