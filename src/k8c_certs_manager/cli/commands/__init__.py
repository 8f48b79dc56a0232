"""CLI commands for k8c-certs."""
