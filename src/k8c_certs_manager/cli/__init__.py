"""Command-line interface for k8c-certs."""
