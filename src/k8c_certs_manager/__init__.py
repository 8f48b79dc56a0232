"""Self-signed X.509 certificate lifecycle operator for Kubernetes."""

__version__ = "0.1.0"
