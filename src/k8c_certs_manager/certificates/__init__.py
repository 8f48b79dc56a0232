"""Self-signed certificate generation and duration handling."""
