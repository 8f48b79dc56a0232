"""Issue command: run the admission stages and the factory on a manifest offline."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from k8c_certs_manager.admission import CertificateDefaulter, CertificateValidator
from k8c_certs_manager.certificates.exceptions import CertificateError
from k8c_certs_manager.certificates.factory import CertificateFactory
from k8c_certs_manager.core.config.models import MIN_KEY_SIZE
from k8c_certs_manager.integrations.kubernetes.models.certificate import (
    CERTIFICATE_KIND,
    Certificate,
)
from k8c_certs_manager.integrations.kubernetes.models.secret import (
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
)

console = Console()
logger = structlog.get_logger()

PRIVATE_KEY_MODE = 0o600


def _load_manifest(path: Path) -> dict[str, Any]:
    documents = [doc for doc in yaml.safe_load_all(path.read_text()) if doc]
    for doc in documents:
        if isinstance(doc, dict) and doc.get("kind") == CERTIFICATE_KIND:
            return doc
    raise ValueError(f"{path} contains no {CERTIFICATE_KIND} manifest")


def issue(
    manifest: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="YAML file containing a Certificate manifest.",
    ),
    out_dir: Path = typer.Option(
        Path("."),
        "--out-dir",
        "-o",
        file_okay=False,
        help="Directory to write tls.crt and tls.key into.",
    ),
    key_size: int = typer.Option(
        MIN_KEY_SIZE,
        "--key-size",
        min=MIN_KEY_SIZE,
        help="RSA key size in bits.",
    ),
) -> None:
    """Issue a self-signed certificate from a Certificate manifest without a cluster."""
    try:
        body = _load_manifest(manifest)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read manifest:[/red] {e}")
        raise typer.Exit(code=2) from e

    try:
        cert = CertificateDefaulter().apply_defaults(Certificate.from_k8s_object(body))
        warnings = CertificateValidator().validate_create(cert)
        cert_pem, key_pem = CertificateFactory(key_size=key_size).issue(cert.spec, cert.lifetime)
    except (CertificateError, ValidationError) as e:
        console.print(f"[red]Certificate rejected:[/red] {e}")
        raise typer.Exit(code=1) from e

    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    out_dir.mkdir(parents=True, exist_ok=True)
    cert_path = out_dir / TLS_CERT_KEY
    key_path = out_dir / TLS_PRIVATE_KEY_KEY
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    os.chmod(key_path, PRIVATE_KEY_MODE)

    expiry = CertificateFactory.read_expiry(cert_pem)
    logger.info("certificate_written", path=str(out_dir), expiry=expiry.isoformat())
    console.print(
        Panel(
            f"[green]Certificate issued for {cert.spec.dns_name}[/green]\n\n"
            f"Certificate: {cert_path}\n"
            f"Private key: {key_path}\n"
            f"Expires:     {expiry.isoformat()}",
            title="k8c-certs issue",
            border_style="green",
        )
    )
