"""Status command for showing a Certificate's observed state."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from k8c_certs_manager.core.config import load_config
from k8c_certs_manager.integrations.kubernetes import (
    KubernetesClient,
    KubernetesError,
    KubernetesNotFoundError,
)
from k8c_certs_manager.services.kubernetes import KubernetesCertificateStore

console = Console()
logger = structlog.get_logger()


def _fmt(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "-"


def status(
    name: str = typer.Argument(..., help="Certificate name."),
    namespace: str | None = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace (defaults to the configured namespace).",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="K8C_CERTS_CONFIG",
        help="YAML configuration file.",
    ),
) -> None:
    """Show a Certificate's status and condition history."""
    config = load_config(config_file)
    ns = namespace or config.kubernetes.namespace
    logger.info("checking_certificate_status", name=name, namespace=ns)

    try:
        with KubernetesClient(config.kubernetes) as client:
            cert = KubernetesCertificateStore(client).get_certificate(ns, name)
    except KubernetesNotFoundError as e:
        console.print(f"[red]Certificate {ns}/{name} not found[/red]")
        raise typer.Exit(code=1) from e
    except KubernetesError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    summary = Table(title=f"Certificate {ns}/{name}")
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="green")
    summary.add_row("DNS name", cert.spec.dns_name)
    summary.add_row("Secret", cert.status.secret_name or cert.spec.secret_name)
    summary.add_row("Validity", f"{cert.spec.validity} ({cert.validity_in_hours or '-'})")
    summary.add_row("Renew before", cert.spec.renew_before or "-")
    summary.add_row("Expires", _fmt(cert.status.expiry_date))
    summary.add_row("Renewed at", _fmt(cert.status.renewed_at))
    active = cert.status.active_condition
    summary.add_row("Condition", active.type if active else "-")
    summary.add_row("Pending request", cert.intent.value)
    if cert.status.failures:
        summary.add_row("Failures", str(cert.status.failures))
    console.print(summary)

    conditions = Table(title="Conditions")
    conditions.add_column("Type", style="cyan", no_wrap=True)
    conditions.add_column("Status")
    conditions.add_column("Reason")
    conditions.add_column("Message", style="dim")
    conditions.add_column("Last transition")
    for condition in cert.status.conditions:
        conditions.add_row(
            condition.type,
            "[green]True[/green]" if condition.status else "False",
            condition.reason,
            condition.message,
            _fmt(condition.last_transition_time),
        )
    console.print(conditions)
