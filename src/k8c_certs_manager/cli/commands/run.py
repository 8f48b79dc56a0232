"""Run command for starting the operator."""

from __future__ import annotations

from pathlib import Path

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console

from k8c_certs_manager.core.config import load_config
from k8c_certs_manager.integrations.kubernetes import KubernetesError
from k8c_certs_manager.logging import configure_logging
from k8c_certs_manager.operator import run_operator

console = Console()
logger = structlog.get_logger()


def run(
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="K8C_CERTS_CONFIG",
        help="YAML configuration file.",
    ),
    namespace: list[str] | None = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Namespace to watch (repeatable). Defaults to all namespaces.",
    ),
) -> None:
    """Start the Certificate operator and its admission webhooks."""
    try:
        config = load_config(config_file)
        if namespace:
            config = config.model_copy(update={"namespaces": list(namespace)})
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise typer.Exit(code=2) from e

    configure_logging(
        verbose=config.logging.verbose,
        debug=config.logging.debug,
        json_output=config.logging.json_output,
        log_to_file=config.logging.log_to_file,
    )
    logger.info("starting_operator", namespaces=config.namespaces or "all")

    try:
        run_operator(config)
    except KubernetesError as e:
        console.print(f"[red]Cannot start operator:[/red] {e}")
        raise typer.Exit(code=1) from e
