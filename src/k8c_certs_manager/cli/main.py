"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from k8c_certs_manager import __version__
from k8c_certs_manager.cli.commands import issue, run, status
from k8c_certs_manager.logging.config import configure_logging

app = typer.Typer(
    name="k8c-certs",
    help="Self-signed certificate operator for Kubernetes.",
    add_completion=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"k8c-certs version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as JSON lines.",
    ),
) -> None:
    """k8c-certs - issue and renew self-signed certificates stored in Secrets."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs, log_to_file=False)


app.command()(run.run)
app.command()(issue.issue)
app.command()(status.status)


if __name__ == "__main__":
    app()
