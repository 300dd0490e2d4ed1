"""CLI entry point for the chat gateway."""

from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from chatgateway import __version__
from chatgateway.config import get_settings, load_settings
from chatgateway.errors import CalculatorError
from chatgateway.models.registry import DEFAULT_MODEL_ID, MODEL_REGISTRY, MODEL_COSTS
from chatgateway.tools.builtin.calculator import evaluate
from chatgateway.utils.logging import setup_logging

app = typer.Typer(
    name="chatgateway",
    help="Streaming chat gateway with retrieval augmentation and tool use",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]chatgateway[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also write debug logs to this file",
    ),
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Chat gateway command line."""
    if config:
        load_settings(config_path=config, force_reload=True)
    setup_logging(verbose=verbose, log_file=log_file)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
) -> None:
    """Run the HTTP server."""
    from chatgateway.transport.app import create_app

    settings = get_settings()
    host = host or settings.server.host
    port = port or settings.server.port

    console.print(f"[green]Serving on http://{host}:{port}[/green]")
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


@app.command()
def models() -> None:
    """List the models callers can select."""
    settings = get_settings()

    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Context", justify="right")
    table.add_column("Max output", justify="right")
    table.add_column("$/M in", justify="right")
    table.add_column("$/M out", justify="right")
    table.add_column("Status")

    for m in MODEL_REGISTRY:
        input_cost, output_cost = MODEL_COSTS.get(m.wire_name, (0.0, 0.0))
        if m.is_local and not settings.local_enabled:
            status = "[dim]no endpoint[/dim]"
        elif m.is_local or settings.has_api_key(m.provider.value):
            status = "[green]available[/green]"
        else:
            status = "[yellow]no key[/yellow]"
        name = m.display_name + (" (default)" if m.id == DEFAULT_MODEL_ID else "")
        table.add_row(
            m.id,
            name,
            f"{m.context_window:,}",
            f"{m.max_output_tokens:,}",
            f"{input_cost:.2f}",
            f"{output_cost:.2f}",
            status,
        )

    console.print(table)


@app.command()
def calc(expression: str = typer.Argument(..., help="Expression to evaluate")) -> None:
    """Evaluate an arithmetic expression with the calculator tool."""
    try:
        result = evaluate(expression)
    except CalculatorError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    console.print(result)


if __name__ == "__main__":
    app()
