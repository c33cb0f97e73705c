"""
Faultline CLI - inspect and exercise the error-capture configuration.

Usage:
    faultline version                      # Show version information
    faultline diagnose --config f.yaml     # Show resources and guarded options
    faultline send-test --config f.yaml    # Report a sample exception
"""

from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from faultline import __version__
from faultline.core.exceptions import ManagedException
from faultline.core.handler import Handler
from faultline.core.options import FLAGS
from faultline.shared.infrastructure.config import FaultlineSettings
from faultline.shared.infrastructure.logging import configure_logging

app = typer.Typer(
    name="faultline",
    help="Faultline - error capture and reporting",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
logger = structlog.get_logger(__name__)

SAMPLE_MESSAGE = "Faultline sample exception"

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="YAML settings file (defaults to FAULTLINE_* environment variables)",
    exists=True,
    dir_okay=False,
)


def _load_handler(config: Optional[Path]) -> Handler:
    settings = FaultlineSettings.from_yaml(config) if config else FaultlineSettings()
    return Handler.initialize(settings)


def _mark(enabled: bool) -> str:
    return "[green]on[/green]" if enabled else "[red]off[/red]"


@app.command()
def version():
    """Show Faultline version information"""
    console.print(Panel.fit(
        "[bold cyan]Faultline[/bold cyan]\n"
        f"[dim]Version:[/dim] {__version__}\n",
        title="About Faultline",
        border_style="cyan"
    ))


@app.command()
def diagnose(config: Optional[Path] = ConfigOption):
    """Show configured resources and what the guard allows"""
    handler = _load_handler(config)

    resources = Table(title="Resources", show_header=True, header_style="bold magenta")
    resources.add_column("Resource", style="cyan", no_wrap=True)
    resources.add_column("Value", style="green")

    rows = {
        "stacktrace_helper": handler.stacktrace_helper,
        "screenshot_helper": handler.screenshot_helper,
        "report_post_url": handler.report_post_url,
        "client_id": handler.client_id,
        "to": handler.to,
        "platform_url": handler.platform_url,
        "scope": handler.scope.name.lower(),
    }
    for name, value in rows.items():
        resources.add_row(name, str(value) if value else "[dim]not configured[/dim]")
    console.print(resources)

    sample = ManagedException(SAMPLE_MESSAGE, handler=handler)
    requested = sample.options
    guarded = sample.guarded_options

    options = Table(title="Options", show_header=True, header_style="bold magenta")
    options.add_column("Flag", style="cyan", no_wrap=True)
    options.add_column("Requested")
    options.add_column("Guarded")
    for flag in FLAGS:
        options.add_row(flag, _mark(requested.get(flag)), _mark(guarded.get(flag)))
    console.print(options)


@app.command("send-test")
def send_test(
    config: Optional[Path] = ConfigOption,
    message: str = typer.Option(SAMPLE_MESSAGE, "--message", "-m", help="Message of the sample exception"),
):
    """Construct and report a sample exception"""
    configure_logging()
    handler = _load_handler(config)

    sample = ManagedException(message, handler=handler)
    sample.report()

    if not sample.reported:
        console.print("[red]Sample exception was not reported.[/red]")
        raise typer.Exit(1)

    sinks = [
        flag for flag in ("report_post", "platform_report", "report_callback")
        if sample.guarded_options.get(flag)
    ]
    console.print(f"[green]Reported:[/green] {sample}")
    if sinks:
        if not handler.wait_for_deliveries(timeout=handler.transport.timeout * 2):
            console.print("[yellow]Report delivery is still in flight.[/yellow]")
        console.print(f"[dim]Delivered to:[/dim] {', '.join(sinks)}")
    else:
        console.print("[yellow]No report sink is configured; the report was only recorded locally.[/yellow]")
    logger.debug("sample_reported", exception=str(sample), sinks=sinks)


def main():
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
