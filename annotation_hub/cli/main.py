"""CLI entry point for Annotation Hub."""

import os
from typing import Annotated, Optional

import typer
from rich.console import Console

from annotation_hub.cli.commands import health, payouts, projects

__version__ = "1.0.0"

app = typer.Typer(
    name="annotation-hub",
    help="Annotation Hub CLI - payouts, project deletion and service health",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(health.app, name="health", help="Health check commands")
app.add_typer(payouts.app, name="payouts", help="Payout exports and bulk payment")
app.add_typer(projects.app, name="projects", help="Project deletion")

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"annotation-hub version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = False,
    api_url: Annotated[
        Optional[str],
        typer.Option("--api-url", "-u", envvar="ANNOTATION_HUB_API_URL", help="API URL"),
    ] = None,
    token: Annotated[
        Optional[str],
        typer.Option("--token", "-t", envvar="ANNOTATION_HUB_API_TOKEN", help="Admin JWT"),
    ] = None,
    output_format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Output format (table, json)"),
    ] = None,
) -> None:
    """
    Annotation Hub CLI.

    [bold]Quick Start:[/bold]

        annotation-hub health
        annotation-hub payouts export paystack -o paystack.csv
        annotation-hub payouts authorize
        annotation-hub projects request-delete <project_id>
        annotation-hub projects confirm-delete <project_id> --otp 123456
    """
    if api_url:
        os.environ["ANNOTATION_HUB_API_URL"] = api_url
    if token:
        os.environ["ANNOTATION_HUB_API_TOKEN"] = token
    if output_format:
        os.environ["ANNOTATION_HUB_OUTPUT_FORMAT"] = output_format

    from annotation_hub.cli.client import reset_client
    from annotation_hub.cli.config import reset_config

    reset_config()
    reset_client()


if __name__ == "__main__":
    app()
