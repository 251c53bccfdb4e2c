"""Output formatting utilities for CLI."""

import json
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from annotation_hub.cli.config import get_config

console = Console()
error_console = Console(stderr=True)

STATUS_COLORS = {
    "healthy": "green",
    "ready": "green",
    "alive": "green",
    "unhealthy": "red",
    "not_ready": "red",
}


def format_timestamp(ts: str | datetime | None) -> str:
    if ts is None:
        return "-"
    if isinstance(ts, str):
        try:
            ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return ts
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def format_status(status: str) -> Text:
    return Text(status, style=STATUS_COLORS.get(status.lower(), "white"))


def wants_json() -> bool:
    return get_config().output_format == "json"


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str, indent=2))


def print_error(message: str, details: dict | None = None) -> None:
    error_console.print(f"[red]Error:[/red] {message}")
    if details:
        for key, value in details.items():
            error_console.print(f"  [dim]{key}:[/dim] {value}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]![/yellow] {message}")


def print_health_status(data: dict, title: str = "Health Status") -> None:
    """Print health status in a formatted panel."""
    if wants_json():
        print_json(data)
        return

    status = data.get("status", "unknown")
    content = Text()
    content.append("Status: ")
    content.append(format_status(status))
    if "timestamp" in data:
        content.append(f"\nTimestamp: {format_timestamp(data['timestamp'])}")
    if "environment" in data:
        content.append(f"\nEnvironment: {data['environment']}")
    border = "green" if STATUS_COLORS.get(status) == "green" else "red"
    console.print(Panel(content, title=title, border_style=border))

    deps = data.get("dependencies") or data.get("checks")
    if deps:
        table = Table(title="Dependencies", show_header=True)
        table.add_column("Service", style="cyan")
        table.add_column("Status")
        if isinstance(deps, dict):
            for name, dep_status in deps.items():
                table.add_row(name, format_status(str(dep_status)))
        else:
            for dep in deps:
                table.add_row(dep.get("name", "unknown"), format_status(str(dep.get("status", "unknown"))))
        console.print(table)


def print_item_errors(errors: list[dict], title: str = "Skipped invoices") -> None:
    """Print the per-invoice error list returned by bulk operations."""
    if not errors:
        return
    table = Table(title=title, show_header=True)
    table.add_column("Invoice", style="cyan")
    table.add_column("Error", style="red")
    table.add_column("Details")
    for error in errors:
        table.add_row(str(error.get("invoiceNumber", "-")), error.get("error", ""), error.get("details") or "")
    console.print(table)


def print_key_values(data: dict, title: str) -> None:
    if wants_json():
        print_json(data)
        return
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            continue
        table.add_row(key, str(value))
    console.print(table)
