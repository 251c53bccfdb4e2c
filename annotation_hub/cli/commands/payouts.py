"""Payout commands."""

from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from annotation_hub.cli.client import APIError, get_client
from annotation_hub.cli.output import (
    print_error,
    print_item_errors,
    print_key_values,
    print_success,
    print_warning,
)

app = typer.Typer(help="Payout commands")

RAILS = ("paystack", "mpesa")


@app.command("export")
def export_csv(
    rail: Annotated[str, typer.Argument(help="Payout rail: paystack or mpesa")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output file path"),
    ] = None,
    invoice_ids: Annotated[
        list[str] | None,
        typer.Option("--invoice", "-i", help="Restrict to these invoice ids (repeatable)"),
    ] = None,
) -> None:
    """
    Download the bulk-transfer CSV for payable invoices.
    """
    rail = rail.lower()
    if rail not in RAILS:
        print_error(f"Unknown payout rail: {rail}. Use one of: {', '.join(RAILS)}")
        raise typer.Exit(2)

    output = output or Path(f"{rail}_payouts_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv")
    client = get_client()

    try:
        content, headers = client.payout_csv(rail, invoice_ids or None)
    except APIError as e:
        print_error(f"Export failed: {e.message}", e.details)
        raise typer.Exit(1)

    if not content:
        print_warning("No payable invoices found, nothing written")
        return

    output.write_text(content)
    processed = headers.get("x-processed-invoices", "?")
    skipped = headers.get("x-skipped-invoices", "0")
    print_success(f"Exported {processed} invoices to {output}")
    if skipped not in ("0", ""):
        print_warning(f"{skipped} invoices were skipped because of invalid payout details")


@app.command("authorize")
def authorize(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """
    Mark every unpaid and overdue invoice as paid.
    """
    if not yes:
        typer.confirm("Mark ALL unpaid invoices as paid?", abort=True)

    client = get_client()
    try:
        response = client.bulk_authorize()
    except APIError as e:
        print_error(f"Bulk authorization failed: {e.message}", e.details)
        raise typer.Exit(1)

    data = response.get("data", {})
    print_key_values(data, "Bulk payment authorization")
    print_item_errors(data.get("errors", []), title="Problems")
