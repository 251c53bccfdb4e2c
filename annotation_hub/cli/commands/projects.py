"""Project deletion commands."""

from typing import Annotated

import typer

from annotation_hub.cli.client import APIError, get_client
from annotation_hub.cli.output import print_error, print_key_values, print_success

app = typer.Typer(help="Project commands")


@app.command("request-delete")
def request_delete(
    project_id: Annotated[str, typer.Argument(help="Project id")],
    reason: Annotated[str | None, typer.Option("--reason", "-r", help="Why the project is being deleted")] = None,
) -> None:
    """
    Email a force-delete OTP to the Projects Officer.
    """
    try:
        response = get_client().request_project_deletion(project_id, reason)
    except APIError as e:
        print_error(f"OTP request failed: {e.message}", e.details)
        raise typer.Exit(1)

    print_success(response.get("message", "Deletion OTP sent"))
    print_key_values(response.get("data") or {}, "Deletion request")


@app.command("confirm-delete")
def confirm_delete(
    project_id: Annotated[str, typer.Argument(help="Project id")],
    otp: Annotated[str, typer.Option("--otp", prompt="OTP", help="The 6-digit code")],
    message: Annotated[str | None, typer.Option("--message", "-m", help="Confirmation message")] = None,
) -> None:
    """
    Verify the OTP and delete the project with all its applications.
    """
    try:
        response = get_client().confirm_project_deletion(project_id, otp, message)
    except APIError as e:
        print_error(f"Deletion failed: {e.message}", e.details)
        raise typer.Exit(1)

    data = response.get("data") or {}
    summary = data.get("deletedApplications") or {}
    print_success(response.get("message", "Project deleted"))
    print_key_values({k: v for k, v in summary.items() if k != "applications"}, "Deleted applications")
