"""Tests for CLI commands."""

from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from annotation_hub.cli.client import APIError
from annotation_hub.cli.main import app

runner = CliRunner()


class TestHealthCommand:
    """Tests for health command."""

    def test_health_command_success(self):
        mock_data = {
            "status": "healthy",
            "timestamp": "2025-01-01T00:00:00Z",
            "dependencies": [{"name": "mongodb", "status": "healthy", "latency_ms": 1.2}],
        }

        with patch("annotation_hub.cli.commands.health.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.health.return_value = mock_data
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["health"])

        assert result.exit_code == 0
        assert "healthy" in result.stdout.lower()

    def test_not_ready_exits_non_zero(self):
        with patch("annotation_hub.cli.commands.health.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.health_ready.return_value = {"status": "not_ready", "checks": {"mongodb": "not_ready"}}
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["health", "--ready"])

        assert result.exit_code == 1

    def test_connection_error(self):
        with patch("annotation_hub.cli.commands.health.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.health_live.side_effect = ConnectionError("refused")
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["health", "--live"])

        assert result.exit_code == 1


class TestPayoutCommands:
    """Tests for payout commands."""

    def test_export_writes_file(self, tmp_path):
        target = tmp_path / "paystack.csv"
        with patch("annotation_hub.cli.commands.payouts.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.payout_csv.return_value = (
                '"Transfer Amount"\n"15000.00"',
                {"x-processed-invoices": "1", "x-skipped-invoices": "2"},
            )
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["payouts", "export", "paystack", "-o", str(target), "-i", "abc"])

        assert result.exit_code == 0
        assert target.read_text() == '"Transfer Amount"\n"15000.00"'
        mock_client.payout_csv.assert_called_once_with("paystack", ["abc"])
        assert "2 invoices were skipped" in result.stdout

    def test_export_unknown_rail(self):
        result = runner.invoke(app, ["payouts", "export", "swift"])
        assert result.exit_code == 2

    def test_export_nothing_payable(self, tmp_path):
        target = tmp_path / "mpesa.csv"
        with patch("annotation_hub.cli.commands.payouts.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.payout_csv.return_value = ("", {})
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["payouts", "export", "mpesa", "-o", str(target)])

        assert result.exit_code == 0
        assert not target.exists()

    def test_export_rate_outage(self, tmp_path):
        with patch("annotation_hub.cli.commands.payouts.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.payout_csv.side_effect = APIError(503, "Exchange rate service unavailable")
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["payouts", "export", "paystack", "-o", str(tmp_path / "x.csv")])

        assert result.exit_code == 1

    def test_authorize_requires_confirmation(self):
        with patch("annotation_hub.cli.commands.payouts.get_client") as mock_get_client:
            result = runner.invoke(app, ["payouts", "authorize"], input="n\n")

        assert result.exit_code == 1
        mock_get_client.assert_not_called()

    def test_authorize_with_yes(self):
        with patch("annotation_hub.cli.commands.payouts.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.bulk_authorize.return_value = {
                "data": {"processedInvoices": 2, "totalAmount": 200.0, "emailsSent": 2, "errors": []}
            }
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["payouts", "authorize", "--yes"])

        assert result.exit_code == 0
        mock_client.bulk_authorize.assert_called_once()


class TestProjectCommands:
    """Tests for project deletion commands."""

    def test_confirm_delete(self):
        with patch("annotation_hub.cli.commands.projects.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.confirm_project_deletion.return_value = {
                "message": "Project and related applications deleted successfully",
                "data": {"deletedApplications": {"total": 3, "pending": 2, "approved": 1, "applications": []}},
            }
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["projects", "confirm-delete", "p1", "--otp", "123456"])

        assert result.exit_code == 0
        mock_client.confirm_project_deletion.assert_called_once_with("p1", "123456", None)

    def test_request_delete_failure(self):
        with patch("annotation_hub.cli.commands.projects.get_client") as mock_get_client:
            mock_client = MagicMock()
            mock_client.request_project_deletion.side_effect = APIError(
                502, "Failed to send deletion OTP to Projects Officer"
            )
            mock_get_client.return_value = mock_client

            result = runner.invoke(app, ["projects", "request-delete", "p1", "--reason", "Cancelled"])

        assert result.exit_code == 1
        mock_client.request_project_deletion.assert_called_once_with("p1", "Cancelled")


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.stdout
