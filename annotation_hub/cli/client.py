"""HTTP client for CLI commands."""

import asyncio
from typing import Any

import httpx

from annotation_hub.cli.config import get_config


class APIError(Exception):
    """API request error."""

    def __init__(self, status_code: int, message: str, details: dict | None = None):
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{status_code}] {message}")


class APIClient:
    """HTTP client for the Annotation Hub API."""

    def __init__(self, base_url: str | None = None, token: str | None = None, timeout: int | None = None):
        config = get_config()
        self.base_url = (base_url or config.api_url).rstrip("/")
        self.token = token or config.api_token
        self.timeout = timeout or config.api_timeout

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        try:
            error_data = response.json()
        except ValueError:
            raise APIError(response.status_code, response.text)
        message = error_data.get("message", error_data.get("detail", "Unknown error"))
        details = {k: v for k, v in error_data.items() if k in ("errors", "data", "code")}
        raise APIError(response.status_code, message, details)

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(
                method, f"{self.base_url}{path}", headers=self._get_headers(), **kwargs
            )
        self._raise_for_error(response)
        return response

    def request(self, method: str, path: str, params: dict | None = None, json: dict | None = None) -> dict[str, Any]:
        """Make a synchronous JSON request (runs async internally)."""
        response = asyncio.run(self._send(method, path, params=params, json=json))
        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}

    def get(self, path: str, params: dict | None = None) -> dict[str, Any]:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: dict | None = None) -> dict[str, Any]:
        return self.request("POST", path, json=json)

    def download(self, path: str, params: dict | None = None) -> tuple[str, dict[str, str]]:
        """Fetch a non-JSON body such as a CSV file."""
        response = asyncio.run(self._send("GET", path, params=params))
        return response.text, dict(response.headers)

    # API-specific methods
    def health(self) -> dict[str, Any]:
        return self.get("/health")

    def health_live(self) -> dict[str, Any]:
        return self.get("/health/live")

    def health_ready(self) -> dict[str, Any]:
        return self.get("/health/ready")

    def payout_csv(self, rail: str, invoice_ids: list[str] | None = None) -> tuple[str, dict[str, str]]:
        params = {"invoiceIds": ",".join(invoice_ids)} if invoice_ids else None
        return self.download(f"/invoices/export/{rail}", params=params)

    def bulk_authorize(self) -> dict[str, Any]:
        return self.post("/invoices/bulk-authorize")

    def request_project_deletion(self, project_id: str, reason: str | None = None) -> dict[str, Any]:
        return self.post(f"/projects/{project_id}/deletion-otp", json={"reason": reason})

    def confirm_project_deletion(
        self, project_id: str, otp: str, confirmation_message: str | None = None
    ) -> dict[str, Any]:
        return self.post(
            f"/projects/{project_id}/deletion-otp/verify",
            json={"otp": otp, "confirmationMessage": confirmation_message},
        )


_client: APIClient | None = None


def get_client() -> APIClient:
    """Get the global API client."""
    global _client
    if _client is None:
        _client = APIClient()
    return _client


def reset_client() -> None:
    """Reset the global API client (forces reload of config)."""
    global _client
    _client = None
