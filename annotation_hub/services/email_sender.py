"""
Outbound email through the Brevo transactional email API.
"""
import httpx

from annotation_hub.core.config import settings
from annotation_hub.core.correlation import get_correlation_headers
from annotation_hub.log.logging import logger


class EmailDeliveryError(Exception):
    """Raised when the email API refuses or fails to accept a message."""


class EmailSender:
    """
    Sends a single email. Raises EmailDeliveryError on failure; callers that
    must not fail (the notification dispatcher) catch it.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        enabled: bool | None = None,
        timeout: float | None = None,
    ):
        self.api_url = api_url or settings.brevo_api_url
        self.api_key = api_key if api_key is not None else settings.brevo_api_key
        self.enabled = settings.email_enabled if enabled is None else enabled
        self.timeout = timeout or settings.email_timeout_seconds

    def _build_payload(
        self, to_email: str, to_name: str | None, subject: str, html: str, text: str | None
    ) -> dict:
        payload = {
            "sender": {"name": settings.email_sender_name, "email": settings.email_sender_address},
            "to": [{"email": to_email, "name": to_name or to_email}],
            "subject": subject,
            "htmlContent": html,
        }
        if text:
            payload["textContent"] = text
        return payload

    async def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        text: str | None = None,
        to_name: str | None = None,
    ) -> str | None:
        """
        Send one email.

        Returns:
            The provider message id, or None when email is disabled.
        """
        if not self.enabled:
            logger.info(
                "Email disabled, skipping send",
                event_type="email_skipped",
                to=to_email,
                subject=subject,
            )
            return None

        if not self.api_key:
            raise EmailDeliveryError("Email API key is not configured")

        headers = {
            "api-key": self.api_key,
            "accept": "application/json",
            "content-type": "application/json",
            **get_correlation_headers(),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    json=self._build_payload(to_email, to_name, subject, html, text),
                    headers=headers,
                )
        except httpx.TimeoutException:
            raise EmailDeliveryError("Email API request timed out")
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email API request failed: {e}")

        if response.status_code >= 300:
            raise EmailDeliveryError(
                f"Email API returned {response.status_code}: {response.text[:200]}"
            )

        message_id = response.json().get("messageId") if response.content else None

        logger.info(
            "Email sent",
            event_type="email_sent",
            to=to_email,
            subject=subject,
            message_id=message_id,
        )
        return message_id


email_sender = EmailSender()
