import logging
from typing import List, Optional

import httpx
from fastapi import HTTPException

from app.config import settings
from app.core.http_client import get_http_client
from app.modules.mail import templates

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(Exception):
    pass


def delivery_error_status(message: str) -> int:
    """Map a provider error message to the HTTP status returned to the caller."""
    lowered = message.lower()
    if "invalid" in lowered:
        return 400
    if "rate limit" in lowered:
        return 429
    if "domain" in lowered:
        return 422
    return 500


class EmailSender:
    def __init__(self, api_key: Optional[str], sender: str, http_client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.sender = sender
        self._http = http_client or get_http_client()

    def send(self, to: List[str], subject: str, html_body: str) -> Optional[str]:
        """Send one email and return the provider message id."""
        if not self.api_key:
            raise EmailDeliveryError("RESEND_API_KEY not configured")
        try:
            response = self._http.post(
                RESEND_API_URL,
                json={"from": self.sender, "to": to, "subject": subject, "html": html_body},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email provider unreachable: {e}")
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            raise EmailDeliveryError(f"Email provider error {response.status_code}: unreadable response")
        if response.status_code >= 400:
            raise EmailDeliveryError(payload.get("message") or f"Email provider error {response.status_code}")
        return payload.get("id")

    def send_password_reset(self, email: str, reset_link: str, opt_id: Optional[str] = None) -> Optional[str]:
        return self.send([email], templates.PASSWORD_RESET_SUBJECT, templates.render_password_reset(reset_link, opt_id))

    def send_email_change_notice(self, old_email: str, new_email: str) -> Optional[str]:
        return self.send([old_email], templates.EMAIL_CHANGE_SUBJECT, templates.render_email_change(old_email, new_email))


def raise_for_delivery_error(e: EmailDeliveryError):
    logger.error(f"Email delivery failed: {e}")
    status = delivery_error_status(str(e))
    detail = {
        400: "Invalid email address",
        429: "Too many requests. Please try again later.",
        422: "Email domain not verified",
    }.get(status, "Failed to send email")
    raise HTTPException(status_code=status, detail=detail)


def get_email_sender() -> EmailSender:
    return EmailSender(settings.resend_api_key, settings.email_from)
