"""
Resend API client for outbound email.

Handles:
- Sending transactional HTML email through https://api.resend.com/emails
- Mapping transport failures to EmailDeliveryError

SECURITY:
- The API key is read from RESEND_API_KEY and never logged
- Recipient addresses are masked in logs
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from synchub.config.settings import DEFAULT_EMAIL_FROM, get_settings
from synchub.utils.email import mask_email

logger = logging.getLogger(__name__)

RESEND_API_BASE = "https://api.resend.com"


@dataclass
class ResendConfig:
    """Resend configuration from environment."""
    api_key: str
    from_email: str = DEFAULT_EMAIL_FROM
    api_base_url: str = RESEND_API_BASE

    @classmethod
    def from_env(cls) -> Optional["ResendConfig"]:
        """Load configuration from environment variables."""
        settings = get_settings()
        if not settings.resend_api_key:
            logger.warning(
                "Resend credentials not configured",
                extra={"has_api_key": False},
            )
            return None
        return cls(api_key=settings.resend_api_key, from_email=settings.email_from)


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the provider."""
    pass


class EmailClient:
    """Client for the Resend email API."""

    def __init__(self, config: ResendConfig, http_client: Optional[httpx.Client] = None):
        """
        Initialize client with Resend configuration.

        Args:
            config: ResendConfig with credentials
            http_client: Optional preconfigured httpx client (tests pass a MockTransport)
        """
        self.config = config
        self._http_client = http_client or httpx.Client(timeout=30.0)

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """
        Send one HTML email.

        Returns:
            Provider message id, when the provider returns one

        Raises:
            EmailDeliveryError: Request failed or the provider rejected it
        """
        try:
            response = self._http_client.post(
                f"{self.config.api_base_url}/emails",
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                json={
                    "from": self.config.from_email,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(
                "Resend rejected email",
                extra={"status_code": e.response.status_code, "to": mask_email(to)},
            )
            raise EmailDeliveryError(f"Resend API error: {message}")
        except httpx.HTTPError as e:
            logger.error("Resend request failed", extra={"error": str(e), "to": mask_email(to)})
            raise EmailDeliveryError(f"Resend request failed: {e}")

        message_id = _message_id(response)
        logger.info("Sent email", extra={"message_id": message_id, "to": mask_email(to)})
        return message_id

    def close(self) -> None:
        self._http_client.close()


def _message_id(response: httpx.Response) -> Optional[str]:
    """Id from an accepted send; a 2xx without a JSON object body is still delivered."""
    try:
        payload = response.json()
    except ValueError:
        logger.warning(
            "Resend accepted email without a JSON body",
            extra={"status_code": response.status_code},
        )
        return None
    return payload.get("id") if isinstance(payload, dict) else None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return payload["message"]
    return response.reason_phrase
