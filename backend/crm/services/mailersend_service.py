"""
MailerSend API Service for sending emails

Relays rendered HTML messages to the transactional-email provider over an
authenticated HTTP call.
"""
import logging
from typing import Dict, Optional

import httpx

from crm.config import settings
from crm.exceptions import ConfigurationError, EmailProviderError

logger = logging.getLogger(__name__)


class MailerSendService:
    """Service for sending emails via the MailerSend HTTP API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender_email: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.mailersend_api_key
        self.api_url = (api_url or settings.mailersend_api_url).rstrip('/')
        self.sender_email = sender_email or settings.verified_sender_email
        self.timeout = settings.email_timeout_seconds
        # Tests pass an httpx.MockTransport here
        self._transport = transport

        if not self.api_key:
            logger.info("MAILERSEND_API_KEY not set - email sending will be disabled until it is configured")

    async def send_email(
        self,
        to_email: str,
        to_name: str,
        from_name: str,
        subject: str,
        body_html: str,
    ) -> Dict[str, Optional[str]]:
        """
        Send one email

        Returns:
            dict with 'message_id' (may be None) and 'success'

        Raises:
            ConfigurationError if no API key is configured
            EmailProviderError if the provider rejects the message or can't be reached
        """
        if not self.api_key:
            raise ConfigurationError("MAILERSEND_API_KEY is not configured")

        payload = {
            "from": {"email": self.sender_email, "name": from_name},
            "to": [{"email": to_email, "name": to_name}],
            "subject": subject,
            "html": body_html,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.api_url}/email", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"MailerSend request failed: {e}")
            raise EmailProviderError(f"Failed to send email: {e}")

        if response.status_code >= 400:
            error_text = response.text
            logger.error(f"MailerSend API error ({response.status_code}): {error_text}")
            raise EmailProviderError(f"Failed to send email: {error_text}")

        message_id = response.headers.get("X-Message-Id")
        logger.info(f"Email sent successfully: message_id={message_id}")

        return {
            'message_id': message_id,
            'success': True,
        }
