"""
Email dispatch - validates a send request, appends the open-tracking beacon,
relays the message to the mail provider and records the send event.
"""
import asyncio
import logging
import re
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm.exceptions import ValidationError
from crm.models.email_log import EmailLog
from crm.models.message import Message
from crm.schemas.email import REQUIRED_SEND_FIELDS, SendEmailRequest
from crm.services.mailersend_service import MailerSendService
from crm.services.tracking_service import tracking_service

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _as_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class EmailDispatchService:
    """Send invoice emails through the mail provider"""

    def __init__(self, provider: Optional[MailerSendService] = None):
        self.provider = provider or MailerSendService()

    def validate_payload(self, raw: Dict[str, Any]) -> SendEmailRequest:
        """
        Check the raw request body before anything leaves the process.

        Raises:
            ValidationError naming every missing field, or the malformed email
        """
        raw = raw or {}
        missing = [field for field in REQUIRED_SEND_FIELDS if not raw.get(field)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

        if not EMAIL_PATTERN.match(str(raw["to_email"])):
            raise ValidationError("Invalid email format", fields=["to_email"])

        return SendEmailRequest(**{field: str(raw[field]) for field in REQUIRED_SEND_FIELDS})

    def build_tracking_pixel(self, invoice_id: str, customer_id: str) -> str:
        return tracking_service.beacon_html(invoice_id, customer_id)

    async def dispatch(self, db: Session, request: SendEmailRequest) -> Dict[str, Optional[str]]:
        """
        Send one validated request.

        The provider call decides success. Recording the send afterwards is
        best effort and never undoes a delivered email.

        Raises:
            EmailProviderError with the provider's diagnostic text
            ConfigurationError if the provider has no API key
        """
        html_with_pixel = request.html_content + self.build_tracking_pixel(request.invoice_id, request.customer_id)

        logger.info(f"Sending invoice {request.invoice_number} to {request.to_email}")
        result = await self.provider.send_email(
            to_email=request.to_email,
            to_name=request.to_name,
            from_name=request.from_name,
            subject=request.subject,
            body_html=html_with_pixel,
        )

        await asyncio.to_thread(self.record_send_event, db, request, result.get('message_id'))
        return result

    def record_send_event(self, db: Session, request: SendEmailRequest, provider_message_id: Optional[str]) -> bool:
        """Write the send log row and the inbox notice. Failures are logged, not raised."""
        user_id = _as_uuid(request.user_id)
        if user_id is None:
            logger.error(f"Cannot record send of invoice {request.invoice_number}: invalid user id {request.user_id!r}")
            return False

        invoice_id = _as_uuid(request.invoice_id)
        try:
            db.add(EmailLog(
                user_id=user_id,
                invoice_id=invoice_id,
                invoice_number=request.invoice_number,
                customer_email=request.to_email,
                invoice_status=request.invoice_status,
                subject=request.subject,
                provider_message_id=provider_message_id,
            ))
            db.add(Message(
                user_id=user_id,
                type="email",
                subject=f"Invoice {request.invoice_number} sent",
                content=f"Invoice {request.invoice_number} was emailed to {request.to_name} <{request.to_email}>.",
                invoice_id=invoice_id,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to record email send for invoice {request.invoice_number}: {e}")
            return False

        logger.info(f"Recorded send of invoice {request.invoice_number}")
        return True


email_dispatch_service = EmailDispatchService()


def get_email_dispatch_service() -> EmailDispatchService:
    """FastAPI dependency, overridden in tests to inject a mock transport"""
    return email_dispatch_service
