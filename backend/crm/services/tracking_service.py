"""
Email open tracking.

Each beacon fetch appends one EmailOpen row. Nothing is deduplicated, so
open counts are fetch counts: an upper bound on human opens.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlencode

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm.config import settings
from crm.models.email_open import EmailOpen
from crm.models.invoice import Invoice

logger = logging.getLogger(__name__)

# 1x1 transparent GIF, 43 bytes
TRACKING_PIXEL = bytes([
    0x47, 0x49, 0x46, 0x38, 0x39, 0x61, 0x01, 0x00, 0x01, 0x00, 0x80, 0x00,
    0x00, 0xFF, 0xFF, 0xFF, 0x00, 0x00, 0x00, 0x21, 0xF9, 0x04, 0x01, 0x00,
    0x00, 0x00, 0x00, 0x2C, 0x00, 0x00, 0x00, 0x00, 0x01, 0x00, 0x01, 0x00,
    0x00, 0x02, 0x02, 0x44, 0x01, 0x00, 0x3B,
])

PIXEL_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class TrackingService:
    """Beacon URLs, open recording and open counts"""

    def tracking_url(self, invoice_id, customer_id, cache_buster: Optional[str] = None) -> str:
        params = {"invoice_id": str(invoice_id), "customer_id": str(customer_id)}
        if cache_buster is not None:
            params["t"] = cache_buster
        return f"{settings.public_base_url.rstrip('/')}/track-email-open?{urlencode(params)}"

    def beacon_html(self, invoice_id, customer_id) -> str:
        """Invisible, zero-size, cache-busted image tag pointing at the beacon handler"""
        cache_buster = str(int(datetime.now(timezone.utc).timestamp() * 1000))
        url = self.tracking_url(invoice_id, customer_id, cache_buster).replace("&", "&amp;")
        return (
            f'<img src="{url}" alt="" width="0" height="0" '
            f'style="display:none; visibility:hidden; width:0; height:0; border:0;">'
        )

    def record_open(
        self,
        db: Session,
        invoice_id: Optional[str],
        customer_id: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Append one open event. Never raises: the caller always serves the pixel.

        Returns:
            True when a row was written
        """
        parsed_invoice_id = _parse_uuid(invoice_id)
        parsed_customer_id = _parse_uuid(customer_id)
        if not parsed_invoice_id or not parsed_customer_id:
            logger.info(f"Skipping open event with missing or invalid ids: invoice_id={invoice_id!r}, customer_id={customer_id!r}")
            return False

        try:
            db.add(EmailOpen(
                invoice_id=parsed_invoice_id,
                customer_id=parsed_customer_id,
                ip_address=ip_address,
                user_agent=user_agent,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error tracking email open for invoice {invoice_id}: {e}")
            return False

        logger.info(f"Recorded email open for invoice {invoice_id}")
        return True

    def open_counts(self, db: Session, invoice_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
        """Number of beacon fetches per invoice"""
        ids = list({i for i in invoice_ids if i})
        if not ids:
            return {}
        rows = (
            db.query(EmailOpen.invoice_id, func.count(EmailOpen.id))
            .filter(EmailOpen.invoice_id.in_(ids))
            .group_by(EmailOpen.invoice_id)
            .all()
        )
        return {invoice_id: count for invoice_id, count in rows}

    def list_opens(self, db: Session, invoice_id: uuid.UUID) -> List[EmailOpen]:
        return (
            db.query(EmailOpen)
            .filter(EmailOpen.invoice_id == invoice_id)
            .order_by(EmailOpen.opened_at.desc())
            .all()
        )

    # Operational tooling for /debug-email-tracking

    def check_tracking(self, db: Session, invoice_id: Optional[str]) -> Dict:
        parsed = _parse_uuid(invoice_id)
        invoice = db.query(Invoice).filter(Invoice.id == parsed).first() if parsed else None
        opens = self.list_opens(db, parsed) if parsed else []
        return {
            "invoice_exists": invoice is not None,
            "total_opens": len(opens),
            "opens_details": opens,
            "tracking_url": self.tracking_url(invoice_id or "", invoice.customer_id if invoice else ""),
            "timestamp": datetime.now(timezone.utc),
        }

    def test_tracking(self, db: Session, invoice_id: Optional[str], customer_id: Optional[str]) -> Dict:
        """Simulate an open so the whole recording path can be verified"""
        recorded = self.record_open(db, invoice_id, customer_id, ip_address="127.0.0.1", user_agent="Debug Test")
        return {
            "success": recorded,
            "message": "Test open recorded" if recorded else "Test open could not be recorded",
            "details": {"invoice_id": invoice_id, "customer_id": customer_id},
            "timestamp": datetime.now(timezone.utc),
        }

    def repair_storage(self, db: Session) -> Dict:
        """Make sure the email_opens table exists"""
        EmailOpen.__table__.create(bind=db.get_bind(), checkfirst=True)
        logger.info("Verified email_opens table")
        return {
            "success": True,
            "message": "Email tracking storage has been verified",
            "details": {"table": EmailOpen.__tablename__},
            "timestamp": datetime.now(timezone.utc),
        }


tracking_service = TrackingService()
