"""
Invoice lifecycle: create, edit, mark paid, delete and send.

Totals are recomputed from the items on every write. Writes are attempted
once; a failure rolls the session back and surfaces a generic message so the
caller can resubmit the same form.
"""
import asyncio
import logging
import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from crm.config import settings
from crm.exceptions import InvalidTransitionError, NotFoundError, PersistenceError, ValidationError
from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.schemas.invoice import (
    InvoiceCreate,
    InvoiceItem,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatus,
    InvoiceTotals,
    InvoiceType,
    InvoiceUpdate,
    SendInvoiceResponse,
    TaxConfig,
)
from crm.schemas.profile import BusinessProfile
from crm.services.email_dispatch_service import EmailDispatchService
from crm.services.email_template_service import email_template_service
from crm.services.profile_service import profile_service
from crm.utils.line_items import build_items
from crm.utils.money import MAX_AMOUNT, format_amount
from crm.utils.totals import compute_totals, tax_config_for_rate

logger = logging.getLogger(__name__)


class InvoiceNumberGenerator:
    """INV-<epoch ms>, bumped past the last issued value so one process never repeats"""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> str:
        with self._lock:
            self._last = max(int(time.time() * 1000), self._last + 1)
            return f"INV-{self._last}"


def can_mark_paid(invoice: Invoice) -> bool:
    return invoice.status != InvoiceStatus.PAID.value


def to_response(invoice: Invoice) -> InvoiceResponse:
    response = InvoiceResponse.model_validate(invoice)
    response.can_mark_paid = can_mark_paid(invoice)
    return response


class InvoiceService:

    def __init__(self):
        self.numbers = InvoiceNumberGenerator()
        self._deleting = set()
        self._deleting_lock = threading.Lock()

    # Reads

    def get_invoice(self, db: Session, user_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.user_id == user_id,
        ).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def list_invoices(
        self,
        db: Session,
        user_id: UUID,
        status: Optional[InvoiceStatus] = None,
        invoice_type: Optional[InvoiceType] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[InvoiceListResponse]:
        query = db.query(Invoice).options(joinedload(Invoice.customer)).filter(Invoice.user_id == user_id)
        if status:
            query = query.filter(Invoice.status == status.value)
        if invoice_type:
            query = query.filter(Invoice.type == invoice_type.value)

        invoices = query.order_by(Invoice.created_at.desc()).offset(skip).limit(limit).all()
        return [
            InvoiceListResponse(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_id=invoice.customer_id,
                customer_name=invoice.customer.display_name if invoice.customer else None,
                type=invoice.type,
                status=invoice.status,
                total=invoice.total,
                due_date=invoice.due_date,
                created_at=invoice.created_at,
            )
            for invoice in invoices
        ]

    # Writes

    def create_invoice(self, db: Session, user_id: UUID, data: InvoiceCreate, tax_config: Optional[TaxConfig] = None) -> Invoice:
        """
        Create an invoice from the submitted form.

        tax_config defaults to the user's invoice settings. The rate is stored
        on the invoice only when tax is enabled and is not editable afterwards.
        """
        self._require_customer(db, user_id, data.customer_id)

        items = build_items(data.items)
        if not any(item.quantity > 0 for item in items):
            raise ValidationError("At least one item with a quantity is required", fields=["items"])

        if tax_config is None:
            tax_config = profile_service.get_invoice_settings(db, user_id).tax
        totals = self._checked_totals(items, tax_config)

        status = InvoiceStatus.ESTIMATE if data.type == InvoiceType.ESTIMATE else InvoiceStatus.DRAFT
        invoice = Invoice(
            user_id=user_id,
            customer_id=data.customer_id,
            invoice_number=self.numbers.next(),
            type=data.type.value,
            status=status.value,
            items=self._dump_items(items),
            tax_rate=tax_config.rate if tax_config.enabled else None,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total=totals.total,
            due_date=data.due_date or (date.today() + timedelta(days=settings.invoice_due_days)),
            notes=data.notes,
        )

        self._commit(db, invoice, "create invoice")
        logger.info(f"Created invoice {invoice.invoice_number} ({invoice.status}) total={invoice.total}")
        return invoice

    def update_invoice(self, db: Session, user_id: UUID, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """Apply an edit and recompute totals against the invoice's stored tax rate"""
        invoice = self.get_invoice(db, user_id, invoice_id)
        changes = data.model_dump(exclude_unset=True)

        if data.items is not None:
            items = build_items(data.items)
        else:
            items = [InvoiceItem.model_validate(item) for item in invoice.items or []]
        totals = self._checked_totals(items, tax_config_for_rate(invoice.tax_rate))

        if changes.get("customer_id") is not None:
            self._require_customer(db, user_id, data.customer_id)
            invoice.customer_id = data.customer_id

        if changes.get("status") is not None:
            if data.status == InvoiceStatus.PAID and invoice.paid_date is None:
                invoice.paid_date = datetime.now(timezone.utc)
            invoice.status = data.status.value
        if "due_date" in changes:
            invoice.due_date = data.due_date
        if "notes" in changes:
            invoice.notes = data.notes

        invoice.items = self._dump_items(items)
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.total = totals.total

        self._commit(db, invoice, "update invoice")
        logger.info(f"Updated invoice {invoice.invoice_number}")
        return invoice

    def mark_paid(self, db: Session, user_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = self.get_invoice(db, user_id, invoice_id)
        if not can_mark_paid(invoice):
            raise InvalidTransitionError("Invoice is already paid")

        invoice.status = InvoiceStatus.PAID.value
        invoice.paid_date = datetime.now(timezone.utc)
        self._commit(db, invoice, "update invoice")
        logger.info(f"Marked invoice {invoice.invoice_number} as paid")
        return invoice

    def delete_invoice(self, db: Session, user_id: UUID, invoice_id: UUID) -> None:
        """Hard delete. A second request for an invoice already being deleted is rejected."""
        with self._deleting_lock:
            if invoice_id in self._deleting:
                raise InvalidTransitionError("Invoice is already being deleted")
            self._deleting.add(invoice_id)

        try:
            invoice = self.get_invoice(db, user_id, invoice_id)
            try:
                db.delete(invoice)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to delete invoice {invoice_id}: {e}")
                raise PersistenceError("Failed to delete invoice. Please try again.")
            logger.info(f"Deleted invoice {invoice.invoice_number}")
        finally:
            with self._deleting_lock:
                self._deleting.discard(invoice_id)

    def is_deleting(self, invoice_id: UUID) -> bool:
        with self._deleting_lock:
            return invoice_id in self._deleting

    # Send

    def build_send_payload(self, invoice: Invoice, profile: Optional[BusinessProfile], user_id: UUID) -> dict:
        """Render the email for the invoice's persisted snapshot as a dispatch request body"""
        customer = invoice.customer
        email = email_template_service.render_invoice_email(invoice, customer, profile)

        return {
            "from_name": profile.display_name if profile else "Your Business",
            "to_email": customer.email,
            "to_name": customer.display_name,
            "subject": email["subject"],
            "html_content": email["body_html"],
            "invoice_id": str(invoice.id),
            "customer_id": str(customer.id),
            "user_id": str(user_id),
            "invoice_number": invoice.invoice_number,
            "invoice_status": invoice.status,
        }

    async def send_invoice(self, db: Session, user_id: UUID, invoice_id: UUID, dispatcher: EmailDispatchService) -> SendInvoiceResponse:
        """
        Email the invoice to its customer.

        Database work runs in worker threads and retry backoff is awaited, so
        the event loop is never blocked.
        """
        profile = await profile_service.get_profile_async(db, user_id)
        invoice = await asyncio.to_thread(self._get_for_send, db, user_id, invoice_id)
        payload = self.build_send_payload(invoice, profile, user_id)
        label = email_template_service.document_label(invoice)

        request = dispatcher.validate_payload(payload)
        await dispatcher.dispatch(db, request)
        return SendInvoiceResponse(success=True, message=f"{label} sent successfully to {request.to_email}")

    def _get_for_send(self, db: Session, user_id: UUID, invoice_id: UUID) -> Invoice:
        # Customer loaded eagerly so rendering never touches the database
        invoice = db.query(Invoice).options(joinedload(Invoice.customer)).filter(
            Invoice.id == invoice_id,
            Invoice.user_id == user_id,
        ).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    # Helpers

    def _require_customer(self, db: Session, user_id: UUID, customer_id: UUID) -> Customer:
        customer = db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.user_id == user_id,
        ).first()
        if not customer:
            raise ValidationError("Please select a customer", fields=["customer_id"])
        return customer

    def _checked_totals(self, items: List[InvoiceItem], tax_config: TaxConfig) -> InvoiceTotals:
        """Totals for the items, rejected before any write if the money columns can't hold them"""
        totals = compute_totals(items, tax_config)
        if totals.total > MAX_AMOUNT:
            raise ValidationError(f"Invoice total cannot exceed {format_amount(MAX_AMOUNT)}", fields=["items"])
        return totals

    def _dump_items(self, items: List[InvoiceItem]) -> list:
        return [item.model_dump(mode="json") for item in items]

    def _commit(self, db: Session, invoice: Invoice, action: str) -> None:
        try:
            db.add(invoice)
            db.commit()
            db.refresh(invoice)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}. Please try again.")


invoice_service = InvoiceService()
