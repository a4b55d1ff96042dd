import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from crm.auth import get_current_user_id
from crm.database import get_db
from crm.exceptions import CRMError
from crm.routers.errors import to_http_exception
from crm.schemas.invoice import (
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStats,
    InvoiceStatus,
    InvoiceType,
    InvoiceUpdate,
    SendInvoiceResponse,
)
from crm.services.email_dispatch_service import EmailDispatchService, get_email_dispatch_service
from crm.services.invoice_service import invoice_service, to_response
from crm.services.pdf_service import pdf_service
from crm.services.profile_service import profile_service
from crm.services.stats_service import stats_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


@router.get("", response_model=List[InvoiceListResponse])
def list_invoices(
    status: Optional[InvoiceStatus] = Query(None),
    type: Optional[InvoiceType] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List invoices, newest first, optionally filtered by status or type"""
    return invoice_service.list_invoices(db, user_id, status=status, invoice_type=type, skip=skip, limit=limit)


@router.get("/stats", response_model=InvoiceStats)
def get_invoice_stats(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return stats_service.invoice_stats(db, user_id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return to_response(invoice_service.get_invoice(db, user_id, invoice_id))
    except CRMError as e:
        raise to_http_exception(e)


@router.post("", response_model=InvoiceResponse, status_code=201)
def create_invoice(
    invoice: InvoiceCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Create an invoice or estimate.

    Totals are computed from the submitted items and the account's tax settings.
    """
    try:
        return to_response(invoice_service.create_invoice(db, user_id, invoice))
    except CRMError as e:
        raise to_http_exception(e)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: UUID,
    update: InvoiceUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Edit an invoice. The stored tax rate is reapplied to the edited items."""
    try:
        return to_response(invoice_service.update_invoice(db, user_id, invoice_id, update))
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceResponse)
def mark_invoice_paid(invoice_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return to_response(invoice_service.mark_paid(db, user_id, invoice_id))
    except CRMError as e:
        raise to_http_exception(e)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(
    invoice_id: UUID,
    confirm: bool = Query(False, description="Must be true; deletion cannot be undone"),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Deletion must be confirmed with confirm=true")
    try:
        invoice_service.delete_invoice(db, user_id, invoice_id)
    except CRMError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@router.post("/{invoice_id}/send", response_model=SendInvoiceResponse)
async def send_invoice(
    invoice_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    dispatcher: EmailDispatchService = Depends(get_email_dispatch_service)
):
    """Email the invoice's current snapshot to its customer"""
    try:
        return await invoice_service.send_invoice(db, user_id, invoice_id, dispatcher)
    except CRMError as e:
        logger.error(f"Failed to send invoice {invoice_id}: {e.message}")
        raise to_http_exception(e)


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(invoice_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        invoice = invoice_service.get_invoice(db, user_id, invoice_id)
        profile = profile_service.get_profile(db, user_id)
        content = pdf_service.render_invoice(invoice, invoice.customer, profile)
    except CRMError as e:
        raise to_http_exception(e)

    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="invoice-{invoice.invoice_number}.pdf"'}
    )
