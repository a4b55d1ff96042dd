"""
PDF rendering for invoices.

The renderer takes a flat camelCase payload and never fails because a field
is missing: numbers that aren't numbers become 0 and a non-list item
collection becomes empty before layout starts.
"""
import io
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.units import inch
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from crm.config import settings
from crm.exceptions import PdfRenderError, ValidationError
from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.schemas.invoice import InvoiceItem
from crm.schemas.profile import BusinessProfile

logger = logging.getLogger(__name__)

PAGE_W, PAGE_H = LETTER
MARGIN = 0.75 * inch
ROW_H = 20


def _number(value: Any) -> float:
    # bool is an int subclass but never a meaningful amount
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return 0
    return value


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _money(value: Any) -> str:
    return f"${float(value):.2f}"


def _format_date(value: Any) -> str:
    if not value:
        return "N/A"
    if isinstance(value, (date, datetime)):
        return value.strftime("%m/%d/%Y")
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%m/%d/%Y")
    except ValueError:
        return "N/A"


def normalize_invoice_data(invoice_data: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a raw payload into something the layout code can draw unconditionally"""
    raw_items = invoice_data.get("items")
    if not isinstance(raw_items, (list, tuple)):
        raw_items = []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raw = {}
        items.append({
            "description": _text(raw.get("description")),
            "quantity": _number(raw.get("quantity")),
            "rate": _number(raw.get("rate")),
            "amount": _number(raw.get("amount")),
        })

    return {
        "invoiceNumber": _text(invoice_data.get("invoiceNumber")),
        "date": invoice_data.get("date"),
        "dueDate": invoice_data.get("dueDate"),
        "status": _text(invoice_data.get("status")) or "N/A",
        "items": items,
        "subtotal": _number(invoice_data.get("subtotal")),
        "taxAmount": _number(invoice_data.get("taxAmount")),
        "total": _number(invoice_data.get("total")),
        "customerName": _text(invoice_data.get("customerName")),
        "customerEmail": _text(invoice_data.get("customerEmail")),
        "customerAddress": _text(invoice_data.get("customerAddress")),
        "businessName": _text(invoice_data.get("businessName")) or "Business Name",
    }


def build_pdf_payload(invoice: Invoice, customer: Optional[Customer], profile: Optional[BusinessProfile]) -> Dict[str, Any]:
    """Flatten a stored invoice into the renderer's payload"""
    items = [InvoiceItem.model_validate(item) for item in invoice.items or []]
    return {
        "invoiceNumber": invoice.invoice_number,
        "date": invoice.created_at.isoformat() if invoice.created_at else None,
        "dueDate": invoice.due_date.isoformat() if invoice.due_date else None,
        "status": invoice.status,
        "items": [
            {
                "description": item.description,
                "quantity": item.quantity,
                "rate": float(item.rate),
                "amount": float(item.amount),
            }
            for item in items
        ],
        "subtotal": float(invoice.subtotal or 0),
        "taxAmount": float(invoice.tax_amount or 0),
        "total": float(invoice.total or 0),
        "customerName": customer.display_name if customer else "",
        "customerEmail": (customer.email or "") if customer else "",
        "customerAddress": (customer.address or "") if customer else "",
        "businessName": (profile.business_name or "") if profile else "",
    }


class PdfService:

    def render(self, invoice_data: Optional[Dict[str, Any]]) -> bytes:
        """
        Render an invoice payload to PDF bytes

        Raises:
            ValidationError if no payload was given
            PdfRenderError if layout fails
        """
        if not invoice_data:
            raise ValidationError("Invoice data is required", fields=["invoiceData"])

        data = normalize_invoice_data(invoice_data)
        buffer = io.BytesIO()
        try:
            pdf = canvas.Canvas(buffer, pagesize=LETTER, pageCompression=0)
            pdf.setTitle(f"Invoice {data['invoiceNumber']}")
            y = self._draw_header(pdf, data)
            y = self._draw_parties(pdf, data, y)
            y = self._draw_items(pdf, data["items"], y)
            self._draw_totals(pdf, data, y)
            pdf.showPage()
            pdf.save()
        except Exception as e:
            logger.error(f"PDF generation error for invoice {data['invoiceNumber']}: {e}")
            raise PdfRenderError(str(e))

        content = buffer.getvalue()
        logger.info(f"Rendered PDF for invoice {data['invoiceNumber']} ({len(content)} bytes)")
        return content

    def ensure_plausible_pdf(self, content: bytes) -> bytes:
        """A render below the size floor is indistinguishable from a broken one"""
        if len(content) < settings.pdf_min_bytes:
            raise PdfRenderError("Generated PDF is too small")
        return content

    def render_invoice(self, invoice: Invoice, customer: Optional[Customer], profile: Optional[BusinessProfile]) -> bytes:
        return self.ensure_plausible_pdf(self.render(build_pdf_payload(invoice, customer, profile)))

    def _draw_header(self, pdf, data: Dict[str, Any]) -> float:
        y = PAGE_H - MARGIN
        pdf.setFont("Helvetica-Bold", 20)
        pdf.drawString(MARGIN, y, data["businessName"])
        pdf.drawRightString(PAGE_W - MARGIN, y, f"Invoice #{data['invoiceNumber']}")
        return y - 40

    def _draw_parties(self, pdf, data: Dict[str, Any], y: float) -> float:
        pdf.setFont("Helvetica-Bold", 14)
        pdf.drawString(MARGIN, y, "Bill To:")
        pdf.drawRightString(PAGE_W - MARGIN, y, "Invoice Details:")

        left = [data["customerName"], data["customerEmail"]] + data["customerAddress"].splitlines()
        right = [
            f"Date: {_format_date(data['date'])}",
            f"Due Date: {_format_date(data['dueDate'])}",
            f"Status: {data['status']}",
        ]

        pdf.setFont("Helvetica", 11)
        line_y = y - 18
        for i in range(max(len(left), len(right))):
            if i < len(left) and left[i]:
                pdf.drawString(MARGIN, line_y, left[i][:80])
            if i < len(right):
                pdf.drawRightString(PAGE_W - MARGIN, line_y, right[i])
            line_y -= 15
        return line_y - 20

    def _draw_items(self, pdf, items: List[Dict[str, Any]], y: float) -> float:
        width = PAGE_W - 2 * MARGIN
        qty_right = MARGIN + width * 0.65
        rate_right = MARGIN + width * 0.82
        amount_right = PAGE_W - MARGIN

        def header_row(top):
            pdf.setFillColor(colors.HexColor("#f8f9fa"))
            pdf.rect(MARGIN, top - ROW_H, width, ROW_H, stroke=0, fill=1)
            pdf.setFillColor(colors.black)
            pdf.setFont("Helvetica-Bold", 11)
            text_y = top - ROW_H + 6
            pdf.drawString(MARGIN + 4, text_y, "Description")
            pdf.drawRightString(qty_right - 4, text_y, "Quantity")
            pdf.drawRightString(rate_right - 4, text_y, "Rate")
            pdf.drawRightString(amount_right - 4, text_y, "Amount")
            return top - ROW_H

        y = header_row(y)
        pdf.setFont("Helvetica", 10)
        for item in items:
            if y - ROW_H < MARGIN:
                pdf.showPage()
                y = header_row(PAGE_H - MARGIN)
                pdf.setFont("Helvetica", 10)
            text_y = y - ROW_H + 6
            pdf.drawString(MARGIN + 4, text_y, self._fit(item["description"], "Helvetica", 10, width * 0.55))
            pdf.drawRightString(qty_right - 4, text_y, str(item["quantity"]))
            pdf.drawRightString(rate_right - 4, text_y, _money(item["rate"]))
            pdf.drawRightString(amount_right - 4, text_y, _money(item["amount"]))
            pdf.setStrokeColor(colors.HexColor("#dee2e6"))
            pdf.line(MARGIN, y - ROW_H, PAGE_W - MARGIN, y - ROW_H)
            y -= ROW_H
        return y - 20

    def _draw_totals(self, pdf, data: Dict[str, Any], y: float) -> None:
        if y < MARGIN + 60:
            pdf.showPage()
            y = PAGE_H - MARGIN
        label_x = PAGE_W - MARGIN - 120
        rows = [
            ("Subtotal:", data["subtotal"], "Helvetica", 11),
            ("Tax:", data["taxAmount"], "Helvetica", 11),
            ("Total:", data["total"], "Helvetica-Bold", 14),
        ]
        for label, value, font, size in rows:
            pdf.setFont(font, size)
            pdf.drawRightString(label_x, y, label)
            pdf.drawRightString(PAGE_W - MARGIN, y, _money(value))
            y -= size + 8

    def _fit(self, text: str, font: str, size: int, max_width: float) -> str:
        if stringWidth(text, font, size) <= max_width:
            return text
        while text and stringWidth(text + "...", font, size) > max_width:
            text = text[:-1]
        return text + "..."


pdf_service = PdfService()
