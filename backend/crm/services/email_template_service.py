"""
Email Template Service - renders the invoice/estimate email sent to customers

The open-tracking beacon is not part of the template; the dispatch service
appends it so every sent message carries exactly one.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.schemas.invoice import InvoiceItem
from crm.schemas.profile import BusinessProfile
from crm.utils.money import format_amount, to_decimal

logger = logging.getLogger(__name__)


class EmailTemplateService:
    """Render invoice emails as HTML"""

    def document_label(self, invoice: Invoice) -> str:
        return "Estimate" if invoice.type == "estimate" else "Invoice"

    def build_subject(self, invoice: Invoice, profile: Optional[BusinessProfile]) -> str:
        business_name = profile.display_name if profile else "Your Business"
        return f"{self.document_label(invoice)} #{invoice.invoice_number} from {business_name}"

    def render_invoice_email(
        self,
        invoice: Invoice,
        customer: Customer,
        profile: Optional[BusinessProfile]
    ) -> Dict[str, str]:
        """
        Render the customer-facing email for an invoice

        Returns:
            {
                'subject': str,
                'body_html': str
            }
        """
        label = self.document_label(invoice)
        business_name = profile.display_name if profile else "Your Business"
        items = [InvoiceItem.model_validate(item) for item in invoice.items or []]

        logo_html = ""
        if profile and profile.logo_url:
            logo_html = (
                f'<img src="{self._escape_html(profile.logo_url)}" alt="{self._escape_html(business_name)}" '
                f'style="max-height: 100px; margin-bottom: 20px;">'
            )

        body_html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
          <div style="text-align: center; margin-bottom: 30px;">
            {logo_html}
            <h2 style="color: #333; margin: 0;">{self._escape_html(business_name)}</h2>
          </div>

          <p style="color: #555; font-size: 16px;">Dear {self._escape_html(customer.first_name)},</p>

          <p style="color: #555; font-size: 16px;">Please find your {label.lower()} details below:</p>

          <div style="background-color: #f8f9fa; border-radius: 8px; padding: 20px; margin: 20px 0;">
            <h3 style="margin-top: 0; color: #333;">{label} #{self._escape_html(invoice.invoice_number)}</h3>
            {self._format_items_table(items, invoice)}
          </div>

          <div style="margin-top: 20px; color: #666;">
            <p style="margin: 5px 0;">Due Date: {self._format_date(invoice.due_date)}</p>
            {self._optional_line("Notes: ", invoice.notes)}
          </div>

          <div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #eee; color: #666;">
            <p style="margin: 0;">Best regards,</p>
            <p style="margin: 5px 0;"><strong>{self._escape_html(business_name)}</strong></p>
            {self._optional_line("", profile.address if profile else None)}
            {self._optional_line("", profile.business_email if profile else None)}
            {self._website_line(profile.website if profile else None)}
          </div>
        </div>
        """

        logger.info(f"Rendered {label.lower()} email for {invoice.invoice_number}")
        return {
            'subject': self.build_subject(invoice, profile),
            'body_html': body_html,
        }

    def _format_items_table(self, items: List[InvoiceItem], invoice: Invoice) -> str:
        rows = ""
        for item in items:
            rows += f"""
              <tr style="border-bottom: 1px solid #dee2e6;">
                <td style="padding: 8px;">{self._escape_html(item.description)}</td>
                <td style="text-align: right; padding: 8px;">{item.quantity}</td>
                <td style="text-align: right; padding: 8px;">${format_amount(item.rate)}</td>
                <td style="text-align: right; padding: 8px;">${format_amount(item.amount)}</td>
              </tr>
            """

        tax_row = ""
        if to_decimal(invoice.tax_amount or 0) > 0:
            tax_row = f"""
              <tr>
                <td colspan="3" style="text-align: right; padding: 8px; font-weight: bold;">Tax ({self._format_rate(invoice.tax_rate)}%):</td>
                <td style="text-align: right; padding: 8px;">${format_amount(invoice.tax_amount)}</td>
              </tr>
            """

        return f"""
            <table style="width: 100%; border-collapse: collapse; margin-top: 15px;">
              <tr style="border-bottom: 1px solid #dee2e6;">
                <th style="text-align: left; padding: 8px; background-color: #f1f3f5;">Description</th>
                <th style="text-align: right; padding: 8px; background-color: #f1f3f5;">Quantity</th>
                <th style="text-align: right; padding: 8px; background-color: #f1f3f5;">Rate</th>
                <th style="text-align: right; padding: 8px; background-color: #f1f3f5;">Amount</th>
              </tr>
              {rows}
              <tr>
                <td colspan="3" style="text-align: right; padding: 8px; font-weight: bold;">Subtotal:</td>
                <td style="text-align: right; padding: 8px;">${format_amount(invoice.subtotal)}</td>
              </tr>
              {tax_row}
              <tr>
                <td colspan="3" style="text-align: right; padding: 8px; font-weight: bold;">Total:</td>
                <td style="text-align: right; padding: 8px; font-weight: bold;">${format_amount(invoice.total)}</td>
              </tr>
            </table>
        """

    def _format_rate(self, rate: Any) -> str:
        return f"{to_decimal(rate or 0).normalize():f}"

    def _format_date(self, value: Optional[date]) -> str:
        if not value:
            return 'N/A'
        return value.strftime('%m/%d/%Y')

    def _optional_line(self, prefix: str, value: Optional[str]) -> str:
        if not value:
            return ''
        return f'<p style="margin: 5px 0;">{prefix}{self._escape_html(value)}</p>'

    def _website_line(self, website: Optional[str]) -> str:
        if not website:
            return ''
        escaped = self._escape_html(website)
        return f'<p style="margin: 5px 0;"><a href="{escaped}" style="color: #1a73e8;">{escaped}</a></p>'

    def _escape_html(self, text: str) -> str:
        """Escape HTML special characters"""
        if not text:
            return ''
        return (str(text)
                .replace('&', '&amp;')
                .replace('<', '&lt;')
                .replace('>', '&gt;')
                .replace('"', '&quot;')
                .replace("'", '&#39;'))


email_template_service = EmailTemplateService()
