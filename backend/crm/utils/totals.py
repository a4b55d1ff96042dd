"""
Invoice totals. Pure functions, recomputed from the current items on every
create/update; stored totals are never reused.
"""
from decimal import Decimal
from typing import Iterable, Optional

from crm.schemas.invoice import InvoiceItem, InvoiceTotals, TaxConfig
from crm.utils.money import ZERO, quantize_money, to_decimal


def compute_subtotal(items: Iterable[InvoiceItem]) -> Decimal:
    return sum((to_decimal(item.amount) for item in items), ZERO)


def compute_tax(subtotal: Decimal, tax_config: Optional[TaxConfig]) -> Decimal:
    if not tax_config or not tax_config.enabled:
        return ZERO
    return quantize_money(to_decimal(subtotal) * to_decimal(tax_config.rate) / Decimal(100))


def compute_total(subtotal: Decimal, tax: Decimal) -> Decimal:
    return to_decimal(subtotal) + to_decimal(tax)


def compute_totals(items: Iterable[InvoiceItem], tax_config: Optional[TaxConfig]) -> InvoiceTotals:
    subtotal = compute_subtotal(items)
    tax = compute_tax(subtotal, tax_config)
    return InvoiceTotals(subtotal=subtotal, tax_amount=tax, total=compute_total(subtotal, tax))


def tax_config_for_rate(tax_rate: Optional[Decimal]) -> TaxConfig:
    """Tax configuration implied by an invoice's stored rate (None means no tax)"""
    if tax_rate is None:
        return TaxConfig(enabled=False)
    return TaxConfig(enabled=True, rate=to_decimal(tax_rate))
