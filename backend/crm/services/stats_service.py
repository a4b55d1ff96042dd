"""
Invoice page and dashboard figures, computed from the user's invoices at read time
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.schemas.invoice import InvoiceStats, InvoiceStatus
from crm.schemas.profile import DashboardStats
from crm.utils.money import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 7
PAID = InvoiceStatus.PAID.value


def _sum_totals(invoices: Iterable[Invoice]) -> Decimal:
    return quantize_money(sum((to_decimal(inv.total or 0) for inv in invoices), ZERO))


def _same_month(value: Optional[datetime], year: int, month: int) -> bool:
    return value is not None and value.year == year and value.month == month


def _previous_month(today: date):
    first = today.replace(day=1)
    last_month = first - timedelta(days=1)
    return last_month.year, last_month.month


class StatsService:

    def invoice_stats(self, db: Session, user_id: UUID, today: Optional[date] = None) -> InvoiceStats:
        today = today or datetime.now(timezone.utc).date()
        invoices = db.query(Invoice).filter(Invoice.user_id == user_id).all()
        unpaid = [inv for inv in invoices if inv.status != PAID]

        return InvoiceStats(
            total_outstanding=_sum_totals(unpaid),
            overdue=_sum_totals(inv for inv in unpaid if inv.due_date and inv.due_date < today),
            due_soon=_sum_totals(
                inv for inv in unpaid
                if inv.due_date and today < inv.due_date <= today + timedelta(days=DUE_SOON_DAYS)
            ),
            paid_this_month=_sum_totals(
                inv for inv in invoices
                if inv.status == PAID and _same_month(inv.created_at, today.year, today.month)
            ),
        )

    def dashboard_stats(self, db: Session, user_id: UUID, today: Optional[date] = None) -> DashboardStats:
        today = today or datetime.now(timezone.utc).date()
        invoices = db.query(Invoice).filter(Invoice.user_id == user_id).all()
        paid = [inv for inv in invoices if inv.status == PAID]

        this_month = _sum_totals(inv for inv in paid if _same_month(inv.created_at, today.year, today.month))
        last_year, last_month = _previous_month(today)
        previous = _sum_totals(inv for inv in paid if _same_month(inv.created_at, last_year, last_month))
        growth = float((this_month - previous) / previous * 100) if previous else 0.0

        return DashboardStats(
            total_customers=db.query(Customer).filter(Customer.user_id == user_id).count(),
            total_invoices=len(invoices),
            revenue=_sum_totals(paid),
            growth=growth,
        )


stats_service = StatsService()
