from pydantic import BaseModel, Field
from typing import Optional, List, Union
from enum import Enum
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


class InvoiceStatus(str, Enum):
    """Lifecycle states of an invoice"""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    VOID = "void"
    ESTIMATE = "estimate"


class InvoiceType(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"
    ESTIMATE = "estimate"


class InvoiceItem(BaseModel):
    """One billable row. amount is always quantity x rate."""
    id: str
    description: str = ""
    quantity: int = Field(1, ge=0)
    rate: Decimal = Field(Decimal("0.00"), ge=0)
    amount: Decimal = Field(Decimal("0.00"), ge=0)


class InvoiceItemInput(BaseModel):
    """Item as submitted by a client. amount is never accepted from the client."""
    id: Optional[str] = None
    description: str = ""
    quantity: Union[int, str] = 1
    rate: Union[Decimal, str] = "0"


class TaxConfig(BaseModel):
    enabled: bool = False
    rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    label: str = "Tax"


class InvoiceTotals(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class InvoiceCreate(BaseModel):
    customer_id: UUID
    type: InvoiceType = InvoiceType.SERVICE
    items: List[InvoiceItemInput]
    due_date: Optional[date] = None
    notes: str = ""


class InvoiceUpdate(BaseModel):
    """Editable fields. tax_rate is not editable and has no field here."""
    status: Optional[InvoiceStatus] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemInput]] = None
    customer_id: Optional[UUID] = None


class InvoiceResponse(BaseModel):
    id: UUID
    customer_id: UUID
    invoice_number: str
    type: InvoiceType
    status: InvoiceStatus
    items: List[InvoiceItem] = []
    tax_rate: Optional[Decimal] = None
    tax_amount: Decimal
    subtotal: Decimal
    total: Decimal
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    can_mark_paid: bool = False

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: UUID
    customer_name: Optional[str] = None
    type: InvoiceType
    status: InvoiceStatus
    total: Decimal
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceStats(BaseModel):
    total_outstanding: Decimal
    overdue: Decimal
    due_soon: Decimal
    paid_this_month: Decimal


class SendInvoiceResponse(BaseModel):
    success: bool
    message: str
