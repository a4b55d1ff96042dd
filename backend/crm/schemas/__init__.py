from crm.schemas.invoice import (
    InvoiceItem,
    InvoiceItemInput,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceResponse,
    InvoiceListResponse,
    InvoiceStatus,
    InvoiceType,
    InvoiceTotals,
    TaxConfig,
)
from crm.schemas.customer import CustomerCreate, CustomerUpdate, CustomerResponse
from crm.schemas.email import SendEmailRequest, SendEmailResponse
from crm.schemas.profile import BusinessProfile, InvoiceSettings, AppContext

__all__ = [
    "InvoiceItem",
    "InvoiceItemInput",
    "InvoiceCreate",
    "InvoiceUpdate",
    "InvoiceResponse",
    "InvoiceListResponse",
    "InvoiceStatus",
    "InvoiceType",
    "InvoiceTotals",
    "TaxConfig",
    "CustomerCreate",
    "CustomerUpdate",
    "CustomerResponse",
    "SendEmailRequest",
    "SendEmailResponse",
    "BusinessProfile",
    "InvoiceSettings",
    "AppContext",
]
