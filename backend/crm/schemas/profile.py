from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from crm.schemas.invoice import TaxConfig


class BusinessType(str, Enum):
    PRODUCTS = "products"
    SERVICES = "services"
    BOTH = "both"


class BusinessProfile(BaseModel):
    """Concrete business profile value; absent fields are explicit Nones"""
    id: UUID
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_type: Optional[BusinessType] = BusinessType.BOTH
    address: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def display_name(self) -> str:
        return self.business_name or "Your Business"


class BusinessProfileUpdate(BaseModel):
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_type: Optional[BusinessType] = None
    address: Optional[str] = None
    website: Optional[str] = None


class InvoiceSettings(BaseModel):
    tax: TaxConfig
    currency: str = "USD"
    terms: str = ""


class AppContext(BaseModel):
    """Session-scoped context handed to the client at sign-in"""
    user_id: UUID
    business_name: str
    profile: Optional[BusinessProfile] = None
    invoice_settings: InvoiceSettings


class DashboardStats(BaseModel):
    total_customers: int
    total_invoices: int
    revenue: Decimal
    growth: float = Field(..., description="Month-over-month change of paid totals, in percent")
