"""
Email schemas for the dispatch endpoint, beacon handler and debug tooling
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel
from uuid import UUID

# Every field of the dispatch contract is mandatory
REQUIRED_SEND_FIELDS = [
    "from_name", "to_email", "to_name", "subject", "html_content",
    "invoice_id", "customer_id", "user_id", "invoice_number", "invoice_status",
]


class SendEmailRequest(BaseModel):
    """Validated dispatch request. Built only after the raw payload passed field checks."""
    from_name: str
    to_email: str
    to_name: str
    subject: str
    html_content: str
    invoice_id: str
    customer_id: str
    user_id: str
    invoice_number: str
    invoice_status: str


class SendEmailResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class EmailOpenResponse(BaseModel):
    id: UUID
    invoice_id: UUID
    customer_id: UUID
    ip_address: Optional[str]
    user_agent: Optional[str]
    opened_at: Optional[datetime]

    class Config:
        from_attributes = True


class TrackingCheckResponse(BaseModel):
    invoice_exists: bool
    total_opens: int
    opens_details: List[EmailOpenResponse] = []
    tracking_url: str
    timestamp: datetime


class DebugActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    details: Dict[str, Any] = {}
    timestamp: datetime
