from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
from sqlalchemy.sql import func
from crm.database import Base
import uuid


class EmailLog(Base):
    """Tracks invoice emails accepted by the mail provider"""
    __tablename__ = "email_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)

    # Email details
    invoice_number = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    invoice_status = Column(String, nullable=True)  # Invoice status at send time
    subject = Column(String, nullable=True)

    # Provider details
    provider_message_id = Column(String, nullable=True)  # Mail provider's message ID after sending

    # Tracking
    sent_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
