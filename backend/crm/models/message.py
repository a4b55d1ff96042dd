from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy.sql import func
from crm.database import Base
import uuid


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    type = Column(String, nullable=False, default="system")  # email, system
    subject = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")
    read = Column(Boolean, nullable=False, default=False, index=True)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
