from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, Date, Text, JSON, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base
import uuid


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    invoice_number = Column(String, nullable=False, unique=True, index=True)
    type = Column(String, nullable=False, default="service")  # service, product, estimate
    status = Column(String, nullable=False, default="draft", index=True)  # draft, sent, paid, void, estimate
    items = Column(JSON, nullable=False, default=list)  # Ordered list of line items
    tax_rate = Column(Numeric(5, 2), nullable=True)  # Percentage; null means no tax
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)  # Capped at money.MAX_AMOUNT by the service
    due_date = Column(Date, nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)  # Stamped on transition to paid
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_invoices_subtotal_nonneg"),
        CheckConstraint("tax_amount >= 0", name="ck_invoices_tax_amount_nonneg"),
        CheckConstraint("total >= 0", name="ck_invoices_total_nonneg"),
    )

    # Relationships
    customer = relationship("Customer", back_populates="invoices")
    email_opens = relationship("EmailOpen", back_populates="invoice", cascade="all, delete-orphan", passive_deletes=True)
