from sqlalchemy import Column, String, Text, DateTime, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base
import uuid


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_number = Column(String, nullable=False, unique=True, index=True)  # CUS-XXXXXXXX
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    email = Column(String, nullable=True)  # Optional, but required to send invoices
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    invoices = relationship("Invoice", back_populates="customer")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
