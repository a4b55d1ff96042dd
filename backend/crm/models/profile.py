from sqlalchemy import Column, String, Text, DateTime, Uuid
from sqlalchemy.sql import func
from crm.database import Base


class Profile(Base):
    """Business profile; the primary key is the owning user's id"""
    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, index=True)
    business_name = Column(String, nullable=True)
    business_email = Column(String, nullable=True)
    business_type = Column(String, nullable=True, default="both")  # products, services, both
    address = Column(Text, nullable=True)
    website = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
