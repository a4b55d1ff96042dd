from sqlalchemy import Column, String, DateTime, JSON, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from crm.database import Base
import uuid


class Setting(Base):
    """Per-user settings document keyed by type (e.g. 'invoice')"""
    __tablename__ = "settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    type = Column(String, nullable=False)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_settings_user_type"),
    )
