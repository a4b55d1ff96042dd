from pydantic import BaseModel
from typing import List, Optional
from enum import Enum
from datetime import datetime
from uuid import UUID


class MessageFilter(str, Enum):
    ALL = "all"
    UNREAD = "unread"
    READ = "read"


class MessageResponse(BaseModel):
    id: UUID
    type: str
    subject: str
    content: str
    read: bool
    invoice_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    # Number of beacon fetches for the linked invoice, not unique opens
    open_count: int = 0

    class Config:
        from_attributes = True


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    unread_count: int
