from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from crm.auth import get_current_user_id
from crm.database import get_db
from crm.exceptions import CRMError
from crm.routers.errors import to_http_exception
from crm.schemas.message import MessageFilter, MessageListResponse, MessageResponse
from crm.services.message_service import message_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("", response_model=MessageListResponse)
def list_messages(
    filter: MessageFilter = Query(MessageFilter.ALL),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Inbox messages with the unread count; open_count is the beacon fetch count"""
    return message_service.list_messages(db, user_id, filter)


@router.get("/unread-count")
def get_unread_count(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"unread_count": message_service.unread_count(db, user_id)}


@router.post("/{message_id}/read", response_model=MessageResponse)
def mark_message_read(message_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return message_service.mark_read(db, user_id, message_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.delete("/{message_id}", status_code=204)
def delete_message(message_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        message_service.delete_message(db, user_id, message_id)
    except CRMError as e:
        raise to_http_exception(e)
    return Response(status_code=204)
