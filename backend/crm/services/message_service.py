import logging
from typing import List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm.exceptions import NotFoundError, PersistenceError
from crm.models.message import Message
from crm.schemas.message import MessageFilter, MessageListResponse, MessageResponse
from crm.services.tracking_service import tracking_service

logger = logging.getLogger(__name__)


class MessageService:
    """Inbox of system and email notices"""

    def list_messages(self, db: Session, user_id: UUID, message_filter: MessageFilter = MessageFilter.ALL) -> MessageListResponse:
        query = db.query(Message).filter(Message.user_id == user_id)
        if message_filter == MessageFilter.UNREAD:
            query = query.filter(Message.read.is_(False))
        elif message_filter == MessageFilter.READ:
            query = query.filter(Message.read.is_(True))
        messages = query.order_by(Message.created_at.desc()).all()

        open_counts = tracking_service.open_counts(db, [m.invoice_id for m in messages])
        responses: List[MessageResponse] = []
        for message in messages:
            response = MessageResponse.model_validate(message)
            response.open_count = open_counts.get(message.invoice_id, 0)
            responses.append(response)

        return MessageListResponse(messages=responses, unread_count=self.unread_count(db, user_id))

    def unread_count(self, db: Session, user_id: UUID) -> int:
        return db.query(Message).filter(Message.user_id == user_id, Message.read.is_(False)).count()

    def mark_read(self, db: Session, user_id: UUID, message_id: UUID) -> Message:
        message = self._get(db, user_id, message_id)
        message.read = True
        try:
            db.commit()
            db.refresh(message)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to mark message {message_id} as read: {e}")
            raise PersistenceError("Failed to update message. Please try again.")
        return message

    def delete_message(self, db: Session, user_id: UUID, message_id: UUID) -> None:
        message = self._get(db, user_id, message_id)
        try:
            db.delete(message)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete message {message_id}: {e}")
            raise PersistenceError("Failed to delete message. Please try again.")

    def _get(self, db: Session, user_id: UUID, message_id: UUID) -> Message:
        message = db.query(Message).filter(Message.id == message_id, Message.user_id == user_id).first()
        if not message:
            raise NotFoundError("Message not found")
        return message


message_service = MessageService()
