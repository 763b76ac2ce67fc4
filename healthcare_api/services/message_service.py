from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload
from typing import List
import logging

from ..models.message import Message
from ..models.user import User
from ..core.cache import CacheService, SHORT_TTL
from ..core.exceptions import NotFoundError
from ..schemas.message import MessageCreate, MessageResponse
from . import cache_keys
from .cache_keys import invalidate_conversation

logger = logging.getLogger(__name__)

MessageList = List[MessageResponse]


class MessageService:
    def __init__(self, db: Session, cache: CacheService):
        self.db = db
        self.cache = cache

    def _query(self):
        return self.db.query(Message).options(
            joinedload(Message.sender),
            joinedload(Message.receiver),
        )

    @staticmethod
    def _to_list(messages) -> List[MessageResponse]:
        return [MessageResponse.model_validate(message) for message in messages]

    def get_conversation(self, user_id: str, other_user_id: str) -> List[MessageResponse]:
        """Messages exchanged between two users, oldest first."""
        def load():
            return self._to_list(
                self._query().filter(
                    or_(
                        and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                        and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
                    )
                ).order_by(Message.created_at).all()
            )

        return self.cache.get_or_load(
            cache_keys.conversation_key(user_id, other_user_id), MessageList, load, SHORT_TTL
        )

    def list_user_messages(self, user_id: str) -> List[MessageResponse]:
        """Everything a user sent or received, newest first."""
        return self.cache.get_or_load(
            cache_keys.user_messages_key(user_id), MessageList,
            lambda: self._to_list(
                self._query().filter(
                    or_(Message.sender_id == user_id, Message.receiver_id == user_id)
                ).order_by(Message.created_at.desc()).all()
            ),
            SHORT_TTL,
        )

    def list_unread(self, user_id: str) -> List[MessageResponse]:
        return self.cache.get_or_load(
            cache_keys.unread_messages_key(user_id), MessageList,
            lambda: self._to_list(
                self._query().filter(
                    Message.receiver_id == user_id,
                    Message.read.is_(False),
                ).order_by(Message.created_at.desc()).all()
            ),
            SHORT_TTL,
        )

    def get_message(self, message_id: str) -> MessageResponse:
        return MessageResponse.model_validate(self._get_or_404(message_id))

    def send_message(self, sender_id: str, message_data: MessageCreate) -> MessageResponse:
        if not self.db.query(User).filter(User.id == sender_id).first():
            raise NotFoundError(f"Sender with ID {sender_id} not found")
        if not self.db.query(User).filter(User.id == message_data.receiver_id).first():
            raise NotFoundError(f"Receiver with ID {message_data.receiver_id} not found")

        message = Message(
            sender_id=sender_id,
            receiver_id=message_data.receiver_id,
            content=message_data.content,
            encrypted=message_data.encrypted,
            integrity_hash=message_data.integrity_hash,
        )
        self.db.add(message)
        self.db.commit()

        invalidate_conversation(self.cache, sender_id, message_data.receiver_id)
        logger.info(f"Message {message.id} sent from {sender_id} to {message_data.receiver_id}")
        return MessageResponse.model_validate(self._get_or_404(message.id))

    def mark_as_read(self, message_id: str) -> MessageResponse:
        """Mark a message read. Marking an already read message changes nothing."""
        message = self._get_or_404(message_id)
        if not message.read:
            message.read = True
            self.db.commit()
            self.db.refresh(message)
            invalidate_conversation(self.cache, message.sender_id, message.receiver_id)
        return MessageResponse.model_validate(message)

    def delete_message(self, message_id: str) -> None:
        message = self._get_or_404(message_id)
        sender_id, receiver_id = message.sender_id, message.receiver_id

        self.db.delete(message)
        self.db.commit()

        invalidate_conversation(self.cache, sender_id, receiver_id)
        logger.info(f"Deleted message {message_id}")

    def _get_or_404(self, message_id: str) -> Message:
        message = self._query().filter(Message.id == message_id).first()
        if not message:
            raise NotFoundError(f"Message with ID {message_id} not found")
        return message
