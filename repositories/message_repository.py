"""
MessageRepository - Append-only conversation transcript
"""

from datetime import datetime
from typing import List, Optional, Set
from sqlalchemy import desc
from repositories.base_repository import BaseRepository
from crm_database import Message
from services.enums import SenderType


class MessageRepository(BaseRepository[Message]):
    """Repository for Message data access"""

    def __init__(self, session):
        super().__init__(session, Message)

    def get_recent_for_conversation(self, conversation_id: int, limit: int = 10) -> List[Message]:
        """
        Most recent messages for a conversation, newest first.

        Args:
            conversation_id: Conversation to read
            limit: Size of the context window
        """
        return self.session.query(Message)\
            .filter(Message.conversation_id == conversation_id)\
            .order_by(desc(Message.created_at), desc(Message.id))\
            .limit(limit)\
            .all()

    def find_by_provider_id(self, provider_message_id: str) -> Optional[Message]:
        return self.session.query(Message)\
            .filter_by(provider_message_id=provider_message_id)\
            .first()

    def get_from_sender_since(self, conversation_id: int, sender_type: str,
                              since: datetime) -> List[Message]:
        return self.session.query(Message)\
            .filter(Message.conversation_id == conversation_id)\
            .filter(Message.sender_type == sender_type)\
            .filter(Message.created_at >= since)\
            .order_by(Message.created_at.asc(), Message.id.asc())\
            .all()

    def has_from_sender_since(self, conversation_id: int, sender_type: str, since: datetime) -> bool:
        return self.session.query(Message.id)\
            .filter(Message.conversation_id == conversation_id)\
            .filter(Message.sender_type == sender_type)\
            .filter(Message.created_at >= since)\
            .first() is not None

    def follow_up_rule_ids_since(self, conversation_id: int, since: datetime) -> Set[int]:
        """Ids of the follow-up rules already sent in a conversation since a time"""
        rule_ids = set()
        for message in self.get_from_sender_since(conversation_id, SenderType.AI.value, since):
            rule_id = (message.message_metadata or {}).get('follow_up_rule_id')
            if rule_id is not None:
                rule_ids.add(rule_id)
        return rule_ids
