"""
ConversationRepository - Data access layer for Conversation entities
"""

from typing import List, Optional
from datetime import datetime
from sqlalchemy import desc
from repositories.base_repository import BaseRepository
from crm_database import Conversation, ConversationAnalytics
from services.enums import ConversationStatus, SenderType
import logging

logger = logging.getLogger(__name__)


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for Conversation data access"""

    def __init__(self, session):
        super().__init__(session, Conversation)

    def find_open_for_contact(self, contact_id: int) -> Optional[Conversation]:
        """
        Find the contact's open conversation.

        At most one open conversation per contact is maintained; if several
        exist the most recently created wins.
        """
        return self.session.query(Conversation)\
            .filter(Conversation.contact_id == contact_id)\
            .filter(Conversation.status.in_(ConversationStatus.open_statuses()))\
            .order_by(desc(Conversation.created_at), desc(Conversation.id))\
            .first()

    def find_or_create_open_for_contact(self, contact_id: int, **kwargs) -> Conversation:
        """
        Find the contact's open conversation or create a new active one.

        Args:
            contact_id: ID of the contact
            **kwargs: Attributes for a newly created conversation
        """
        conversation = self.find_open_for_contact(contact_id)
        if conversation:
            return conversation

        data = {'contact_id': contact_id, 'status': ConversationStatus.ACTIVE.value}
        data.update(kwargs)
        logger.info(f"Creating conversation for contact {contact_id}")
        return self.create(**data)

    def find_awaiting_follow_up(self, inactive_since: datetime) -> List[Conversation]:
        """
        Conversations where the customer spoke last, before the given time.
        Oldest first.

        Conversations assigned to an agent are left to the agent.
        """
        return self.session.query(Conversation)\
            .filter(Conversation.status.in_([ConversationStatus.ACTIVE.value,
                                             ConversationStatus.AI_HANDLED.value]))\
            .filter(Conversation.last_message_from == SenderType.CUSTOMER.value)\
            .filter(Conversation.last_message_at.isnot(None))\
            .filter(Conversation.last_message_at < inactive_since)\
            .order_by(Conversation.last_message_at.asc(), Conversation.id.asc())\
            .all()

    def refresh(self, conversation: Conversation) -> Conversation:
        """Re-read a conversation another worker may have changed"""
        self.session.refresh(conversation)
        return conversation

    def touch(self, conversation: Conversation, sender: str, at: datetime) -> Conversation:
        """Record who spoke last and when"""
        return self.update(conversation, last_message_at=at, last_message_from=sender)

    def record_analytics(self, conversation_id: int, **fields) -> ConversationAnalytics:
        """Write-only analytics row for a classified message"""
        analytics = ConversationAnalytics(conversation_id=conversation_id, **fields)
        self.session.add(analytics)
        self.session.flush()
        return analytics
