"""
Tests for ConversationRepository and MessageRepository lookups used by intake
"""

from datetime import timedelta

import pytest

from crm_database import Conversation, Message
from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from utils.datetime_utils import utc_now


@pytest.fixture
def conversation_repository(db_session):
    return ConversationRepository(db_session)


@pytest.fixture
def message_repository(db_session):
    return MessageRepository(db_session)


class TestOpenConversation:

    def test_creates_active_conversation_when_none_open(self, conversation_repository, make_contact, db_session):
        contact = make_contact('5511000000001')

        conversation = conversation_repository.find_or_create_open_for_contact(contact.id)
        db_session.commit()

        assert conversation.status == 'active'
        assert conversation_repository.find_or_create_open_for_contact(contact.id).id == conversation.id

    @pytest.mark.parametrize('status', ['active', 'ai_handled', 'agent_assigned'])
    def test_open_statuses_are_reused(self, conversation_repository, make_contact, db_session, status):
        contact = make_contact('5511000000001')
        existing = Conversation(contact_id=contact.id, status=status)
        db_session.add(existing)
        db_session.commit()

        assert conversation_repository.find_open_for_contact(contact.id).id == existing.id

    def test_closed_conversation_is_not_reused(self, conversation_repository, make_contact, db_session):
        contact = make_contact('5511000000001')
        closed = Conversation(contact_id=contact.id, status='closed')
        db_session.add(closed)
        db_session.commit()

        conversation = conversation_repository.find_or_create_open_for_contact(contact.id)

        assert conversation.id != closed.id
        assert conversation.status == 'active'


class TestMessageLookups:

    def test_recent_messages_newest_first_and_limited(self, message_repository, make_contact, db_session):
        contact = make_contact('5511000000001')
        conversation = Conversation(contact_id=contact.id, status='active')
        db_session.add(conversation)
        db_session.flush()
        start = utc_now() - timedelta(minutes=30)
        for i in range(12):
            db_session.add(Message(conversation_id=conversation.id, sender_type='customer',
                                   content=f'm{i}', created_at=start + timedelta(minutes=i)))
        db_session.commit()

        recent = message_repository.get_recent_for_conversation(conversation.id, 10)

        assert [m.content for m in recent] == [f'm{i}' for i in range(11, 1, -1)]

    def test_find_by_provider_id(self, message_repository, make_contact, db_session):
        contact = make_contact('5511000000001')
        conversation = Conversation(contact_id=contact.id, status='active')
        db_session.add(conversation)
        db_session.flush()
        db_session.add(Message(conversation_id=conversation.id, sender_type='customer',
                               provider_message_id='wamid.X'))
        db_session.commit()

        assert message_repository.find_by_provider_id('wamid.X').sender_type == 'customer'
        assert message_repository.find_by_provider_id('wamid.Y') is None
