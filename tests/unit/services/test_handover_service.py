"""
Tests for the confidence-threshold handover decision
"""

import pytest
from unittest.mock import Mock

from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from services.ai_service import AIService
from services.handover_service import HandoverService, LOW_CONFIDENCE
from services.whatsapp_api_client import SendResult, WhatsAppAPIClient
from tests.helpers import make_classification


@pytest.fixture
def conversation_repository():
    return Mock(spec=ConversationRepository)


@pytest.fixture
def message_repository():
    repo = Mock(spec=MessageRepository)
    repo.create.return_value = Mock(id=501)
    return repo


@pytest.fixture
def ai_service():
    ai = Mock(spec=AIService)
    ai.generate_reply.return_value = 'Our gold plan is $20/month.'
    return ai


@pytest.fixture
def whatsapp_client():
    client = Mock(spec=WhatsAppAPIClient)
    client.send_text.return_value = SendResult.ok('wamid.OUT1')
    return client


@pytest.fixture
def service(conversation_repository, message_repository, ai_service, whatsapp_client):
    return HandoverService(conversation_repository, message_repository, ai_service, whatsapp_client,
                           confidence_threshold=0.7)


@pytest.fixture
def contact():
    return Mock(id=1, phone_number='5511999990000')


@pytest.fixture
def conversation():
    return Mock(id=10, status='active')


class TestHandoverDecision:

    def test_high_confidence_sends_ai_reply(self, service, contact, conversation, conversation_repository,
                                            message_repository, whatsapp_client):
        decision = service.decide(make_classification(confidence=0.9), contact, conversation, [])

        assert decision.ai_handled
        assert decision.reply_sent
        assert decision.reply_message_id == 501
        whatsapp_client.send_text.assert_called_once_with('5511999990000', 'Our gold plan is $20/month.')

        message_repository.create.assert_called_once()
        created = message_repository.create.call_args.kwargs
        assert created['sender_type'] == 'ai'
        assert created['delivery_status'] == 'sent'
        assert created['provider_message_id'] == 'wamid.OUT1'

        updates = conversation_repository.update.call_args.kwargs
        assert updates['status'] == 'ai_handled'
        assert updates['ai_confidence_score'] == 0.9
        assert updates['last_message_from'] == 'ai'
        assert updates['handover_reason'] is None
        conversation_repository.commit.assert_called_once()

    def test_threshold_is_inclusive(self, service, contact, conversation):
        decision = service.decide(make_classification(confidence=0.7), contact, conversation)
        assert decision.status == 'ai_handled'

    def test_low_confidence_assigns_agent_without_reply(self, service, contact, conversation,
                                                        conversation_repository, message_repository,
                                                        whatsapp_client, ai_service):
        decision = service.decide(make_classification(confidence=0.4), contact, conversation)

        assert decision.status == 'agent_assigned'
        assert decision.handover_reason == LOW_CONFIDENCE
        conversation_repository.update.assert_called_once_with(
            conversation, status='agent_assigned', handover_reason='low_confidence', ai_confidence_score=0.4
        )
        message_repository.create.assert_not_called()
        whatsapp_client.send_text.assert_not_called()
        ai_service.generate_reply.assert_not_called()

    def test_failed_send_still_records_exactly_one_ai_message(self, service, contact, conversation,
                                                              message_repository, whatsapp_client):
        whatsapp_client.send_text.return_value = SendResult.failed('WhatsApp API error 400: invalid recipient')

        decision = service.decide(make_classification(confidence=0.95), contact, conversation)

        assert decision.ai_handled
        assert not decision.reply_sent
        assert message_repository.create.call_count == 1
        created = message_repository.create.call_args.kwargs
        assert created['delivery_status'] == 'failed'
        assert created['message_metadata']['error'] == 'WhatsApp API error 400: invalid recipient'

    def test_closed_conversation_is_left_alone(self, service, contact, conversation_repository,
                                               whatsapp_client):
        closed = Mock(id=10, status='closed')

        decision = service.decide(make_classification(confidence=0.99), contact, closed)

        assert decision.skipped
        conversation_repository.update.assert_not_called()
        whatsapp_client.send_text.assert_not_called()

    def test_never_transitions_to_active(self, service, contact, conversation, conversation_repository):
        for confidence in (0.0, 0.5, 0.69, 0.7, 1.0):
            service.decide(make_classification(confidence=confidence), contact, conversation)
        statuses = {c.kwargs['status'] for c in conversation_repository.update.call_args_list}
        assert statuses == {'ai_handled', 'agent_assigned'}
