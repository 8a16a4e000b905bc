"""
Tests for CampaignDispatcher with mocked repositories
"""

from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, Mock

from repositories.campaign_repository import CampaignRepository
from repositories.contact_repository import ContactRepository
from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from services.campaign_dispatcher import CampaignDispatcher
from services.common.result import ErrorCode
from services.contact_lock import LocalContactLockManager
from services.rate_limiter import FixedIntervalRateLimiter
from services.whatsapp_api_client import SendResult, WhatsAppAPIClient


def _contact(contact_id, phone, name=None, company=None):
    return SimpleNamespace(id=contact_id, phone_number=phone, name=name, company=company,
                           email=None, contact_metadata={})


@pytest.fixture
def campaign_repository():
    repo = Mock(spec=CampaignRepository)
    repo.get_by_id.return_value = SimpleNamespace(
        id=1, status='draft', message_template='Hi {{name}}, from {{company}}', target_tags=['vip']
    )
    repo.claim_for_dispatch.return_value = True
    repo.create_execution.return_value = SimpleNamespace(id=77)
    repo.get_status.return_value = 'running'
    repo.transition_status.return_value = True
    return repo


@pytest.fixture
def contact_repository():
    repo = Mock(spec=ContactRepository)
    repo.find_segment.return_value = [
        _contact(1, '5511000000001', name='Ana'),
        _contact(2, '5511000000002', name='Bruno', company='Acme'),
        _contact(3, '5511000000003'),
    ]
    return repo


@pytest.fixture
def conversation_repository():
    repo = Mock(spec=ConversationRepository)
    repo.find_or_create_open_for_contact.return_value = SimpleNamespace(id=500)
    return repo


@pytest.fixture
def whatsapp_client():
    client = Mock(spec=WhatsAppAPIClient)
    client.send_text.side_effect = lambda to, body: SendResult.ok(f'wamid.{to}')
    return client


@pytest.fixture
def rate_limiter():
    return Mock(spec=FixedIntervalRateLimiter)


@pytest.fixture
def dispatcher(campaign_repository, contact_repository, conversation_repository, whatsapp_client, rate_limiter):
    return CampaignDispatcher(
        campaign_repository=campaign_repository,
        contact_repository=contact_repository,
        conversation_repository=conversation_repository,
        message_repository=Mock(spec=MessageRepository),
        whatsapp_client=whatsapp_client,
        rate_limiter=rate_limiter,
    )


class TestCampaignDispatcher:

    def test_missing_campaign_is_not_found(self, dispatcher, campaign_repository):
        campaign_repository.get_by_id.return_value = None

        result = dispatcher.execute(99)

        assert result.is_failure
        assert result.error_code == ErrorCode.NOT_FOUND.value
        campaign_repository.claim_for_dispatch.assert_not_called()

    @pytest.mark.parametrize('status', ['running', 'paused', 'completed'])
    def test_non_dispatchable_status_is_rejected(self, dispatcher, campaign_repository, whatsapp_client, status):
        campaign_repository.get_by_id.return_value.status = status

        result = dispatcher.execute(1)

        assert result.error_code == ErrorCode.ALREADY_RUNNING.value
        assert result.metadata['status'] == status
        whatsapp_client.send_text.assert_not_called()

    def test_lost_claim_is_already_running(self, dispatcher, campaign_repository, contact_repository):
        campaign_repository.claim_for_dispatch.return_value = False

        result = dispatcher.execute(1)

        assert result.error_code == ErrorCode.ALREADY_RUNNING.value
        contact_repository.find_segment.assert_not_called()
        campaign_repository.increment_sent.assert_not_called()

    def test_sends_personalized_message_to_each_recipient(self, dispatcher, whatsapp_client,
                                                          contact_repository, rate_limiter):
        result = dispatcher.execute(1)

        assert result.is_success
        contact_repository.find_segment.assert_called_once_with(['vip'])
        bodies = [c.args[1] for c in whatsapp_client.send_text.call_args_list]
        assert bodies == ['Hi Ana, from ', 'Hi Bruno, from Acme', 'Hi , from ']
        rate_limiter.reset.assert_called_once()
        assert rate_limiter.wait.call_count == 3

    def test_counts_sent_and_failed(self, dispatcher, whatsapp_client, campaign_repository):
        def send(to, body):
            if to == '5511000000002':
                return SendResult.failed('invalid recipient')
            return SendResult.ok(f'wamid.{to}')
        whatsapp_client.send_text.side_effect = send

        dispatch = dispatcher.execute(1).data

        assert dispatch.total_recipients == 3
        assert dispatch.sent_count == 2
        assert dispatch.failed_count == 1
        assert dispatch.sent_count + dispatch.failed_count == dispatch.total_recipients
        assert campaign_repository.increment_sent.call_count == 2
        campaign_repository.increment_failed.assert_called_once_with(1, 77)
        campaign_repository.record_delivery.assert_any_call(77, 1, 2, success=False, error='invalid recipient')

    def test_send_exception_counts_as_failure(self, dispatcher, whatsapp_client):
        whatsapp_client.send_text.side_effect = RuntimeError('socket closed')

        dispatch = dispatcher.execute(1).data

        assert dispatch.failed_count == 3
        assert dispatch.sent_count == 0

    def test_completes_when_all_recipients_processed(self, dispatcher, campaign_repository):
        dispatch = dispatcher.execute(1).data

        assert not dispatch.halted
        campaign_repository.transition_status.assert_called_once_with(1, ['running'], 'completed')
        campaign_repository.finish_execution.assert_called_once_with(77, 'completed')

    def test_empty_segment_completes_with_zero_counts(self, dispatcher, contact_repository,
                                                      campaign_repository, whatsapp_client):
        contact_repository.find_segment.return_value = []

        dispatch = dispatcher.execute(1).data

        assert dispatch.total_recipients == 0
        assert dispatch.sent_count == dispatch.failed_count == 0
        whatsapp_client.send_text.assert_not_called()
        campaign_repository.set_status.assert_any_call(1, 'running', total_recipients=0)
        campaign_repository.transition_status.assert_called_once_with(1, ['running'], 'completed')

    def test_pause_mid_run_halts_before_next_recipient(self, dispatcher, campaign_repository, whatsapp_client):
        campaign_repository.get_status.side_effect = ['running', 'paused', 'paused']

        dispatch = dispatcher.execute(1).data

        assert dispatch.halted
        assert whatsapp_client.send_text.call_count == 1
        campaign_repository.transition_status.assert_not_called()
        campaign_repository.finish_execution.assert_called_once_with(77, 'halted')
        statuses = [c.args[1] for c in campaign_repository.set_status.call_args_list]
        assert 'paused' not in statuses
        assert 'completed' not in statuses

    def test_pause_after_last_send_is_not_overwritten(self, dispatcher, campaign_repository):
        campaign_repository.transition_status.return_value = False

        dispatch = dispatcher.execute(1).data

        assert dispatch.halted
        statuses = [c.args[1] for c in campaign_repository.set_status.call_args_list]
        assert 'completed' not in statuses

    def test_transcript_failure_keeps_send_counted(self, dispatcher, conversation_repository, campaign_repository):
        conversation_repository.find_or_create_open_for_contact.side_effect = RuntimeError('db gone')

        dispatch = dispatcher.execute(1).data

        assert dispatch.sent_count == 3
        assert campaign_repository.increment_sent.call_count == 3

    def test_segment_error_releases_campaign_to_claimed_status(self, dispatcher, contact_repository,
                                                               campaign_repository, whatsapp_client):
        contact_repository.find_segment.side_effect = RuntimeError('connection reset')

        result = dispatcher.execute(1)

        assert result.is_failure
        assert result.error_code == ErrorCode.DISPATCH_ABORTED.value
        assert result.metadata['status'] == 'draft'
        campaign_repository.rollback.assert_called()
        campaign_repository.transition_status.assert_called_once_with(1, ['running'], 'draft')
        campaign_repository.finish_execution.assert_not_called()
        whatsapp_client.send_text.assert_not_called()

    def test_error_after_sends_marks_campaign_failed(self, dispatcher, campaign_repository):
        campaign_repository.get_status.side_effect = ['running', RuntimeError('db gone')]

        result = dispatcher.execute(1)

        assert result.error_code == ErrorCode.DISPATCH_ABORTED.value
        assert result.metadata['status'] == 'failed'
        assert result.metadata['sent_count'] == 1
        campaign_repository.finish_execution.assert_called_once_with(77, 'failed')
        campaign_repository.transition_status.assert_called_once_with(1, ['running'], 'failed')

    def test_abort_does_not_override_external_pause(self, dispatcher, contact_repository, campaign_repository):
        contact_repository.find_segment.side_effect = RuntimeError('connection reset')
        campaign_repository.transition_status.return_value = False
        campaign_repository.get_status.return_value = 'paused'

        result = dispatcher.execute(1)

        assert result.metadata['status'] == 'paused'

    def test_progress_store_error_counts_recipient_as_failed(self, dispatcher, campaign_repository):
        campaign_repository.record_delivery.side_effect = [RuntimeError('constraint'), None, None]

        result = dispatcher.execute(1)

        assert result.is_success
        dispatch = result.data
        assert (dispatch.sent_count, dispatch.failed_count) == (2, 1)
        assert dispatch.sent_count + dispatch.failed_count == dispatch.total_recipients
        campaign_repository.increment_failed.assert_called_once_with(1, 77)
        campaign_repository.transition_status.assert_called_once_with(1, ['running'], 'completed')

    def test_transcript_written_under_contact_lock(self, campaign_repository, contact_repository,
                                                   conversation_repository, whatsapp_client, rate_limiter):
        lock = MagicMock(spec=LocalContactLockManager)
        held = []
        conversation_repository.find_or_create_open_for_contact.side_effect = \
            lambda contact_id, **kw: held.append(lock.hold.call_count) or SimpleNamespace(id=500)
        dispatcher = CampaignDispatcher(
            campaign_repository=campaign_repository,
            contact_repository=contact_repository,
            conversation_repository=conversation_repository,
            message_repository=Mock(spec=MessageRepository),
            whatsapp_client=whatsapp_client,
            rate_limiter=rate_limiter,
            contact_lock=lock,
        )

        dispatcher.execute(1)

        assert [c.args[0] for c in lock.hold.call_args_list] == \
            ['5511000000001', '5511000000002', '5511000000003']
        assert held == [1, 2, 3]
