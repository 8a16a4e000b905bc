"""
Tests for campaign Celery tasks: single dispatch runs and the scheduled sweep
"""

import pytest
from unittest.mock import Mock, patch, call
from types import SimpleNamespace

from services.campaign_dispatcher import DispatchResult
from services.common.result import Result, ErrorCode
from tasks.campaign_tasks import execute_campaign, dispatch_scheduled_campaigns


@pytest.fixture
def mock_services():
    """Mock Flask app context for Celery tasks"""
    with patch('tasks.campaign_tasks.create_app') as mock_create_app:
        mock_app = Mock()
        mock_context = Mock()
        mock_context.__enter__ = Mock(return_value=mock_context)
        mock_context.__exit__ = Mock(return_value=None)
        mock_app.app_context.return_value = mock_context
        mock_create_app.return_value = mock_app
        yield mock_app.services


class TestExecuteCampaign:

    def test_returns_dispatch_counts(self, mock_services):
        dispatcher = Mock()
        dispatcher.execute.return_value = Result.success(DispatchResult(
            campaign_id=5, total_recipients=3, sent_count=2, failed_count=1, execution_id=9
        ))
        mock_services.get.return_value = dispatcher

        result = execute_campaign.apply(args=[5])

        assert result.successful()
        assert result.result == {
            'success': True,
            'campaign_id': 5,
            'total_recipients': 3,
            'sent_count': 2,
            'failed_count': 1,
            'halted': False,
            'execution_id': 9,
        }
        mock_services.get.assert_called_once_with('campaign_dispatcher')
        dispatcher.execute.assert_called_once_with(5)

    def test_rejected_dispatch_is_reported_not_raised(self, mock_services):
        dispatcher = Mock()
        dispatcher.execute.return_value = Result.failure('Campaign 5 is already running',
                                                         code=ErrorCode.ALREADY_RUNNING)
        mock_services.get.return_value = dispatcher

        result = execute_campaign.apply(args=[5])

        assert result.successful()
        assert result.result['success'] is False
        assert result.result['error_code'] == 'ALREADY_RUNNING'


class TestDispatchScheduledCampaigns:

    def test_queues_each_due_campaign(self, mock_services):
        campaign_service = Mock()
        campaign_service.get_due_campaigns.return_value = [SimpleNamespace(id=1), SimpleNamespace(id=2)]
        mock_services.get.return_value = campaign_service

        with patch('tasks.campaign_tasks.execute_campaign.delay') as mock_delay:
            result = dispatch_scheduled_campaigns.apply()

        assert result.successful()
        assert result.result['campaigns_found'] == 2
        assert result.result['campaigns_queued'] == 2
        assert result.result['campaign_ids'] == [1, 2]
        mock_delay.assert_has_calls([call(1), call(2)])
        mock_services.get.assert_called_once_with('campaign')

    def test_nothing_due(self, mock_services):
        campaign_service = Mock()
        campaign_service.get_due_campaigns.return_value = []
        mock_services.get.return_value = campaign_service

        with patch('tasks.campaign_tasks.execute_campaign.delay') as mock_delay:
            result = dispatch_scheduled_campaigns.apply()

        assert result.result['campaigns_queued'] == 0
        mock_delay.assert_not_called()

    def test_lookup_failure_is_retried(self, mock_services):
        from celery.exceptions import Retry
        campaign_service = Mock()
        campaign_service.get_due_campaigns.side_effect = RuntimeError('db down')
        mock_services.get.return_value = campaign_service

        with patch.object(dispatch_scheduled_campaigns, 'retry', side_effect=Retry('later')) as mock_retry:
            dispatch_scheduled_campaigns.apply()

        mock_retry.assert_called_once()
        assert mock_retry.call_args.kwargs['countdown'] == 60
