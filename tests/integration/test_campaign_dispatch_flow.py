"""
End-to-end campaign dispatch against a real database with a fake WhatsApp client.
"""

import pytest
from unittest.mock import patch

from crm_database import Campaign, CampaignDelivery, CampaignExecution, Message
from extensions import db


def _reload(db_session, campaign_id):
    db_session.expire_all()
    return db_session.get(Campaign, campaign_id)


@pytest.fixture
def audience(make_contact):
    return [
        make_contact('5511000000001', name='Ana', tags=['vip']),
        make_contact('5511000000002', name='Bruno', company='Acme', tags=['lead']),
        make_contact('5511000000003', name='Carla', tags=['vip', 'lead']),
    ]


@pytest.mark.integration
class TestCampaignDispatchFlow:

    def test_personalized_broadcast_to_tagged_segment(self, services, fake_whatsapp, make_campaign,
                                                      audience, db_session):
        campaign = make_campaign(message_template='Hi {{name}}, from {{company}}', target_tags=['vip'])

        dispatch = services.get('campaign_dispatcher').execute(campaign.id).data

        assert fake_whatsapp.bodies_for('5511000000001') == ['Hi Ana, from ']
        assert fake_whatsapp.bodies_for('5511000000003') == ['Hi Carla, from ']
        assert fake_whatsapp.bodies_for('5511000000002') == []
        assert (dispatch.total_recipients, dispatch.sent_count, dispatch.failed_count) == (2, 2, 0)

        campaign = _reload(db_session, campaign.id)
        assert campaign.status == 'completed'
        assert campaign.completed_at is not None
        assert (campaign.total_recipients, campaign.sent_count, campaign.failed_count) == (2, 2, 0)

    def test_empty_target_tags_reach_everyone(self, services, fake_whatsapp, make_campaign, audience):
        campaign = make_campaign(message_template='Hello {{name}}', target_tags=[])

        dispatch = services.get('campaign_dispatcher').execute(campaign.id).data

        assert dispatch.total_recipients == 3
        assert sorted(s['to'] for s in fake_whatsapp.sent) == [c.phone_number for c in audience]

    def test_failures_are_counted_and_run_completes(self, services, fake_whatsapp, make_campaign,
                                                    audience, db_session):
        fake_whatsapp.fail_for.add('5511000000002')
        campaign = make_campaign(target_tags=[])

        services.get('campaign_dispatcher').execute(campaign.id)

        campaign = _reload(db_session, campaign.id)
        assert campaign.status == 'completed'
        assert (campaign.sent_count, campaign.failed_count) == (2, 1)
        assert campaign.sent_count + campaign.failed_count == campaign.total_recipients

        deliveries = db_session.query(CampaignDelivery).order_by(CampaignDelivery.contact_id).all()
        assert [d.success for d in deliveries] == [True, False, True]
        execution = db_session.query(CampaignExecution).one()
        assert (execution.status, execution.sent_count, execution.failed_count) == ('completed', 2, 1)

    def test_sent_messages_appear_in_conversations(self, services, make_campaign, audience, db_session):
        campaign = make_campaign(message_template='Hi {{name}}', target_tags=['lead'])

        services.get('campaign_dispatcher').execute(campaign.id)

        messages = db_session.query(Message).filter_by(sender_type='agent').order_by(Message.id).all()
        assert [m.content for m in messages] == ['Hi Bruno', 'Hi Carla']
        assert all(m.message_metadata == {'campaign_id': campaign.id} for m in messages)

    def test_empty_segment_completes_immediately(self, services, fake_whatsapp, make_campaign,
                                                 audience, db_session):
        campaign = make_campaign(status='scheduled', target_tags=['nobody'])

        dispatch = services.get('campaign_dispatcher').execute(campaign.id).data

        assert dispatch.total_recipients == 0
        assert fake_whatsapp.sent == []
        campaign = _reload(db_session, campaign.id)
        assert campaign.status == 'completed'
        assert (campaign.sent_count, campaign.failed_count) == (0, 0)

    def test_running_campaign_cannot_be_dispatched_again(self, services, fake_whatsapp, make_campaign,
                                                         audience, db_session):
        campaign = make_campaign(status='running', sent_count=5, total_recipients=9)

        result = services.get('campaign_dispatcher').execute(campaign.id)

        assert result.error_code == 'ALREADY_RUNNING'
        assert fake_whatsapp.sent == []
        campaign = _reload(db_session, campaign.id)
        assert (campaign.status, campaign.sent_count, campaign.total_recipients) == ('running', 5, 9)

    def test_completed_campaign_is_not_resent(self, services, fake_whatsapp, make_campaign, audience):
        campaign = make_campaign(target_tags=['vip'])
        dispatcher = services.get('campaign_dispatcher')

        dispatcher.execute(campaign.id)
        second = dispatcher.execute(campaign.id)

        assert second.error_code == 'ALREADY_RUNNING'
        assert len(fake_whatsapp.sent) == 2

    def test_pause_mid_run_halts_dispatch(self, services, fake_whatsapp, make_campaign, audience, db_session):
        campaign = make_campaign(target_tags=[])
        campaign_id = campaign.id
        original_send = fake_whatsapp.send_text

        def send_then_pause(to, body):
            result = original_send(to, body)
            services.get('campaign').pause_campaign(campaign_id)
            return result
        fake_whatsapp.send_text = send_then_pause

        dispatch = services.get('campaign_dispatcher').execute(campaign_id).data

        assert dispatch.halted
        assert len(fake_whatsapp.sent) == 1
        campaign = _reload(db_session, campaign_id)
        assert campaign.status == 'paused'
        assert campaign.sent_count == 1
        assert db.session.query(CampaignExecution).one().status == 'halted'


@pytest.mark.integration
class TestScheduledCampaigns:

    def test_due_campaign_is_found_and_dispatched(self, services, fake_whatsapp, audience, db_session):
        from datetime import timedelta
        from utils.datetime_utils import utc_now

        created = services.get('campaign').create_campaign(
            'Morning', 'Good morning {{name}}', target_tags=['vip'],
            scheduled_at=utc_now() - timedelta(minutes=1),
        ).data

        due = services.get('campaign').get_due_campaigns()
        assert [c.id for c in due] == [created.id]

        services.get('campaign_dispatcher').execute(created.id)

        assert _reload(db_session, created.id).status == 'completed'
        assert services.get('campaign').get_due_campaigns() == []
        assert sorted(fake_whatsapp.bodies_for('5511000000001')) == ['Good morning Ana']

    def test_aborted_run_releases_campaign_for_another_dispatch(self, services, fake_whatsapp, make_campaign,
                                                                audience, db_session):
        campaign = make_campaign(message_template='Hi {{name}}', target_tags=['vip'])
        dispatcher = services.get('campaign_dispatcher')

        with patch.object(dispatcher.contact_repository, 'find_segment',
                          side_effect=RuntimeError('connection reset')):
            aborted = dispatcher.execute(campaign.id)

        assert aborted.error_code == 'DISPATCH_ABORTED'
        assert _reload(db_session, campaign.id).status == 'draft'
        assert fake_whatsapp.sent == []

        retry = dispatcher.execute(campaign.id)

        assert retry.is_success
        assert retry.data.sent_count == 2
        assert _reload(db_session, campaign.id).status == 'completed'
