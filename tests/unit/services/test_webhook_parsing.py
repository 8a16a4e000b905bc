"""
Tests for WebhookService - parsing, subscription handshake and signatures
"""

import hashlib
import hmac

import pytest

from services.webhook_service import InboundEvent, WebhookService
from tests.helpers import text_message, whatsapp_payload


@pytest.fixture
def service():
    return WebhookService(verify_token='verify-me', app_secret=None)


class TestParseEvents:

    def test_text_message_with_profile_name(self, service):
        payload = whatsapp_payload(
            messages=[text_message('5511999990000', 'Hi there')],
            contacts=[{'wa_id': '5511999990000', 'profile': {'name': 'Ana'}}],
        )

        events = service.parse_events(payload)

        assert events == [InboundEvent(
            from_phone='5511999990000', provider_message_id='wamid.IN1', type='text',
            text='Hi there', contact_name='Ana', timestamp='1700000000',
        )]

    def test_interactive_button_reply(self, service):
        message = {'from': '5511', 'id': 'wamid.I', 'type': 'interactive',
                   'interactive': {'type': 'button_reply', 'button_reply': {'id': 'yes_btn', 'title': 'Yes'}}}

        event, = service.parse_events(whatsapp_payload(messages=[message]))

        assert event.text == 'Yes'
        assert event.interactive_id == 'yes_btn'

    def test_list_reply(self, service):
        message = {'from': '5511', 'id': 'wamid.L', 'type': 'interactive',
                   'interactive': {'type': 'list_reply', 'list_reply': {'id': 'plan_gold', 'title': 'Gold'}}}

        event, = service.parse_events(whatsapp_payload(messages=[message]))

        assert (event.text, event.interactive_id) == ('Gold', 'plan_gold')

    def test_template_button(self, service):
        message = {'from': '5511', 'id': 'wamid.B', 'type': 'button',
                   'button': {'text': 'Stop promotions', 'payload': 'STOP'}}

        event, = service.parse_events(whatsapp_payload(messages=[message]))

        assert event.type == 'button'
        assert event.text == 'Stop promotions'

    def test_image_caption_is_kept(self, service):
        message = {'from': '5511', 'id': 'wamid.M', 'type': 'image',
                   'image': {'id': 'media1', 'caption': 'my invoice'}}

        event, = service.parse_events(whatsapp_payload(messages=[message]))

        assert event.type == 'image'
        assert event.text == 'my invoice'

    def test_status_updates_produce_no_events(self, service):
        payload = whatsapp_payload(statuses=[{'id': 'wamid.OUT', 'status': 'delivered'}])
        assert service.parse_events(payload) == []

    @pytest.mark.parametrize('payload', [None, [], {}, {'entry': None}, {'entry': [{'changes': None}]}])
    def test_malformed_payloads(self, service, payload):
        assert service.parse_events(payload) == []

    def test_message_without_sender_is_skipped(self, service):
        payload = whatsapp_payload(messages=[{'id': 'wamid.X', 'type': 'text', 'text': {'body': 'hi'}}])
        assert service.parse_events(payload) == []

    def test_event_round_trips_through_task_payload(self, service):
        event, = service.parse_events(whatsapp_payload(messages=[text_message('5511', 'hi')]))
        assert InboundEvent.from_dict(event.to_dict()) == event


class TestVerification:

    def test_subscription_handshake(self, service):
        assert service.verify_subscription('subscribe', 'verify-me', 'challenge-123') == 'challenge-123'

    @pytest.mark.parametrize('mode,token', [('subscribe', 'wrong'), ('unsubscribe', 'verify-me'), (None, None)])
    def test_subscription_rejected(self, service, mode, token):
        assert service.verify_subscription(mode, token, 'challenge-123') is None

    def test_signature_not_enforced_without_secret(self, service):
        assert service.verify_signature(b'{}', None)

    def test_signature_checked_with_secret(self):
        service = WebhookService(verify_token='t', app_secret='app-secret')
        body = b'{"object": "whatsapp_business_account"}'
        digest = hmac.new(b'app-secret', body, hashlib.sha256).hexdigest()

        assert service.verify_signature(body, f'sha256={digest}')
        assert not service.verify_signature(body, 'sha256=deadbeef')
        assert not service.verify_signature(body, digest)
        assert not service.verify_signature(body, None)
