"""Test doubles and payload builders shared across the suite."""

from services.ai_service import Classification
from services.common.result import Result, ErrorCode
from services.whatsapp_api_client import SendResult


class FakeWhatsAppClient:
    """Records sends; numbers in fail_for are rejected by the 'provider'"""

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self._next_id = 0

    @property
    def is_configured(self):
        return True

    def send_text(self, to, body):
        self.sent.append({'to': to, 'body': body})
        if to in self.fail_for:
            return SendResult.failed('Recipient phone number not in allowed list')
        self._next_id += 1
        return SendResult.ok(f'wamid.TEST{self._next_id}')

    def bodies_for(self, to):
        return [s['body'] for s in self.sent if s['to'] == to]


class FakeAIService:
    """Returns a fixed classification; assign .classification to change it"""

    def __init__(self, classification=None, reply='Thanks for reaching out! Our team can help with that.'):
        self.classification = classification or make_classification()
        self.reply = reply
        self.classify_calls = []
        self.reply_calls = []

    def classify(self, text, context_messages=None, contact=None):
        self.classify_calls.append({'text': text, 'context': list(context_messages or []), 'contact': contact})
        return self.classification

    def generate_reply(self, classification, contact=None, history=None):
        self.reply_calls.append(classification)
        return self.reply


class FakeAutomationClient:
    def __init__(self, succeed=True):
        self.calls = []
        self.succeed = succeed

    def send(self, payload, path=None, url=None):
        self.calls.append({'payload': payload, 'path': path, 'url': url})
        if self.succeed:
            return Result.success({'status_code': 200})
        return Result.failure('Automation webhook call failed: 502', code=ErrorCode.TRIGGER_ACTION_FAILURE)


def make_classification(**overrides):
    data = {
        'intent': 'question',
        'sentiment': 'neutral',
        'urgency': 'low',
        'topics': ['pricing'],
        'buying_signals': [],
        'confidence': 0.9,
        'suggested_response': 'Happy to help with pricing.',
        'triggers': [],
    }
    data.update(overrides)
    return Classification(**data)


def whatsapp_payload(messages=None, contacts=None, statuses=None):
    """Build a WhatsApp Cloud API webhook body with a single change"""
    value = {'messaging_product': 'whatsapp', 'metadata': {'phone_number_id': '1234567890'}}
    if contacts is not None:
        value['contacts'] = contacts
    if messages is not None:
        value['messages'] = messages
    if statuses is not None:
        value['statuses'] = statuses
    return {
        'object': 'whatsapp_business_account',
        'entry': [{'id': 'WABA_ID', 'changes': [{'field': 'messages', 'value': value}]}],
    }


def text_message(phone, body, message_id='wamid.IN1', timestamp='1700000000'):
    return {'from': phone, 'id': message_id, 'timestamp': timestamp, 'type': 'text', 'text': {'body': body}}
