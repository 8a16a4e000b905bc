"""
WhatsApp webhook boundary.

Verifies the Meta subscription handshake and payload signatures, and turns
webhook payloads into InboundEvents for the intake pipeline. Delivery status
callbacks are recognised and ignored.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from services.enums import MessageType

logger = logging.getLogger(__name__)


@dataclass
class InboundEvent:
    """One inbound customer message as delivered by the provider"""
    from_phone: str
    provider_message_id: str
    type: str = MessageType.TEXT.value
    text: Optional[str] = None
    contact_name: Optional[str] = None
    timestamp: Optional[str] = None
    interactive_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InboundEvent':
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


class WebhookService:
    """Parses and authenticates WhatsApp Cloud API webhooks"""

    def __init__(self, verify_token: Optional[str], app_secret: Optional[str] = None):
        self.verify_token = verify_token
        self.app_secret = app_secret

    def verify_subscription(self, mode: Optional[str], token: Optional[str],
                            challenge: Optional[str]) -> Optional[str]:
        """
        Meta subscription handshake.

        Returns:
            The challenge to echo back, or None if verification fails
        """
        if mode == 'subscribe' and self.verify_token and token == self.verify_token:
            logger.info("WhatsApp webhook verified")
            return challenge or ''
        logger.warning(f"WhatsApp webhook verification failed (mode={mode})")
        return None

    def verify_signature(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        """
        Check the X-Hub-Signature-256 header.

        Signatures are only enforced when an app secret is configured.
        """
        if not self.app_secret:
            return True
        if not signature_header or not signature_header.startswith('sha256='):
            logger.error("Missing or malformed X-Hub-Signature-256 header")
            return False
        expected = hmac.new(self.app_secret.encode(), raw_body or b'', hashlib.sha256).hexdigest()
        received = signature_header.split('=', 1)[1]
        if not hmac.compare_digest(expected, received):
            logger.error("Webhook signature mismatch")
            return False
        return True

    def parse_events(self, payload: Optional[Dict[str, Any]]) -> List[InboundEvent]:
        """
        Extract inbound messages from a webhook payload.

        Walks every entry and change; status callbacks and non-message
        changes produce no events.
        """
        events = []
        if not isinstance(payload, dict):
            return events

        for entry in payload.get('entry') or []:
            for change in entry.get('changes') or []:
                value = change.get('value') or {}
                if value.get('statuses') and not value.get('messages'):
                    logger.debug(f"Ignoring {len(value['statuses'])} status update(s)")
                    continue

                names = {
                    c.get('wa_id'): (c.get('profile') or {}).get('name')
                    for c in value.get('contacts') or []
                }
                for message in value.get('messages') or []:
                    event = self._parse_message(message, names)
                    if event:
                        events.append(event)
        return events

    def _parse_message(self, message: Dict[str, Any], names: Dict[str, Optional[str]]) -> Optional[InboundEvent]:
        phone = message.get('from')
        message_id = message.get('id')
        if not phone or not message_id:
            logger.warning(f"Skipping malformed webhook message: {message}")
            return None

        message_type = message.get('type') or MessageType.UNKNOWN.value
        text = None
        interactive_id = None

        if message_type == MessageType.TEXT.value:
            text = (message.get('text') or {}).get('body', '')
        elif message_type == MessageType.INTERACTIVE.value:
            interactive = message.get('interactive') or {}
            reply = interactive.get('button_reply') or interactive.get('list_reply') or {}
            text = reply.get('title')
            interactive_id = reply.get('id')
        elif message_type == MessageType.BUTTON.value:
            button = message.get('button') or {}
            text = button.get('text')
            interactive_id = button.get('payload')
        else:
            media = message.get(message_type) or {}
            text = media.get('caption') if isinstance(media, dict) else None

        return InboundEvent(
            from_phone=phone,
            provider_message_id=message_id,
            type=message_type,
            text=text,
            contact_name=names.get(phone),
            timestamp=message.get('timestamp'),
            interactive_id=interactive_id,
        )
