"""
Inactivity follow-ups.

A periodic sweep finds conversations where the customer wrote last and has
heard nothing back for a while, picks the first matching follow-up rule, and
sends its rendered template over WhatsApp. Each rule is sent at most once
per customer silence.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional

from crm_database import FollowUpRule
from logging_config import get_logger
from repositories.conversation_repository import ConversationRepository
from repositories.follow_up_repository import FollowUpRuleRepository
from repositories.message_repository import MessageRepository
from services.common.result import Result, ErrorCode
from services.contact_lock import ContactLockTimeout
from services.enums import (ConversationStatus, DeliveryStatus, FollowUpCondition, MessageType,
                            SenderType)
from services.rate_limiter import FixedIntervalRateLimiter
from services.template_service import TemplateValidationError, render, validate_template
from services.whatsapp_api_client import WhatsAppAPIClient
from utils.datetime_utils import ensure_utc, utc_now

logger = get_logger(__name__)

# An AI message this recent means the conversation is already being looked after
RECENT_AI_MESSAGE_WINDOW = timedelta(hours=24)

SENT = 'sent'
FAILED = 'failed'
SKIPPED = 'skipped'


@dataclass
class FollowUpRunResult:
    rules: int = 0
    checked: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self):
        return {
            'rules': self.rules,
            'checked': self.checked,
            'sent': self.sent,
            'failed': self.failed,
            'skipped': self.skipped,
        }


class FollowUpService:
    """Manages follow-up rules and sends inactivity follow-ups"""

    def __init__(self, follow_up_repository: FollowUpRuleRepository,
                 conversation_repository: ConversationRepository,
                 message_repository: MessageRepository,
                 whatsapp_client: WhatsAppAPIClient,
                 rate_limiter: FixedIntervalRateLimiter,
                 contact_lock=None):
        self.follow_up_repository = follow_up_repository
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.whatsapp_client = whatsapp_client
        self.rate_limiter = rate_limiter
        self.contact_lock = contact_lock

    def create_rule(self, name: str, message_template: str, inactivity_hours: Any = 72,
                    is_active: bool = True) -> Result:
        """
        Create an inactivity follow-up rule.

        Returns:
            Result[FollowUpRule]: the saved rule or a VALIDATION_ERROR
        """
        if not name or not str(name).strip():
            return Result.failure("Follow-up rule name is required", code=ErrorCode.VALIDATION_ERROR)

        try:
            validate_template(message_template)
        except TemplateValidationError as e:
            return Result.failure(str(e), code=ErrorCode.VALIDATION_ERROR)

        if isinstance(inactivity_hours, bool) or not isinstance(inactivity_hours, int) or inactivity_hours < 1:
            return Result.failure("inactivity_hours must be a positive whole number of hours",
                                  code=ErrorCode.VALIDATION_ERROR)

        rule = self.follow_up_repository.create(
            name=str(name).strip(),
            trigger_condition=FollowUpCondition.INACTIVITY.value,
            inactivity_hours=inactivity_hours,
            message_template=message_template,
            is_active=bool(is_active),
        )
        self.follow_up_repository.commit()
        logger.info("Follow-up rule created", rule_id=rule.id, inactivity_hours=inactivity_hours)
        return Result.success(rule)

    def get_rules(self) -> List[FollowUpRule]:
        return self.follow_up_repository.get_all()

    def run(self, now: Optional[datetime] = None) -> Result[FollowUpRunResult]:
        """
        Send due follow-ups.

        Send failures are counted and logged; one conversation going wrong
        never stops the sweep.
        """
        now = ensure_utc(now) or utc_now()
        rules = self.follow_up_repository.get_active_inactivity_rules()
        result = FollowUpRunResult(rules=len(rules))
        if not rules:
            return Result.success(result)

        shortest_wait = timedelta(hours=rules[0].inactivity_hours)
        conversations = self.conversation_repository.find_awaiting_follow_up(now - shortest_wait)
        self.rate_limiter.reset()

        for conversation in conversations:
            result.checked += 1
            try:
                outcome = self._follow_up_under_lock(conversation, rules, now)
            except ContactLockTimeout:
                # Inbound traffic for this contact; the next sweep looks again
                outcome = SKIPPED
            except Exception:
                logger.exception("Follow-up failed", conversation_id=conversation.id)
                self.conversation_repository.rollback()
                outcome = FAILED

            if outcome == SENT:
                result.sent += 1
            elif outcome == FAILED:
                result.failed += 1
            else:
                result.skipped += 1

        logger.info("Follow-up sweep finished", **result.to_dict())
        return Result.success(result)

    def _follow_up_under_lock(self, conversation, rules: List[FollowUpRule], now: datetime) -> str:
        contact = conversation.contact
        if self.contact_lock is None:
            return self._follow_up(conversation, contact, rules, now)
        with self.contact_lock.hold(contact.phone_number):
            return self._follow_up(conversation, contact, rules, now)

    def _follow_up(self, conversation, contact, rules: List[FollowUpRule], now: datetime) -> str:
        conversation = self.conversation_repository.refresh(conversation)
        if conversation.last_message_from != SenderType.CUSTOMER.value:
            return SKIPPED
        if conversation.status not in (ConversationStatus.ACTIVE.value, ConversationStatus.AI_HANDLED.value):
            return SKIPPED

        silent_since = ensure_utc(conversation.last_message_at)
        hours_inactive = (now - silent_since).total_seconds() / 3600

        if self.message_repository.has_from_sender_since(conversation.id, SenderType.AI.value,
                                                         now - RECENT_AI_MESSAGE_WINDOW):
            return SKIPPED

        already_sent = self.message_repository.follow_up_rule_ids_since(conversation.id, silent_since)
        rule = next((r for r in rules
                     if hours_inactive >= r.inactivity_hours and r.id not in already_sent), None)
        if rule is None:
            return SKIPPED

        body = render(rule.message_template, contact)
        self.rate_limiter.wait()
        send_result = self.whatsapp_client.send_text(contact.phone_number, body)
        if not send_result.success:
            logger.warning("Follow-up send failed", conversation_id=conversation.id,
                           rule_id=rule.id, error=send_result.error)
            return FAILED

        sent_at = utc_now()
        self.message_repository.create(
            conversation_id=conversation.id,
            sender_type=SenderType.AI.value,
            content=body,
            message_type=MessageType.TEXT.value,
            delivery_status=DeliveryStatus.SENT.value,
            provider_message_id=send_result.message_id,
            message_metadata={
                'follow_up_rule_id': rule.id,
                'follow_up_rule_name': rule.name,
                'hours_inactive': round(hours_inactive, 1),
            },
            created_at=sent_at,
        )
        self.conversation_repository.touch(conversation, SenderType.AI.value, sent_at)
        self.message_repository.commit()

        logger.info("Follow-up sent", conversation_id=conversation.id, rule_id=rule.id,
                    hours_inactive=round(hours_inactive, 1))
        return SENT
