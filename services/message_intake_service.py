"""
Message Intake Pipeline.

Processes one inbound WhatsApp message end to end:

    1. resolve or create the contact (initializing its journey profile)
    2. resolve or create the open conversation
    3. persist the inbound message and commit
    4. stop for media types that cannot be classified
    5. classify with recent context
    6. store conversation analytics
    7. evaluate triggers
    8. apply the handover decision
    9. append a journey touchpoint

Steps 1-3 are mandatory; their database errors propagate so the caller can
retry. Every later step is isolated: a failure is logged, the session is
rolled back to the last commit, and the pipeline moves on.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from logging_config import get_logger
from repositories.contact_repository import ContactRepository
from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from services.ai_service import AIService, Classification
from services.common.result import Result
from services.enums import DeliveryStatus, MessageType, SenderType
from services.handover_service import HandoverDecision, HandoverService
from services.trigger_service import ActivatedTrigger, TriggerEngine
from services.webhook_service import InboundEvent
from utils.datetime_utils import utc_now, utc_from_timestamp

logger = get_logger(__name__)


@dataclass
class IntakeOutcome:
    contact_id: int
    conversation_id: int
    message_id: int
    contact_created: bool = False
    conversation_created: bool = False
    duplicate: bool = False
    classified: bool = False
    classification: Optional[Classification] = None
    activated_triggers: List[ActivatedTrigger] = field(default_factory=list)
    handover: Optional[HandoverDecision] = None
    failed_steps: List[str] = field(default_factory=list)
    stopped_reason: Optional[str] = None


class MessageIntakeService:
    """Orchestrates analysis, triggers and handover for inbound messages"""

    def __init__(self, contact_repository: ContactRepository,
                 conversation_repository: ConversationRepository,
                 message_repository: MessageRepository,
                 ai_service: AIService,
                 trigger_engine: TriggerEngine,
                 handover_service: HandoverService,
                 contact_lock,
                 context_window_size: int = 10):
        self.contact_repository = contact_repository
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.ai_service = ai_service
        self.trigger_engine = trigger_engine
        self.handover_service = handover_service
        self.contact_lock = contact_lock
        self.context_window_size = context_window_size

    def process_event(self, event: InboundEvent) -> Result[IntakeOutcome]:
        """
        Run the pipeline for one inbound event, serialized per contact.

        Raises:
            ContactLockTimeout: If another event for the same contact holds the lock
            SQLAlchemyError: If the contact, conversation or message cannot be stored
        """
        with self.contact_lock.hold(event.from_phone):
            return self._process(event)

    def _process(self, event: InboundEvent) -> Result[IntakeOutcome]:
        existing = self.message_repository.find_by_provider_id(event.provider_message_id)
        if existing is not None and existing.sender_type == SenderType.CUSTOMER.value:
            logger.info("Duplicate webhook delivery ignored",
                        provider_message_id=event.provider_message_id)
            conversation = existing.conversation
            return Result.success(IntakeOutcome(
                contact_id=conversation.contact_id,
                conversation_id=conversation.id,
                message_id=existing.id,
                duplicate=True,
                stopped_reason='duplicate',
            ))

        # Steps 1-3: mandatory
        contact, contact_created = self._resolve_contact(event)
        conversation, conversation_created = self._resolve_conversation(contact)
        message = self._persist_inbound(event, conversation)
        self.message_repository.commit()

        outcome = IntakeOutcome(
            contact_id=contact.id,
            conversation_id=conversation.id,
            message_id=message.id,
            contact_created=contact_created,
            conversation_created=conversation_created,
        )
        logger.info("Inbound message stored", contact_id=contact.id,
                    conversation_id=conversation.id, message_id=message.id,
                    message_type=event.type)

        # Step 4
        if event.type not in MessageType.classifiable() or not (event.text or '').strip():
            outcome.stopped_reason = f"unclassifiable:{event.type}"
            logger.info("Skipping analysis for unclassifiable message",
                        message_id=message.id, message_type=event.type)
            return Result.success(outcome)

        # Step 5
        history = self._run_step(outcome, 'context', self.message_repository.get_recent_for_conversation,
                                 conversation.id, self.context_window_size) or []
        classification = self._run_step(outcome, 'analysis', self.ai_service.classify,
                                         event.text, history, contact)
        if classification is None:
            classification = Classification.neutral()
        outcome.classification = classification
        outcome.classified = not classification.is_fallback

        # Step 6
        self._run_step(outcome, 'analytics', self._record_analytics, conversation, message, classification)

        # Step 7
        outcome.activated_triggers = self._run_step(
            outcome, 'triggers', self.trigger_engine.evaluate,
            classification, contact, conversation, event.text) or []

        # Step 8
        outcome.handover = self._run_step(outcome, 'handover', self.handover_service.decide,
                                          classification, contact, conversation, history)

        # Step 9
        self._run_step(outcome, 'journey', self._record_touchpoint, contact, classification)

        if outcome.failed_steps:
            logger.warning("Inbound message processed with failures", message_id=message.id,
                           failed_steps=outcome.failed_steps)
        else:
            logger.info("Inbound message processed", message_id=message.id,
                        intent=classification.intent, confidence=classification.confidence,
                        triggers=len(outcome.activated_triggers),
                        status=outcome.handover.status if outcome.handover else None)
        return Result.success(outcome)

    # Mandatory steps

    def _resolve_contact(self, event: InboundEvent):
        contact = self.contact_repository.find_by_phone(event.from_phone)
        if contact:
            return contact, False

        try:
            contact = self.contact_repository.create(
                phone_number=event.from_phone,
                name=event.contact_name or event.from_phone,
                source='whatsapp',
                contact_metadata={},
            )
            self.contact_repository.initialize_journey(contact.id)
            self.contact_repository.commit()
        except IntegrityError:
            # Created concurrently by another worker
            self.contact_repository.rollback()
            contact = self.contact_repository.find_by_phone(event.from_phone)
            if contact is None:
                raise
            return contact, False

        logger.info("Contact created from inbound message", contact_id=contact.id)
        return contact, True

    def _resolve_conversation(self, contact):
        conversation = self.conversation_repository.find_open_for_contact(contact.id)
        if conversation:
            return conversation, False
        conversation = self.conversation_repository.find_or_create_open_for_contact(
            contact.id,
            last_message_from=SenderType.CUSTOMER.value,
            last_message_at=utc_now(),
        )
        return conversation, True

    def _persist_inbound(self, event: InboundEvent, conversation):
        received_at = utc_now()
        sent_at = None
        if event.timestamp:
            try:
                sent_at = utc_from_timestamp(event.timestamp).isoformat()
            except (TypeError, ValueError, OverflowError):
                logger.warning("Unparseable provider timestamp", timestamp=event.timestamp)

        message = self.message_repository.create(
            conversation_id=conversation.id,
            sender_type=SenderType.CUSTOMER.value,
            content=event.text,
            message_type=event.type,
            delivery_status=DeliveryStatus.DELIVERED.value,
            provider_message_id=event.provider_message_id,
            message_metadata={
                'provider_timestamp': sent_at,
                'interactive_id': event.interactive_id,
            },
            created_at=received_at,
        )
        self.conversation_repository.touch(conversation, SenderType.CUSTOMER.value, received_at)
        return message

    # Optional steps

    def _record_analytics(self, conversation, message, classification: Classification):
        self.conversation_repository.record_analytics(
            conversation.id,
            message_id=message.id,
            sentiment_score=classification.sentiment_score,
            intent_detected=[classification.intent],
            topics_discussed=list(classification.topics),
            insights=classification.to_dict(),
            analyzed_at=utc_now(),
        )
        self.conversation_repository.commit()

    def _record_touchpoint(self, contact, classification: Classification):
        self.contact_repository.append_touchpoint(contact.id, {
            'type': 'message',
            'timestamp': utc_now().isoformat(),
            'data': {
                'intent': classification.intent,
                'sentiment': classification.sentiment,
            },
        })
        self.contact_repository.commit()

    def _run_step(self, outcome: IntakeOutcome, name: str, func: Callable, *args) -> Any:
        try:
            return func(*args)
        except Exception as e:
            logger.exception("Intake step failed", step=name, message_id=outcome.message_id, error=str(e))
            outcome.failed_steps.append(name)
            try:
                self.message_repository.rollback()
            except Exception as rollback_error:
                logger.error("Rollback after failed intake step failed", error=str(rollback_error))
            return None
