"""
Handover Decision Unit.

Decides, per classified inbound message, whether the AI answers the
conversation or a human agent takes over.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from logging_config import get_logger
from repositories.conversation_repository import ConversationRepository
from repositories.message_repository import MessageRepository
from services.ai_service import AIService, Classification
from services.enums import ConversationStatus, SenderType, DeliveryStatus, MessageType
from services.whatsapp_api_client import WhatsAppAPIClient
from utils.datetime_utils import utc_now

logger = get_logger(__name__)

LOW_CONFIDENCE = 'low_confidence'


@dataclass
class HandoverDecision:
    status: str
    confidence: float
    reply_message_id: Optional[int] = None
    reply_sent: bool = False
    handover_reason: Optional[str] = None
    skipped: bool = False

    @property
    def ai_handled(self) -> bool:
        return self.status == ConversationStatus.AI_HANDLED.value


class HandoverService:
    """Applies the confidence threshold to route a conversation to AI or a human"""

    def __init__(self, conversation_repository: ConversationRepository,
                 message_repository: MessageRepository,
                 ai_service: AIService,
                 whatsapp_client: WhatsAppAPIClient,
                 confidence_threshold: float = 0.7):
        self.conversation_repository = conversation_repository
        self.message_repository = message_repository
        self.ai_service = ai_service
        self.whatsapp_client = whatsapp_client
        self.confidence_threshold = confidence_threshold

    def decide(self, classification: Classification, contact: Any, conversation: Any,
               history: Optional[List[Any]] = None) -> HandoverDecision:
        """
        Transition the conversation for one classified message.

        At or above the threshold an AI reply is generated, sent, stored as
        exactly one ai Message, and the conversation becomes ai_handled.
        Below it the conversation becomes agent_assigned with no reply.
        Closed conversations are left alone.
        """
        confidence = classification.confidence

        if conversation.status == ConversationStatus.CLOSED.value:
            logger.info("Conversation closed, skipping handover", conversation_id=conversation.id)
            return HandoverDecision(status=conversation.status, confidence=confidence, skipped=True)

        if confidence >= self.confidence_threshold:
            return self._hand_to_ai(classification, contact, conversation, history or [])
        return self._hand_to_agent(conversation, confidence)

    def _hand_to_ai(self, classification: Classification, contact: Any, conversation: Any,
                    history: List[Any]) -> HandoverDecision:
        reply = self.ai_service.generate_reply(classification, contact, history)
        send_result = self.whatsapp_client.send_text(contact.phone_number, reply)

        if not send_result.success:
            logger.warning("AI reply could not be delivered",
                           conversation_id=conversation.id, error=send_result.error)

        now = utc_now()
        message = self.message_repository.create(
            conversation_id=conversation.id,
            sender_type=SenderType.AI.value,
            content=reply,
            message_type=MessageType.TEXT.value,
            delivery_status=DeliveryStatus.SENT.value if send_result.success else DeliveryStatus.FAILED.value,
            provider_message_id=send_result.message_id,
            message_metadata={
                'confidence': classification.confidence,
                'intent': classification.intent,
                'error': send_result.error,
            },
            created_at=now,
        )
        self.conversation_repository.update(
            conversation,
            status=ConversationStatus.AI_HANDLED.value,
            ai_confidence_score=classification.confidence,
            handover_reason=None,
            last_message_at=now,
            last_message_from=SenderType.AI.value,
        )
        self.conversation_repository.commit()

        logger.info("Conversation handled by AI", conversation_id=conversation.id,
                    confidence=classification.confidence, reply_sent=send_result.success)
        return HandoverDecision(
            status=ConversationStatus.AI_HANDLED.value,
            confidence=classification.confidence,
            reply_message_id=message.id,
            reply_sent=send_result.success,
        )

    def _hand_to_agent(self, conversation: Any, confidence: float) -> HandoverDecision:
        self.conversation_repository.update(
            conversation,
            status=ConversationStatus.AGENT_ASSIGNED.value,
            handover_reason=LOW_CONFIDENCE,
            ai_confidence_score=confidence,
        )
        self.conversation_repository.commit()

        logger.info("Conversation handed over to agent", conversation_id=conversation.id,
                    confidence=confidence, threshold=self.confidence_threshold)
        return HandoverDecision(
            status=ConversationStatus.AGENT_ASSIGNED.value,
            confidence=confidence,
            handover_reason=LOW_CONFIDENCE,
        )
