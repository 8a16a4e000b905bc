"""
Service layer enums
These match the string values stored in the database columns
but allow services to work without importing database models
"""

from enum import Enum


class ConversationStatus(str, Enum):
    """Who is currently responsible for answering a conversation"""
    ACTIVE = 'active'
    AI_HANDLED = 'ai_handled'
    AGENT_ASSIGNED = 'agent_assigned'
    CLOSED = 'closed'

    @classmethod
    def open_statuses(cls):
        return [cls.ACTIVE.value, cls.AI_HANDLED.value, cls.AGENT_ASSIGNED.value]


class CampaignStatus(str, Enum):
    """Campaign lifecycle"""
    DRAFT = 'draft'
    SCHEDULED = 'scheduled'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @classmethod
    def dispatchable(cls):
        return [cls.DRAFT.value, cls.SCHEDULED.value]


class SenderType(str, Enum):
    CUSTOMER = 'customer'
    AGENT = 'agent'
    AI = 'ai'


class MessageType(str, Enum):
    """WhatsApp message types"""
    TEXT = 'text'
    INTERACTIVE = 'interactive'
    BUTTON = 'button'
    IMAGE = 'image'
    AUDIO = 'audio'
    VIDEO = 'video'
    DOCUMENT = 'document'
    STICKER = 'sticker'
    LOCATION = 'location'
    CONTACTS = 'contacts'
    UNKNOWN = 'unknown'

    @classmethod
    def classifiable(cls):
        return [cls.TEXT.value, cls.INTERACTIVE.value, cls.BUTTON.value]


class DeliveryStatus(str, Enum):
    SENT = 'sent'
    DELIVERED = 'delivered'
    READ = 'read'
    FAILED = 'failed'


class EventType(str, Enum):
    """Events triggers can subscribe to"""
    MESSAGE_RECEIVED = 'message_received'


class ConditionKind(str, Enum):
    """Supported trigger predicate kinds"""
    INTENT = 'intent'
    SENTIMENT = 'sentiment'
    URGENCY = 'urgency'
    KEYWORD = 'keyword'
    TOPIC = 'topic'
    CONTACT_TAG = 'contact_tag'
    MIN_CONFIDENCE = 'min_confidence'
    MAX_CONFIDENCE = 'max_confidence'
    SUGGESTED_TRIGGER = 'suggested_trigger'
    CONVERSATION_STATUS = 'conversation_status'
    FIELD_EQUALS = 'field_equals'


class ActionKind(str, Enum):
    """Supported trigger action kinds"""
    AUTOMATION_WEBHOOK = 'automation_webhook'
    ADD_TAGS = 'add_tags'


class FollowUpCondition(str, Enum):
    """What makes a follow-up rule fire"""
    INACTIVITY = 'inactivity'
