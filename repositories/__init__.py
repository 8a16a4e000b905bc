"""
Repository Layer - Data Access Abstraction
Implements the Repository Pattern for database isolation
"""

from .base_repository import BaseRepository
from .contact_repository import ContactRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository
from .trigger_repository import TriggerRepository
from .campaign_repository import CampaignRepository

__all__ = [
    'BaseRepository',
    'ContactRepository',
    'ConversationRepository',
    'MessageRepository',
    'TriggerRepository',
    'CampaignRepository',
]
