"""
ContactRepository - Data access layer for Contact entities
Isolates all database queries related to contacts, their tags and journey records
"""

from typing import List, Optional, Iterable
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from crm_database import Contact, ContactTag, CustomerJourney
import logging

logger = logging.getLogger(__name__)


class ContactRepository(BaseRepository[Contact]):
    """Repository for Contact data access"""

    def __init__(self, session):
        """Initialize repository with database session"""
        super().__init__(session, Contact)

    def find_by_phone(self, phone_number: str) -> Optional[Contact]:
        """
        Find contact by exact phone number.

        Args:
            phone_number: Phone number as delivered by the provider (digits, no '+')
        """
        return self.session.query(Contact).filter_by(phone_number=phone_number).first()

    def add_tags(self, contact: Contact, tags: Iterable[str]) -> List[str]:
        """
        Add tags to a contact, skipping ones it already carries.

        Returns:
            Tags that were newly added
        """
        existing = {t.tag for t in contact.tags}
        added = []
        try:
            for tag in tags:
                tag = (tag or '').strip()
                if not tag or tag in existing:
                    continue
                contact.tags.append(ContactTag(tag=tag))
                existing.add(tag)
                added.append(tag)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error tagging contact {contact.id}: {e}")
            self.session.rollback()
            raise
        return added

    def find_segment(self, target_tags: Optional[Iterable[str]] = None) -> List[Contact]:
        """
        Resolve a campaign segment.

        An empty tag list selects every contact. Otherwise a contact is
        selected when it carries ANY of the tags. Results are ordered by
        contact id so a dispatch run iterates in a stable order.
        """
        tags = sorted({t for t in (target_tags or []) if t})
        query = self.session.query(Contact)
        if tags:
            matching_ids = self.session.query(ContactTag.contact_id)\
                .filter(ContactTag.tag.in_(tags))
            query = query.filter(Contact.id.in_(matching_ids))
        return query.order_by(Contact.id.asc()).all()

    # Journey / profile state

    def initialize_journey(self, contact_id: int) -> CustomerJourney:
        """Create the engagement profile for a new contact"""
        journey = CustomerJourney(
            contact_id=contact_id,
            stage='awareness',
            score=0,
            engagement_level='low',
            touchpoints=[],
        )
        self.session.add(journey)
        self.session.flush()
        return journey

    def get_journey(self, contact_id: int) -> Optional[CustomerJourney]:
        return self.session.query(CustomerJourney).filter_by(contact_id=contact_id).first()

    def append_touchpoint(self, contact_id: int, touchpoint: dict) -> CustomerJourney:
        """
        Append a touchpoint to the contact's journey, creating the journey if missing.

        The JSON column is reassigned with a new list so the ORM detects the change;
        existing entries are always preserved.
        """
        journey = self.get_journey(contact_id) or self.initialize_journey(contact_id)
        journey.touchpoints = list(journey.touchpoints or []) + [touchpoint]
        self.session.flush()
        return journey
