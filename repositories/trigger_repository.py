"""
TriggerRepository - Data access layer for automation triggers
"""

from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from crm_database import Trigger, TriggerExecution
import logging

logger = logging.getLogger(__name__)


class TriggerRepository(BaseRepository[Trigger]):
    """Repository for Trigger data access"""

    def __init__(self, session):
        super().__init__(session, Trigger)

    def get_active_triggers(self) -> List[Trigger]:
        return self.session.query(Trigger)\
            .filter(Trigger.is_active.is_(True))\
            .order_by(Trigger.id)\
            .all()

    def get_active_by_event_type(self, event_type: str) -> List[Trigger]:
        return self.session.query(Trigger)\
            .filter(Trigger.is_active.is_(True), Trigger.event_type == event_type)\
            .order_by(Trigger.id)\
            .all()

    def increment_execution_count(self, trigger_id: int) -> None:
        """
        Increment the counter in a single UPDATE so concurrent activations
        of the same trigger are not lost.
        """
        try:
            self.session.query(Trigger)\
                .filter(Trigger.id == trigger_id)\
                .update({Trigger.execution_count: Trigger.execution_count + 1},
                        synchronize_session=False)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing execution count for trigger {trigger_id}: {e}")
            self.session.rollback()
            raise

    def reset_execution_count(self, trigger_id: int) -> bool:
        """Explicit administrative reset; the only way the counter goes down"""
        try:
            updated = self.session.query(Trigger)\
                .filter(Trigger.id == trigger_id)\
                .update({Trigger.execution_count: 0}, synchronize_session=False)
            self.session.flush()
            return updated > 0
        except SQLAlchemyError as e:
            logger.error(f"Error resetting execution count for trigger {trigger_id}: {e}")
            self.session.rollback()
            raise

    def get_execution_count(self, trigger_id: int) -> Optional[int]:
        return self.session.query(Trigger.execution_count)\
            .filter(Trigger.id == trigger_id)\
            .scalar()

    def record_execution(self, trigger_id: int, success: bool, contact_id: Optional[int] = None,
                         conversation_id: Optional[int] = None, error: Optional[str] = None) -> TriggerExecution:
        execution = TriggerExecution(
            trigger_id=trigger_id,
            contact_id=contact_id,
            conversation_id=conversation_id,
            success=success,
            error=error,
        )
        self.session.add(execution)
        self.session.flush()
        return execution
