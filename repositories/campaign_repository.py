"""
CampaignRepository - Data access layer for Campaign entities
Isolates all database queries related to campaigns and their dispatch runs
"""

from typing import List, Optional
from datetime import datetime
from utils.datetime_utils import utc_now
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from crm_database import Campaign, CampaignExecution, CampaignDelivery
from services.enums import CampaignStatus
import logging

logger = logging.getLogger(__name__)


class CampaignRepository(BaseRepository[Campaign]):
    """Repository for Campaign data access"""

    def __init__(self, session):
        """Initialize repository with database session"""
        super().__init__(session, Campaign)

    def get_due_scheduled_campaigns(self, now: Optional[datetime] = None) -> List[Campaign]:
        """
        Get scheduled campaigns whose scheduled time has arrived.

        Args:
            now: Reference time (defaults to current UTC time)
        """
        now = now or utc_now()
        return self.session.query(Campaign)\
            .filter(Campaign.status == CampaignStatus.SCHEDULED.value)\
            .filter(Campaign.scheduled_at.isnot(None))\
            .filter(Campaign.scheduled_at <= now)\
            .order_by(Campaign.scheduled_at.asc(), Campaign.id.asc())\
            .all()

    def get_status(self, campaign_id: int) -> Optional[str]:
        """
        Read the current status with a column query so an external status
        change committed mid-run is visible even if the entity is loaded.
        """
        return self.session.query(Campaign.status)\
            .filter(Campaign.id == campaign_id)\
            .scalar()

    def claim_for_dispatch(self, campaign_id: int) -> bool:
        """
        Atomically move a draft/scheduled campaign to running.

        Returns:
            True if this caller won the claim, False if the campaign was not
            in a dispatchable status (e.g. another run already claimed it)
        """
        try:
            claimed = self.session.query(Campaign)\
                .filter(Campaign.id == campaign_id)\
                .filter(Campaign.status.in_(CampaignStatus.dispatchable()))\
                .update({
                    Campaign.status: CampaignStatus.RUNNING.value,
                    Campaign.started_at: utc_now(),
                    Campaign.sent_count: 0,
                    Campaign.failed_count: 0,
                }, synchronize_session=False)
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error claiming campaign {campaign_id}: {e}")
            self.session.rollback()
            raise
        return claimed == 1

    def increment_sent(self, campaign_id: int, execution_id: Optional[int] = None) -> None:
        self._increment(campaign_id, execution_id, 'sent_count')

    def increment_failed(self, campaign_id: int, execution_id: Optional[int] = None) -> None:
        self._increment(campaign_id, execution_id, 'failed_count')

    def _increment(self, campaign_id: int, execution_id: Optional[int], field: str) -> None:
        try:
            column = getattr(Campaign, field)
            self.session.query(Campaign)\
                .filter(Campaign.id == campaign_id)\
                .update({column: column + 1}, synchronize_session=False)
            if execution_id is not None:
                exec_column = getattr(CampaignExecution, field)
                self.session.query(CampaignExecution)\
                    .filter(CampaignExecution.id == execution_id)\
                    .update({exec_column: exec_column + 1}, synchronize_session=False)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing {field} for campaign {campaign_id}: {e}")
            self.session.rollback()
            raise

    def set_status(self, campaign_id: int, status: str, **fields) -> None:
        values = {Campaign.status: status}
        for name, value in fields.items():
            values[getattr(Campaign, name)] = value
        self.session.query(Campaign)\
            .filter(Campaign.id == campaign_id)\
            .update(values, synchronize_session=False)
        self.session.flush()

    def transition_status(self, campaign_id: int, from_statuses: List[str], to_status: str) -> bool:
        """Conditional status change; False when the campaign was not in from_statuses"""
        updated = self.session.query(Campaign)\
            .filter(Campaign.id == campaign_id, Campaign.status.in_(from_statuses))\
            .update({Campaign.status: to_status}, synchronize_session=False)
        self.session.flush()
        return updated == 1

    # Dispatch runs

    def create_execution(self, campaign_id: int, total_recipients: int) -> CampaignExecution:
        return self._add(CampaignExecution(
            campaign_id=campaign_id,
            status='running',
            total_recipients=total_recipients,
        ))

    def finish_execution(self, execution_id: int, status: str) -> None:
        self.session.query(CampaignExecution)\
            .filter(CampaignExecution.id == execution_id)\
            .update({CampaignExecution.status: status,
                     CampaignExecution.completed_at: utc_now()},
                    synchronize_session=False)
        self.session.flush()

    def record_delivery(self, execution_id: int, campaign_id: int, contact_id: int, success: bool,
                        provider_message_id: Optional[str] = None,
                        error: Optional[str] = None) -> CampaignDelivery:
        return self._add(CampaignDelivery(
            execution_id=execution_id,
            campaign_id=campaign_id,
            contact_id=contact_id,
            success=success,
            provider_message_id=provider_message_id,
            error=error,
        ))

    def _add(self, entity):
        try:
            self.session.add(entity)
            self.session.flush()
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error saving {type(entity).__name__}: {e}")
            self.session.rollback()
            raise
