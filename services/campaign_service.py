"""
CampaignService - campaign management with the repository pattern
Creation, scheduling lookups and administrative pause. Dispatch lives in
CampaignDispatcher.
"""

from datetime import datetime
from typing import List, Optional

from repositories.campaign_repository import CampaignRepository
from services.common.result import Result, ErrorCode
from services.enums import CampaignStatus
from services.template_service import TemplateValidationError, validate_template
from utils.datetime_utils import ensure_utc, utc_now
import logging

logger = logging.getLogger(__name__)


class CampaignService:
    """Service for managing WhatsApp broadcast campaigns"""

    def __init__(self, campaign_repository: CampaignRepository):
        self.campaign_repository = campaign_repository

    def create_campaign(self,
                        name: str,
                        message_template: str,
                        target_tags: Optional[List[str]] = None,
                        scheduled_at: Optional[datetime] = None) -> Result:
        """
        Create a new campaign.

        Args:
            name: Campaign name
            message_template: Body with {{name}}/{{company}}/{{email}} placeholders
            target_tags: Tags selecting the audience; empty means every contact
            scheduled_at: When set, the campaign is created as scheduled

        Returns:
            Result[Campaign]: Success with the created campaign or a VALIDATION_ERROR
        """
        if not name or not name.strip():
            return Result.failure("Campaign name is required", code=ErrorCode.VALIDATION_ERROR)

        try:
            extra_variables = validate_template(message_template)
        except TemplateValidationError as e:
            return Result.failure(str(e), code=ErrorCode.VALIDATION_ERROR)

        if target_tags is not None and not isinstance(target_tags, (list, tuple)):
            return Result.failure("target_tags must be a list", code=ErrorCode.VALIDATION_ERROR)
        tags = sorted({str(t).strip() for t in (target_tags or []) if str(t).strip()})

        status = CampaignStatus.SCHEDULED.value if scheduled_at else CampaignStatus.DRAFT.value
        campaign = self.campaign_repository.create(
            name=name.strip(),
            message_template=message_template,
            target_tags=tags,
            status=status,
            scheduled_at=ensure_utc(scheduled_at),
            total_recipients=0,
            sent_count=0,
            failed_count=0,
        )
        self.campaign_repository.commit()

        if extra_variables:
            logger.info(f"Campaign {campaign.id} uses contact metadata variables: {extra_variables}")
        logger.info(f"Created campaign {campaign.id} ({status}) targeting {tags or 'all contacts'}")
        return Result.success(campaign)

    def get_campaign(self, campaign_id: int):
        return self.campaign_repository.get_by_id(campaign_id)

    def get_due_campaigns(self, now: Optional[datetime] = None):
        """Scheduled campaigns whose time has come"""
        return self.campaign_repository.get_due_scheduled_campaigns(ensure_utc(now) or utc_now())

    def pause_campaign(self, campaign_id: int) -> Result:
        """
        Administrative pause. A running dispatch notices the change before
        its next recipient and halts.
        """
        campaign = self.campaign_repository.get_by_id(campaign_id)
        if campaign is None:
            return Result.failure(f"Campaign {campaign_id} not found", code=ErrorCode.NOT_FOUND)

        pausable = [CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value, CampaignStatus.RUNNING.value]
        if not self.campaign_repository.transition_status(campaign_id, pausable, CampaignStatus.PAUSED.value):
            current = self.campaign_repository.get_status(campaign_id)
            return Result.failure(
                f"Campaign {campaign_id} is {current} and cannot be paused",
                code=ErrorCode.VALIDATION_ERROR,
                metadata={'status': current},
            )

        self.campaign_repository.commit()
        logger.info(f"Paused campaign {campaign_id}")
        return Result.success({'campaign_id': campaign_id, 'status': CampaignStatus.PAUSED.value})
