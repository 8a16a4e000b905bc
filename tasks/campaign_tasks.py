"""
Celery tasks for campaign dispatch
Handles background broadcast runs and the scheduled-campaign sweep
"""

from utils.datetime_utils import utc_now
from celery_worker import celery
from app import create_app
from logging_config import get_logger

logger = get_logger(__name__)


@celery.task(name='tasks.campaign_tasks.execute_campaign', bind=True)
def execute_campaign(self, campaign_id: int):
    """Dispatch one campaign to its segment"""
    app = create_app()

    with app.app_context():
        dispatcher = app.services.get('campaign_dispatcher')
        result = dispatcher.execute(campaign_id)

        if result.is_failure:
            # NOT_FOUND and ALREADY_RUNNING are final. An aborted run has already been
            # released, and a scheduled campaign is picked up again by the next sweep
            logger.warning("Campaign dispatch rejected", campaign_id=campaign_id,
                           error=result.error, code=result.error_code)
            return {
                'success': False,
                'campaign_id': campaign_id,
                'error': result.error,
                'error_code': result.error_code,
            }

        logger.info("Campaign dispatch task finished", **result.data.to_dict())
        return {'success': True, **result.data.to_dict()}


@celery.task(name='tasks.campaign_tasks.dispatch_scheduled_campaigns', bind=True, max_retries=3)
def dispatch_scheduled_campaigns(self):
    """Queue every scheduled campaign whose time has arrived"""
    app = create_app()

    with app.app_context():
        try:
            campaign_service = app.services.get('campaign')
            due = campaign_service.get_due_campaigns(utc_now())
        except Exception as e:
            logger.error("Scheduled campaign lookup failed", error=str(e))
            raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

        queued = []
        for campaign in due:
            execute_campaign.delay(campaign.id)
            queued.append(campaign.id)

        if queued:
            logger.info("Queued scheduled campaigns", campaign_ids=queued)

        return {
            'success': True,
            'campaigns_found': len(due),
            'campaigns_queued': len(queued),
            'campaign_ids': queued,
            'timestamp': utc_now().isoformat(),
        }
