"""
Celery task for inactivity follow-ups
Runs on the Beat schedule beside the scheduled-campaign sweep
"""

from utils.datetime_utils import utc_now
from celery_worker import celery
from app import create_app
from logging_config import get_logger

logger = get_logger(__name__)


@celery.task(name='tasks.follow_up_tasks.send_inactivity_follow_ups', bind=True, max_retries=3)
def send_inactivity_follow_ups(self):
    """Send every follow-up whose inactivity window has passed"""
    app = create_app()

    with app.app_context():
        try:
            follow_up_service = app.services.get('follow_up')
            result = follow_up_service.run(utc_now())
        except Exception as e:
            logger.error("Follow-up sweep failed", error=str(e))
            raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

        return {'success': True, **result.data.to_dict(), 'timestamp': utc_now().isoformat()}
