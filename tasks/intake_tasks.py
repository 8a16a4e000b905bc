"""
Celery tasks for inbound WhatsApp messages
The webhook acknowledges immediately and hands each event to this queue
"""

from sqlalchemy.exc import OperationalError

from celery_worker import celery
from app import create_app
from logging_config import get_logger
from services.contact_lock import ContactLockTimeout
from services.webhook_service import InboundEvent

logger = get_logger(__name__)


@celery.task(name='tasks.intake_tasks.process_inbound_message', bind=True, max_retries=3)
def process_inbound_message(self, event_data: dict):
    """
    Run the intake pipeline for one inbound event.

    Lock timeouts and transient database errors in the mandatory steps are
    retried with exponential backoff; everything after persistence is handled
    inside the pipeline.
    """
    app = create_app()

    with app.app_context():
        event = InboundEvent.from_dict(event_data)
        intake_service = app.services.get('message_intake')

        try:
            result = intake_service.process_event(event)
        except (ContactLockTimeout, OperationalError) as e:
            logger.warning("Inbound message processing deferred",
                           provider_message_id=event.provider_message_id,
                           error=str(e), retries=self.request.retries)
            raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

        outcome = result.data
        return {
            'success': result.is_success,
            'contact_id': outcome.contact_id,
            'conversation_id': outcome.conversation_id,
            'message_id': outcome.message_id,
            'duplicate': outcome.duplicate,
            'failed_steps': outcome.failed_steps,
            'status': outcome.handover.status if outcome.handover else None,
        }
