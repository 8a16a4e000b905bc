# celery_worker.py
from app import create_app
from celery_config import create_celery_app
from logging_config import get_logger

logger = get_logger(__name__)

# Create the Flask app instance. Tasks run inside its app context.
flask_app = create_app()

celery = create_celery_app(
    __name__,
    broker_url=flask_app.config.get('CELERY_BROKER_URL'),
    result_backend_url=flask_app.config.get('CELERY_RESULT_BACKEND'),
)
celery.conf.update(
    timezone='UTC',
    task_always_eager=flask_app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


# Set the custom Task class to ensure tasks run within the Flask app context.
class ContextTask(celery.Task):
    def __call__(self, *args, **kwargs):
        with flask_app.app_context():
            return self.run(*args, **kwargs)


celery.Task = ContextTask

# --- Celery Beat Schedule ---
celery.conf.beat_schedule = {
    'dispatch-scheduled-campaigns': {
        'task': 'tasks.campaign_tasks.dispatch_scheduled_campaigns',
        # Every minute, start campaigns whose scheduled_at has passed
        'schedule': 60.0,
    },
    'send-inactivity-follow-ups': {
        'task': 'tasks.follow_up_tasks.send_inactivity_follow_ups',
        # Hourly; rule windows are whole hours
        'schedule': 3600.0,
    },
}

# Import tasks so they register with Celery
import tasks.intake_tasks  # noqa: E402,F401
import tasks.campaign_tasks  # noqa: E402,F401
import tasks.follow_up_tasks  # noqa: E402,F401

logger.info("Celery tasks registered", tasks=sorted(t for t in celery.tasks if t.startswith('tasks.')))
