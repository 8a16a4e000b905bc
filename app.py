# app.py

from flask import Flask, g, request, jsonify
from config import get_config
from extensions import db, migrate
import os
import uuid
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, get_logger

# Configure logging as early as possible
setup_logging(app_name="engagement-crm", log_level=os.environ.get('LOG_LEVEL', 'INFO'))
logger = get_logger(__name__)


# Configure Sentry for production error tracking
def init_sentry():
    """Initialize Sentry error tracking in production."""
    sentry_dsn = os.environ.get('SENTRY_DSN')
    if sentry_dsn and os.environ.get('FLASK_ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.celery import CeleryIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FlaskIntegration(transaction_style='endpoint'),
                SqlalchemyIntegration(),
                CeleryIntegration()
            ],
            traces_sample_rate=0.1,
            environment=os.environ.get('FLASK_ENV', 'development'),
            release=os.environ.get('GIT_SHA', 'unknown')
        )
        logger.info("Sentry error tracking initialized")


init_sentry()


def create_app(config_name=None, test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)

    if test_config:
        app.config.update(test_config)

    # Validate after overrides so tests can exercise bad values
    config_class.init_app(app)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    migrate.init_app(app, db)

    app.services = _build_registry(app)

    @app.before_request
    def before_request():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        logger.info("Request started",
                    request_id=g.request_id,
                    method=request.method,
                    path=request.path)

    @app.after_request
    def after_request(response):
        logger.info("Request completed",
                    request_id=getattr(g, 'request_id', None),
                    status_code=response.status_code)
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        return response

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("Internal server error",
                     request_id=getattr(g, 'request_id', None),
                     error=str(error))
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(404)
    def not_found_error(error):
        logger.warning("Resource not found",
                       request_id=getattr(g, 'request_id', None),
                       path=request.path)
        return jsonify({'error': 'Not found'}), 404

    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring"""
        from sqlalchemy import text
        health_status = {
            'status': 'healthy',
            'service': 'engagement-crm'
        }

        try:
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except Exception as e:
            health_status['database'] = 'error'
            health_status['status'] = 'degraded'
            logger.error(f"Health check database error: {e}")

        return jsonify(health_status), 200 if health_status['status'] == 'healthy' else 503

    from routes.webhook_routes import webhook_bp
    from routes.campaign_routes import campaign_bp
    from routes.trigger_routes import trigger_bp
    from routes.follow_up_routes import follow_up_bp

    app.register_blueprint(webhook_bp, url_prefix='/webhooks')
    app.register_blueprint(campaign_bp, url_prefix='/api')
    app.register_blueprint(trigger_bp, url_prefix='/api')
    app.register_blueprint(follow_up_bp, url_prefix='/api')

    return app


def _build_registry(app):
    """Register every repository, client and pipeline service as a lazy factory."""
    from services.service_registry import create_registry, ServiceLifecycle
    registry = create_registry()
    config = app.config

    registry.register_factory(
        'db_session',
        lambda: db.session,
        lifecycle=ServiceLifecycle.TRANSIENT
    )

    # Repositories
    for name, factory in (
        ('contact_repository', _create_contact_repository),
        ('conversation_repository', _create_conversation_repository),
        ('message_repository', _create_message_repository),
        ('trigger_repository', _create_trigger_repository),
        ('campaign_repository', _create_campaign_repository),
        ('follow_up_repository', _create_follow_up_repository),
    ):
        registry.register_factory(name, factory, dependencies=['db_session'])

    # External clients
    registry.register_singleton('whatsapp_client', lambda: _create_whatsapp_client(config))
    registry.register_singleton('ai', lambda: _create_ai_service(config))
    registry.register_singleton('automation_client', lambda: _create_automation_client(config))
    registry.register_singleton('contact_lock', lambda: _create_contact_lock(config))

    # Pipeline services
    registry.register_factory(
        'trigger_engine',
        lambda trigger_repository, contact_repository, automation_client: _create_trigger_engine(
            trigger_repository, contact_repository, automation_client
        ),
        dependencies=['trigger_repository', 'contact_repository', 'automation_client']
    )
    registry.register_factory(
        'trigger',
        lambda trigger_repository: _create_trigger_service(trigger_repository),
        dependencies=['trigger_repository']
    )
    registry.register_factory(
        'handover',
        lambda conversation_repository, message_repository, ai, whatsapp_client: _create_handover_service(
            config, conversation_repository, message_repository, ai, whatsapp_client
        ),
        dependencies=['conversation_repository', 'message_repository', 'ai', 'whatsapp_client']
    )
    registry.register_factory(
        'message_intake',
        lambda contact_repository, conversation_repository, message_repository, ai,
        trigger_engine, handover, contact_lock: _create_message_intake_service(
            config, contact_repository, conversation_repository, message_repository, ai,
            trigger_engine, handover, contact_lock
        ),
        dependencies=['contact_repository', 'conversation_repository', 'message_repository', 'ai',
                      'trigger_engine', 'handover', 'contact_lock']
    )
    registry.register_singleton('webhook', lambda: _create_webhook_service(config))
    registry.register_factory(
        'campaign_dispatcher',
        lambda campaign_repository, contact_repository, conversation_repository, message_repository,
        whatsapp_client, contact_lock: _create_campaign_dispatcher(
            config, campaign_repository, contact_repository, conversation_repository,
            message_repository, whatsapp_client, contact_lock
        ),
        dependencies=['campaign_repository', 'contact_repository', 'conversation_repository',
                      'message_repository', 'whatsapp_client', 'contact_lock']
    )
    registry.register_factory(
        'campaign',
        lambda campaign_repository: _create_campaign_service(campaign_repository),
        dependencies=['campaign_repository']
    )
    registry.register_factory(
        'follow_up',
        lambda follow_up_repository, conversation_repository, message_repository, whatsapp_client,
        contact_lock: _create_follow_up_service(
            config, follow_up_repository, conversation_repository, message_repository,
            whatsapp_client, contact_lock
        ),
        dependencies=['follow_up_repository', 'conversation_repository', 'message_repository',
                      'whatsapp_client', 'contact_lock']
    )

    errors = registry.validate_dependencies()
    if errors:
        for error in errors:
            logger.error(f"Service dependency error: {error}")
        raise RuntimeError(f"Service dependency errors: {errors}")

    if app.debug:
        logger.debug(f"Service initialization order: {registry.get_initialization_order()}")

    if config.get('FLASK_ENV') == 'production':
        registry.warmup(['whatsapp_client', 'automation_client', 'contact_lock'])

    return registry


# Service Factory Functions
# These are only called when the service is first requested

def _create_contact_repository(db_session):
    from repositories.contact_repository import ContactRepository
    return ContactRepository(session=db_session)


def _create_conversation_repository(db_session):
    from repositories.conversation_repository import ConversationRepository
    return ConversationRepository(session=db_session)


def _create_message_repository(db_session):
    from repositories.message_repository import MessageRepository
    return MessageRepository(session=db_session)


def _create_trigger_repository(db_session):
    from repositories.trigger_repository import TriggerRepository
    return TriggerRepository(session=db_session)


def _create_campaign_repository(db_session):
    from repositories.campaign_repository import CampaignRepository
    return CampaignRepository(session=db_session)


def _create_follow_up_repository(db_session):
    from repositories.follow_up_repository import FollowUpRuleRepository
    return FollowUpRuleRepository(session=db_session)


def _create_whatsapp_client(config):
    """Create the WhatsApp Cloud API client"""
    from services.whatsapp_api_client import WhatsAppAPIClient
    logger.info("Initializing WhatsAppAPIClient")
    client = WhatsAppAPIClient(
        access_token=config.get('WHATSAPP_ACCESS_TOKEN'),
        phone_number_id=config.get('WHATSAPP_PHONE_NUMBER_ID'),
        api_version=config.get('WHATSAPP_API_VERSION', 'v18.0'),
        base_url=config.get('WHATSAPP_API_BASE_URL', 'https://graph.facebook.com'),
        timeout=config.get('EXTERNAL_CALL_TIMEOUT_SECONDS', 15.0),
    )
    if not client.is_configured:
        logger.warning("WhatsApp credentials missing; outbound sends will fail")
    return client


def _create_ai_service(config):
    from services.ai_service import AIService
    logger.info("Initializing AIService")
    return AIService(
        api_key=config.get('GEMINI_API_KEY'),
        model_name=config.get('GEMINI_MODEL', 'gemini-1.5-flash'),
        timeout=config.get('EXTERNAL_CALL_TIMEOUT_SECONDS', 15.0),
    )


def _create_automation_client(config):
    from services.automation_client import AutomationClient
    return AutomationClient(
        base_url=config.get('AUTOMATION_WEBHOOK_URL'),
        timeout=config.get('EXTERNAL_CALL_TIMEOUT_SECONDS', 15.0),
    )


def _create_contact_lock(config):
    """Redis lock shared by all workers, or an in-process lock for dev/tests"""
    from services.contact_lock import LocalContactLockManager, RedisContactLockManager
    timeout = config.get('CONTACT_LOCK_TIMEOUT_SECONDS', 30.0)
    if config.get('CONTACT_LOCK_BACKEND') == 'redis':
        import redis
        logger.info("Initializing Redis contact lock")
        return RedisContactLockManager(redis.from_url(config['REDIS_URL']), timeout=timeout)
    return LocalContactLockManager(timeout=timeout)


def _create_trigger_engine(trigger_repository, contact_repository, automation_client):
    from services.trigger_service import TriggerEngine
    return TriggerEngine(
        trigger_repository=trigger_repository,
        contact_repository=contact_repository,
        automation_client=automation_client,
    )


def _create_trigger_service(trigger_repository):
    from services.trigger_service import TriggerService
    return TriggerService(trigger_repository=trigger_repository)


def _create_handover_service(config, conversation_repository, message_repository, ai, whatsapp_client):
    from services.handover_service import HandoverService
    return HandoverService(
        conversation_repository=conversation_repository,
        message_repository=message_repository,
        ai_service=ai,
        whatsapp_client=whatsapp_client,
        confidence_threshold=config.get('HANDOVER_CONFIDENCE_THRESHOLD', 0.7),
    )


def _create_message_intake_service(config, contact_repository, conversation_repository,
                                   message_repository, ai, trigger_engine, handover, contact_lock):
    """Create the inbound message pipeline"""
    from services.message_intake_service import MessageIntakeService
    logger.info("Initializing MessageIntakeService")
    return MessageIntakeService(
        contact_repository=contact_repository,
        conversation_repository=conversation_repository,
        message_repository=message_repository,
        ai_service=ai,
        trigger_engine=trigger_engine,
        handover_service=handover,
        contact_lock=contact_lock,
        context_window_size=config.get('CONTEXT_WINDOW_SIZE', 10),
    )


def _create_webhook_service(config):
    from services.webhook_service import WebhookService
    return WebhookService(
        verify_token=config.get('WHATSAPP_VERIFY_TOKEN'),
        app_secret=config.get('WHATSAPP_APP_SECRET'),
    )


def _create_campaign_dispatcher(config, campaign_repository, contact_repository, conversation_repository,
                                message_repository, whatsapp_client, contact_lock):
    from services.campaign_dispatcher import CampaignDispatcher
    from services.rate_limiter import FixedIntervalRateLimiter
    logger.info("Initializing CampaignDispatcher")
    return CampaignDispatcher(
        campaign_repository=campaign_repository,
        contact_repository=contact_repository,
        conversation_repository=conversation_repository,
        message_repository=message_repository,
        whatsapp_client=whatsapp_client,
        rate_limiter=FixedIntervalRateLimiter(config.get('CAMPAIGN_SEND_INTERVAL_SECONDS', 1.0)),
        contact_lock=contact_lock,
    )


def _create_campaign_service(campaign_repository):
    from services.campaign_service import CampaignService
    return CampaignService(campaign_repository=campaign_repository)



def _create_follow_up_service(config, follow_up_repository, conversation_repository, message_repository,
                              whatsapp_client, contact_lock):
    from services.follow_up_service import FollowUpService
    from services.rate_limiter import FixedIntervalRateLimiter
    return FollowUpService(
        follow_up_repository=follow_up_repository,
        conversation_repository=conversation_repository,
        message_repository=message_repository,
        whatsapp_client=whatsapp_client,
        rate_limiter=FixedIntervalRateLimiter(config.get('FOLLOW_UP_SEND_INTERVAL_SECONDS', 1.0)),
        contact_lock=contact_lock,
    )

if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
