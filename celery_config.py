"""
Shared Celery configuration for both Flask app and Celery workers
"""
import os
import ssl
from urllib.parse import urlparse, parse_qs
from celery import Celery

_NO_VERIFY_SSL = {
    'ssl_cert_reqs': ssl.CERT_NONE,
    'ssl_ca_certs': None,
    'ssl_certfile': None,
    'ssl_keyfile': None,
}


def _with_ssl_params(url):
    """Managed Redis (rediss://) needs ssl_cert_reqs in the URL"""
    if not url.startswith('rediss://'):
        return url
    parsed = urlparse(url)
    if 'ssl_cert_reqs' in parse_qs(parsed.query):
        return url
    separator = '&' if parsed.query else '?'
    return url + f"{separator}ssl_cert_reqs=CERT_NONE"


def create_celery_app(app_name=__name__, broker_url=None, result_backend_url=None):
    """Create a Celery app, enabling SSL options when the broker or backend uses rediss://"""
    broker_url = broker_url or os.environ.get('CELERY_BROKER_URL') or os.environ.get('REDIS_URL') \
        or 'redis://redis:6379/0'
    result_backend_url = result_backend_url or os.environ.get('CELERY_RESULT_BACKEND') or broker_url

    broker_uses_ssl = broker_url.startswith('rediss://')
    backend_uses_ssl = result_backend_url.startswith('rediss://')

    if not (broker_uses_ssl or backend_uses_ssl):
        return Celery(app_name, broker=broker_url, backend=result_backend_url)

    return Celery(
        app_name,
        broker=_with_ssl_params(broker_url),
        backend=_with_ssl_params(result_backend_url),
        broker_use_ssl=_NO_VERIFY_SSL if broker_uses_ssl else None,
        redis_backend_use_ssl=_NO_VERIFY_SSL if backend_uses_ssl else None,
        broker_connection_retry_on_startup=True,
        broker_connection_retry=True,
        broker_connection_max_retries=3,
        broker_transport_options={
            'socket_connect_timeout': 30,
            'socket_timeout': 30,
        }
    )
