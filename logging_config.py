# logging_config.py
"""
Structured JSON logging for the web process and the Celery workers.

Every entry carries the service name, and whichever of the HTTP request id
or the Celery task id is current, so one inbound WhatsApp message can be
followed from the webhook through the intake task.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from flask import has_request_context, request, g

NOISY_LOGGERS = ("urllib3", "requests", "werkzeug", "celery.redirected")


def _bind_service(service_name: str):
    def processor(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return processor


def _bind_request(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if has_request_context():
        event_dict.setdefault("request_id", getattr(g, 'request_id', None))
        event_dict.setdefault("path", request.path)
        event_dict.setdefault("method", request.method)
    return event_dict


def _bind_task(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    from celery import current_task
    task = current_task
    if task and getattr(task, 'request', None) is not None and task.request.id:
        event_dict.setdefault("task_id", task.request.id)
        event_dict.setdefault("task_name", task.name)
    return event_dict


def setup_logging(app_name: str = "engagement-crm", log_level: str = "INFO") -> None:
    """
    Route structlog output to stdout as JSON and align stdlib logging with it.

    Modules that use logging.getLogger() keep plain-text messages; they share
    the same stream and level.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _bind_service(app_name),
            _bind_request,
            _bind_task,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None):
    return structlog.get_logger(name or "engagement")


class ExternalCallLogger:
    """Latency and outcome of calls to WhatsApp, Gemini and the automation webhook"""

    def __init__(self):
        self.logger = get_logger("external_calls")

    def log_api_call(self, service: str, endpoint: str, duration_ms: float,
                     status_code: Optional[int] = None, success: bool = True):
        log = self.logger.info if success else self.logger.warning
        log("External call finished",
            collaborator=service,
            endpoint=endpoint,
            duration_ms=round(duration_ms, 2),
            status_code=status_code,
            success=success)


performance_logger = ExternalCallLogger()
