"""
Workflow automation client (n8n webhook target).

Trigger actions hand events to the automation platform and only care about
whether the hand-off was accepted.
"""

import logging
import time
from typing import Any, Dict, Optional

import requests

from logging_config import performance_logger
from services.common.result import Result, ErrorCode

logger = logging.getLogger(__name__)


class AutomationClient:
    """Posts trigger payloads to the automation webhook"""

    def __init__(self, base_url: Optional[str], timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/') if base_url else None
        self.timeout = (5, timeout)
        self.http = session or requests.Session()

    def resolve_url(self, path: Optional[str] = None, url: Optional[str] = None) -> Optional[str]:
        """An explicit url wins; otherwise path is joined onto the configured base URL."""
        if url:
            return url
        if not self.base_url:
            return None
        if path:
            return f"{self.base_url}/{path.lstrip('/')}"
        return self.base_url

    def send(self, payload: Dict[str, Any], path: Optional[str] = None,
             url: Optional[str] = None) -> Result[Dict[str, Any]]:
        """
        Fire a workflow.

        Args:
            payload: JSON body
            path: Optional path under the configured webhook base URL
            url: Optional absolute URL overriding the base URL

        Returns:
            Result with {'status_code': ...} on success, TRIGGER_ACTION_FAILURE otherwise
        """
        target = self.resolve_url(path, url)
        if not target:
            return Result.failure("Automation webhook URL not configured",
                                  code=ErrorCode.TRIGGER_ACTION_FAILURE)

        started = time.monotonic()
        status_code = None
        try:
            response = self.http.post(target, json=payload, timeout=self.timeout)
            status_code = response.status_code
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Automation webhook call to {target} failed: {e}")
            return Result.failure(f"Automation webhook call failed: {e}",
                                  code=ErrorCode.TRIGGER_ACTION_FAILURE,
                                  metadata={'url': target, 'status_code': status_code})
        finally:
            performance_logger.log_api_call(
                service='automation',
                endpoint=target,
                duration_ms=(time.monotonic() - started) * 1000,
                status_code=status_code,
                success=status_code is not None and status_code < 400,
            )

        return Result.success({'status_code': status_code}, metadata={'url': target})
