"""
WhatsApp Cloud API Client

Handles direct API communication with the Meta Graph messages endpoint:
- Authentication
- Bounded timeouts
- Retry with backoff on rate limiting and server errors
- Mapping every outcome to a SendResult (this client never raises on send)
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from logging_config import performance_logger

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Outcome of sending one message to one recipient"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message_id: Optional[str]) -> 'SendResult':
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> 'SendResult':
        return cls(success=False, error=error)


class WhatsAppAPIClient:
    """Client for the WhatsApp Cloud API"""

    def __init__(self, access_token: Optional[str], phone_number_id: Optional[str],
                 api_version: str = 'v18.0', base_url: str = 'https://graph.facebook.com',
                 timeout: float = 15.0, max_retries: int = 2, retry_delay: float = 1.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize WhatsApp API client.

        Args:
            access_token: System user access token
            phone_number_id: Sending phone number id
            api_version: Graph API version
            base_url: Graph API base URL
            timeout: Read timeout in seconds; a timeout is reported as a failed send
            max_retries: Retries for 429 and 5xx responses
            retry_delay: Initial backoff delay in seconds
            session: Optional requests session (injected in tests)
        """
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = f"{base_url.rstrip('/')}/{api_version}"
        self.timeout = (5, timeout)  # Connection timeout, read timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.http = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def send_text(self, to: str, body: str) -> SendResult:
        """
        Send a text message.

        Args:
            to: Recipient phone number (digits, no '+')
            body: Message text

        Returns:
            SendResult with the provider message id on success
        """
        if not self.is_configured:
            return SendResult.failed("WhatsApp API credentials not configured")
        if not to:
            return SendResult.failed("Recipient phone number is required")

        payload = {
            'messaging_product': 'whatsapp',
            'recipient_type': 'individual',
            'to': to,
            'type': 'text',
            'text': {'preview_url': False, 'body': body},
        }

        try:
            data = self._make_request('POST', f"{self.phone_number_id}/messages", json_data=payload)
        except WhatsAppAPIError as e:
            logger.error(f"WhatsApp send to {to} failed: {e}")
            return SendResult.failed(str(e))

        messages = data.get('messages') or []
        message_id = messages[0].get('id') if messages else None
        if not message_id:
            logger.warning(f"WhatsApp send to {to} returned no message id: {data}")
        return SendResult.ok(message_id)

    def _make_request(self, method: str, endpoint: str, json_data: Optional[Dict] = None,
                      retry_count: int = 0) -> Dict[str, Any]:
        """
        Make HTTP request to the Graph API with retry logic.

        Raises:
            WhatsAppAPIError: On timeouts, connection errors and non-retryable
                or exhausted error responses
        """
        url = f"{self.base_url}/{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json"
        }

        started = time.monotonic()
        try:
            response = self.http.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            self._log_call(endpoint, started, None, False)
            # Not retried: the provider may already have accepted the message
            raise WhatsAppAPIError(f"Request timeout: {e}")
        except requests.exceptions.RequestException as e:
            self._log_call(endpoint, started, None, False)
            raise WhatsAppAPIError(f"Request failed: {e}")

        self._log_call(endpoint, started, response.status_code, response.ok)

        if response.status_code == 429 or response.status_code >= 500:
            if retry_count < self.max_retries:
                delay = self.retry_delay * (2 ** retry_count)
                logger.warning(f"WhatsApp API returned {response.status_code}, retrying after {delay} seconds")
                time.sleep(delay)
                return self._make_request(method, endpoint, json_data, retry_count + 1)
            raise WhatsAppAPIError(
                f"WhatsApp API error {response.status_code} after {self.max_retries} retries"
            )

        if not response.ok:
            raise WhatsAppAPIError(f"WhatsApp API error {response.status_code}: {self._error_message(response)}")

        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _error_message(response) -> str:
        try:
            return response.json().get('error', {}).get('message') or response.text
        except ValueError:
            return response.text

    @staticmethod
    def _log_call(endpoint: str, started: float, status_code: Optional[int], success: bool):
        performance_logger.log_api_call(
            service='whatsapp',
            endpoint=endpoint,
            duration_ms=(time.monotonic() - started) * 1000,
            status_code=status_code,
            success=success,
        )


class WhatsAppAPIError(Exception):
    """Raised internally when a Graph API call fails"""
    pass
