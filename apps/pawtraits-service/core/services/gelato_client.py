"""
Thin client for the Gelato print-on-demand order API.
"""
import os
import logging
from typing import Optional, Dict, Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_ORDER_API_URL = 'https://order.gelatoapis.com'


class GelatoError(Exception):
    """Raised when Gelato rejects or fails an API call."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GelatoConfigurationError(GelatoError):
    """Raised when GELATO_API_KEY is missing."""


class GelatoConfig:
    def __init__(self):
        self.api_key = os.getenv('GELATO_API_KEY', '')
        self.order_api_url = os.getenv('GELATO_ORDER_API_URL', DEFAULT_ORDER_API_URL).rstrip('/')
        self.timeout_seconds = float(os.getenv('GELATO_TIMEOUT_SECONDS', '30'))


class GelatoClient:
    def __init__(self, config: Optional[GelatoConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or GelatoConfig()
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise GelatoConfigurationError('GELATO_API_KEY environment variable is not set')
        return {
            'X-API-KEY': self.config.api_key,
            'Content-Type': 'application/json',
        }

    def create_order(self, order_data: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(
            "gelato_create_order reference=%s items=%d currency=%s",
            order_data.get('orderReferenceId'), len(order_data.get('items', [])), order_data.get('currency'),
        )
        response = self.session.post(
            f"{self.config.order_api_url}/v4/orders",
            json=order_data,
            headers=self._headers(),
            timeout=self.config.timeout_seconds,
        )
        if not response.ok:
            logger.error(
                "gelato_create_order_failed status=%s body=%s", response.status_code, response.text[:500]
            )
            raise GelatoError(
                f"Gelato order creation failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
                body=response.text,
            )
        created = response.json()
        logger.info("gelato_order_created gelato_id=%s", created.get('id'))
        return created
