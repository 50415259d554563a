"""
Google Sheets Client for Order Service

Posts order rows to a Google Apps Script web-app. Notifications are
best-effort: failures are logged and reported as False, never raised.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import NotificationConfig

logger = logging.getLogger(__name__)


class SheetsClient:
    """Best-effort spreadsheet notifier"""

    def __init__(self, config: NotificationConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.client = httpx.AsyncClient(timeout=config.timeout, transport=transport, follow_redirects=True)
        if not config.enabled:
            logger.info("GOOGLE_SHEETS_URL not set, spreadsheet notifications disabled")

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def notify(self, payload: Dict[str, Any]) -> bool:
        """
        Append a row to the sheet

        Args:
            payload: Row fields, posted as JSON

        Returns:
            True if the sheet accepted the row
        """
        if not self.config.enabled:
            return False

        try:
            response = await self.client.post(self.config.sheets_url, json=payload)
            response.raise_for_status()
            logger.debug(f"Google Sheets updated for order {payload.get('orderId')}")
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Google Sheets error: HTTP {e.response.status_code}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Google Sheets error: {e}")
            return False
