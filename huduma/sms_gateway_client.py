"""
SMS gateway client - HTTP client for a bulk SMS provider (Africa's Talking style API).
Centralizes headers, error handling, and request logic.
"""

import logging
import requests
from typing import Dict, Any, Optional

from huduma.config import HudumaConfig, get_config
from huduma.exceptions import NotificationDeliveryError
from huduma.models import DeliveryResult, NotificationChannel

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Huduma-Front-Desk/1.0",
}

# Provider status codes that mean the message was accepted
ACCEPTED_STATUS_CODES = {100, 101, 102}


class SmsGatewayChannel:
    """SMS channel over the provider's HTTP API"""

    channel = NotificationChannel.SMS

    def __init__(self, config: Optional[HudumaConfig] = None, timeout: int = 10):
        """
        Initialize gateway client.

        Args:
            config: Settings holding the gateway URL and credentials
            timeout: Request timeout in seconds
        """
        self.config = config or get_config()
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        headers = DEFAULT_HEADERS.copy()
        headers["apiKey"] = self.config.sms_api_key or ""
        return headers

    def _parse_recipient(self, data: Dict[str, Any]) -> Dict[str, Any]:
        recipients = data.get("SMSMessageData", {}).get("Recipients", [])
        if not recipients:
            message = data.get("SMSMessageData", {}).get("Message", "no recipients accepted")
            raise NotificationDeliveryError(f"SMS rejected: {message}")
        return recipients[0]

    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """
        Send one text message. The subject is not transmitted.

        Raises:
            NotificationDeliveryError: On HTTP errors, timeouts or provider rejection
        """
        if not self.config.sms_enabled:
            raise NotificationDeliveryError("SMS gateway not configured")

        payload = {"username": self.config.sms_username or "", "to": to, "message": body}
        if self.config.sms_sender_id:
            payload["from"] = self.config.sms_sender_id

        try:
            logger.debug(f"POST SMS to {to}")
            response = requests.post(
                self.config.sms_gateway_url,
                headers=self._get_headers(),
                data=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            logger.error(f"HTTP {e.response.status_code} error sending SMS to {to}")
            raise NotificationDeliveryError(
                f"SMS gateway returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"SMS gateway request failed for {to}: {e}")
            raise NotificationDeliveryError(f"SMS gateway request failed: {e}") from e

        recipient = self._parse_recipient(data)
        if recipient.get("statusCode") not in ACCEPTED_STATUS_CODES:
            raise NotificationDeliveryError(
                f"SMS rejected: {recipient.get('status', 'unknown status')}"
            )

        logger.info(f"SMS accepted for {to}: {recipient.get('messageId')}")
        return DeliveryResult(provider_message_id=recipient.get("messageId"))
