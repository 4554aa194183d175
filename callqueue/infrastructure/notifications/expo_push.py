"""
Missed-Call Notifications
Push fan-out to registered team devices through the Expo push API.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
DEVICES_TABLE = "devices"


@dataclass
class NotificationResult:
    """Result of one fan-out."""
    success: bool
    sent: int = 0
    error: Optional[str] = None


class MissedCallNotifier(ABC):
    """
    Abstract base class for missed-call notification channels.

    Implementations must not raise; failures are reported in the result.
    """

    @abstractmethod
    async def notify_missed_call(
        self,
        client_name: Optional[str],
        phone: str,
        client_id: Optional[str] = None,
        record_id: Optional[str] = None
    ) -> NotificationResult:
        pass


class ExpoPushNotifier(MissedCallNotifier):
    """
    Sends Expo push messages to every token in the devices table.

    Usage:
        notifier = ExpoPushNotifier(supabase)
        await notifier.notify_missed_call("Jan Kowalski", "123456789")
    """

    def __init__(
        self,
        supabase,
        http_client: Optional[httpx.AsyncClient] = None,
        push_url: str = EXPO_PUSH_URL,
        enabled: bool = True,
        timeout: float = 10.0
    ):
        self.supabase = supabase
        self._http = http_client
        self.push_url = push_url
        self.enabled = enabled
        self.timeout = timeout

    async def _device_tokens(self) -> List[str]:
        response = self.supabase.table(DEVICES_TABLE).select("push_token").execute()
        return [row["push_token"] for row in response.data or [] if row.get("push_token")]

    @staticmethod
    def build_messages(tokens: List[str], title: str, body: str, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {"to": token, "sound": "default", "title": title, "body": body, "data": data}
            for token in tokens
        ]

    async def notify_missed_call(
        self,
        client_name: Optional[str],
        phone: str,
        client_id: Optional[str] = None,
        record_id: Optional[str] = None
    ) -> NotificationResult:
        if not self.enabled:
            return NotificationResult(success=True)

        try:
            tokens = await self._device_tokens()
        except Exception as e:
            logger.error(f"Error fetching devices: {e}")
            return NotificationResult(success=False, error=str(e))

        if not tokens:
            logger.info("No devices to notify")
            return NotificationResult(success=True)

        messages = self.build_messages(
            tokens,
            title="Missed call",
            body=f"From: {client_name or phone}",
            data={
                "type": "missed_call",
                "clientId": client_id,
                "callLogId": record_id,
                "phone": phone,
            },
        )

        try:
            if self._http is not None:
                response = await self._http.post(self.push_url, json=messages, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.push_url, json=messages)
        except httpx.HTTPError as e:
            logger.error(f"Error sending push notifications: {e}")
            return NotificationResult(success=False, error=str(e))

        if response.status_code >= 400:
            logger.error(f"Expo push rejected ({response.status_code}): {response.text}")
            return NotificationResult(success=False, error=f"HTTP {response.status_code}")

        logger.info(f"Sent missed-call notifications to {len(tokens)} devices")
        return NotificationResult(success=True, sent=len(tokens))
