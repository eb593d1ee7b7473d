"""SMS channel adapter backed by Telnyx."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import telnyx

from app.types.notifications import Channel, DeliveryResult, acknowledge_url

_LOGGER = logging.getLogger(__name__)


def _send_via_telnyx(api_key: str, from_number: str, to: str, text: str) -> Optional[str]:
    client = telnyx.Telnyx(api_key=api_key)
    response = client.messages.send(from_=from_number, to=to, text=text)
    return getattr(getattr(response, "data", None), "id", None)


class SmsAdapter:
    method = Channel.SMS

    def __init__(
        self,
        api_key: Optional[str],
        from_number: Optional[str],
        app_url: str,
        transport: Optional[Callable[[str, str, str, str], Optional[str]]] = None,
    ):
        self.api_key = api_key
        self.from_number = from_number
        self.app_url = app_url
        self._transport = transport or _send_via_telnyx

    @classmethod
    def from_settings(cls, settings) -> "SmsAdapter":
        return cls(settings.TELNYX_API_KEY, settings.TELNYX_FROM_NUMBER, settings.APP_URL)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_number)

    def compose(self, body: str, reminder_id: str) -> str:
        # Carrier segment limits are left to the provider
        return f"{body}\n\nAcknowledge: {acknowledge_url(self.app_url, reminder_id, self.method)}"

    async def send(self, address: str, subject: str, body: str, reminder_id: str) -> DeliveryResult:
        if not self.configured:
            return DeliveryResult.failed(self.method, "SMS service not configured")
        to = (address or "").strip()
        if not to:
            return DeliveryResult.failed(self.method, "Invalid phone number")

        text = self.compose(body, reminder_id)
        try:
            message_id = await asyncio.to_thread(
                self._transport, self.api_key, self.from_number, to, text
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("[SMS] send to %s failed: %s", to, exc)
            return DeliveryResult.failed(self.method, str(exc) or exc.__class__.__name__)

        _LOGGER.info("[SMS] sent reminder %s to %s (id=%s)", reminder_id, to, message_id)
        return DeliveryResult.ok(self.method, message_id)
