"""WhatsApp channel adapter (WhatsApp Cloud API over the Graph HTTP API).

Sending needs a ready session. Readiness is injected as a callable that the
adapter asks before each send; when it answers no the send fails right away
with no retry.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Dict, Optional

import requests

from app.types.notifications import Channel, DeliveryResult, acknowledge_url

_LOGGER = logging.getLogger(__name__)


def normalize_number(value: str) -> str:
    return re.sub(r"[^\d]", "", value or "")


class WhatsAppError(RuntimeError):
    pass


class WhatsAppAdapter:
    method = Channel.WHATSAPP

    def __init__(
        self,
        token: Optional[str],
        phone_id: Optional[str],
        app_url: str,
        api_base: str = "https://graph.facebook.com/v19.0",
        timeout: int = 20,
        enabled: bool = True,
        ready: Optional[Callable[[], bool]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.phone_id = phone_id
        self.app_url = app_url
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.enabled = enabled
        self._ready = ready or self._credentials_present
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings, ready: Optional[Callable[[], bool]] = None) -> "WhatsAppAdapter":
        return cls(
            token=settings.WHATSAPP_TOKEN,
            phone_id=settings.WHATSAPP_PHONE_ID,
            app_url=settings.APP_URL,
            api_base=settings.WHATSAPP_API_BASE,
            timeout=settings.WHATSAPP_TIMEOUT,
            enabled=settings.ENABLE_WHATSAPP,
            ready=ready,
        )

    def _credentials_present(self) -> bool:
        return bool(self.token and self.phone_id)

    def is_ready(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self._ready())
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("[WhatsApp] readiness check failed: %s", exc)
            return False

    def compose(self, body: str, reminder_id: str) -> str:
        return f"{body}\n\nAcknowledge: {acknowledge_url(self.app_url, reminder_id, self.method)}"

    def _post_text(self, to: str, text: str) -> Optional[str]:
        url = f"{self.api_base}/{self.phone_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        resp = self._session.post(url, headers=headers, json=payload, timeout=self.timeout)
        try:
            data: Dict[str, Any] = resp.json()
        except ValueError:
            data = {}
        if not (200 <= resp.status_code < 300):
            detail = (data.get("error") or {}).get("message") or resp.text
            raise WhatsAppError(f"HTTP {resp.status_code}: {detail}")
        messages = data.get("messages") or []
        return messages[0].get("id") if messages else None

    async def send(self, address: str, subject: str, body: str, reminder_id: str) -> DeliveryResult:
        if not self.is_ready():
            return DeliveryResult.failed(self.method, "WhatsApp service not ready")
        to = normalize_number(address)
        if not to:
            return DeliveryResult.failed(self.method, f"Invalid WhatsApp number: {address!r}")

        text = self.compose(body, reminder_id)
        try:
            message_id = await asyncio.to_thread(self._post_text, to, text)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("[WhatsApp] send to %s failed: %s", to, exc)
            return DeliveryResult.failed(self.method, str(exc) or exc.__class__.__name__)

        _LOGGER.info("[WhatsApp] sent reminder %s to %s (id=%s)", reminder_id, to, message_id)
        return DeliveryResult.ok(self.method, message_id)
