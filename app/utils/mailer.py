"""Email channel adapter (SMTP)."""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid, parseaddr
from typing import Callable, Optional

from app.types.notifications import Channel, DeliveryResult, acknowledge_url

_LOGGER = logging.getLogger(__name__)


class EmailAdapter:
    method = Channel.EMAIL

    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        app_url: str,
        sender: Optional[str] = None,
        secure: bool = False,
        timeout: int = 30,
        transport: Optional[Callable[[MIMEMultipart], None]] = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.app_url = app_url
        self.secure = secure
        self.timeout = timeout
        self._transport = transport or self._smtp_send

    @classmethod
    def from_settings(cls, settings) -> "EmailAdapter":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASS,
            app_url=settings.APP_URL,
            sender=settings.SMTP_FROM,
            secure=settings.SMTP_SECURE,
            timeout=settings.SMTP_TIMEOUT,
        )

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def compose(self, to: str, subject: str, body: str, reminder_id: str) -> MIMEMultipart:
        link = acknowledge_url(self.app_url, reminder_id, self.method)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg["Message-ID"] = make_msgid()

        text_content = f"{subject}\n\n{body}\n\nAcknowledge at: {link}"
        html_content = f"""
        <div style="font-family: Arial, sans-serif; padding: 20px;">
          <h2>{html.escape(subject)}</h2>
          <p>{html.escape(body).replace(chr(10), '<br>')}</p>
          <hr>
          <p style="color: #666; font-size: 12px;">
            <a href="{html.escape(link)}">Click here to acknowledge</a>
          </p>
        </div>
        """
        msg.attach(MIMEText(text_content, "plain"))
        msg.attach(MIMEText(html_content, "html"))
        return msg

    def _smtp_send(self, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self.secure:
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls(context=context)
                server.login(self.user, self.password)
                server.send_message(msg)

    async def send(self, address: str, subject: str, body: str, reminder_id: str) -> DeliveryResult:
        if not self.configured:
            return DeliveryResult.failed(self.method, "Email service not configured")
        _, to = parseaddr(address or "")
        if "@" not in to:
            return DeliveryResult.failed(self.method, f"Invalid email address: {address!r}")

        msg = self.compose(to, subject, body, reminder_id)
        try:
            await asyncio.to_thread(self._transport, msg)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("[Email] send to %s failed: %s", to, exc)
            return DeliveryResult.failed(self.method, str(exc) or exc.__class__.__name__)

        _LOGGER.info("[Email] sent reminder %s to %s", reminder_id, to)
        return DeliveryResult.ok(self.method, msg["Message-ID"])
