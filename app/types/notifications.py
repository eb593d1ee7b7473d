"""Pydantic models shared by the channel adapters, the dispatcher and the
scheduler.

Kept free of FastAPI and database imports so adapters can be exercised in
isolation; the only coupling to the store is the ``AcknowledgmentMethod``
enum, which doubles as the channel identifier.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from db.db import AcknowledgmentMethod

Channel = AcknowledgmentMethod

DELIVERY_CHANNELS = (Channel.EMAIL, Channel.SMS, Channel.WHATSAPP)


class DeliveryResult(BaseModel):
    """Outcome of a single adapter call. Adapters never raise; they return this."""

    success: bool
    method: Channel
    provider_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, method: Channel, provider_id: Optional[str] = None) -> "DeliveryResult":
        return cls(success=True, method=method, provider_id=provider_id)

    @classmethod
    def failed(cls, method: Channel, error: str) -> "DeliveryResult":
        return cls(success=False, method=method, error=error)


class MemberOutcome(BaseModel):
    member_id: str
    member_name: str
    results: List[DeliveryResult] = Field(default_factory=list)

    @property
    def reached(self) -> bool:
        # one successful channel is enough
        return any(r.success for r in self.results)


class DispatchOutcome(BaseModel):
    reminder_id: str
    members: List[MemberOutcome] = Field(default_factory=list)

    @property
    def reached(self) -> bool:
        # one reached member is enough to call the reminder delivered
        return any(m.reached for m in self.members)

    @property
    def members_attempted(self) -> int:
        return len(self.members)

    @property
    def deliveries_succeeded(self) -> int:
        return sum(1 for m in self.members for r in m.results if r.success)

    @property
    def deliveries_failed(self) -> int:
        return sum(1 for m in self.members for r in m.results if not r.success)


class TickReport(BaseModel):
    started_at: datetime
    imminent: int = 0
    overdue: int = 0
    sent: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped: bool = False
    aborted: bool = False


class ChannelAdapter(Protocol):
    method: Channel

    async def send(self, address: str, subject: str, body: str, reminder_id: str) -> DeliveryResult:
        ...


def acknowledge_url(app_url: str, reminder_id: str, method: Channel) -> str:
    """Deep-link a recipient can open to confirm they saw the reminder."""
    return f"{app_url.rstrip('/')}/acknowledge/{reminder_id}?method={Channel(method).value}"
