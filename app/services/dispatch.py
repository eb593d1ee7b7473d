"""Fan a due reminder out to every reachable member of its group.

Flow per reminder:
1. Work out each member's channels from the contact fields they have.
2. Send on all of them concurrently through the channel adapters.
3. Record one acknowledgment per successful send as soon as it lands.
4. Fold everything into a ``DispatchOutcome`` once every send has resolved.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import db
from app.types.notifications import (
    DELIVERY_CHANNELS,
    Channel,
    ChannelAdapter,
    DeliveryResult,
    DispatchOutcome,
    MemberOutcome,
)

_LOGGER = logging.getLogger(__name__)

AckRecorder = Callable[..., Awaitable[object]]

_CONTACT_FIELDS = {
    Channel.EMAIL: "email",
    Channel.SMS: "phone",
    Channel.WHATSAPP: "whatsapp",
}


def channels_for(member) -> List[Tuple[Channel, str]]:
    """(channel, address) pairs for every contact field the member has set."""
    pairs = []
    for channel in DELIVERY_CHANNELS:
        address = getattr(member, _CONTACT_FIELDS[channel], None)
        if address and address.strip():
            pairs.append((channel, address.strip()))
    return pairs


def compose_subject(reminder) -> str:
    return f"Reminder: {reminder.event.title}"


def compose_body(reminder) -> str:
    event = reminder.event
    lines = [reminder.message, "", "Event Details:", f"Title: {event.title}"]
    if event.description:
        lines.append(f"Description: {event.description}")
    lines.append(f"Start Time: {event.start_time.strftime('%Y-%m-%d %H:%M %Z')}")
    if event.location:
        lines.append(f"Location: {event.location}")
    lines.append("")
    lines.append(f"This event starts in {reminder.advance_minutes} minute(s).")
    return "\n".join(lines)


def delivery_notes(result: DeliveryResult, address: str) -> str:
    label = {Channel.EMAIL: "Email", Channel.SMS: "SMS", Channel.WHATSAPP: "WhatsApp"}[result.method]
    if result.provider_id:
        return f"{label} sent to {address}. ID: {result.provider_id}"
    return f"{label} sent to {address}"


class ReminderDispatcher:
    """Delivers one reminder through a fixed set of channel adapters.

    Adapters are built once by the caller and shared across reminders; the
    dispatcher itself keeps no state between calls.
    """

    def __init__(
        self,
        adapters: Mapping[Channel, ChannelAdapter],
        record_acknowledgment: Optional[AckRecorder] = None,
    ):
        self.adapters: Dict[Channel, ChannelAdapter] = dict(adapters)
        self._record = record_acknowledgment or db.insert_acknowledgment

    async def _deliver(
        self, channel: Channel, address: str, member_id: str,
        subject: str, body: str, reminder_id: str,
    ) -> DeliveryResult:
        adapter = self.adapters.get(channel)
        if adapter is None:
            return DeliveryResult.failed(channel, f"No adapter registered for {channel.value}")
        try:
            result = await adapter.send(address, subject, body, reminder_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("[Dispatch] %s adapter raised for reminder %s", channel.value, reminder_id)
            return DeliveryResult.failed(channel, f"Unexpected adapter error: {exc}")

        if result.success:
            try:
                await self._record(
                    reminder_id, channel, member_id=member_id, notes=delivery_notes(result, address)
                )
            except Exception:  # noqa: BLE001
                # the message went out; a missing audit row must not undo that
                _LOGGER.exception(
                    "[Dispatch] could not record %s acknowledgment for reminder %s",
                    channel.value, reminder_id,
                )
        else:
            _LOGGER.info(
                "[Dispatch] %s to member %s failed: %s", channel.value, member_id, result.error
            )
        return result

    async def _deliver_to_member(self, member, subject: str, body: str, reminder_id: str) -> MemberOutcome:
        sends = [
            self._deliver(channel, address, member.id, subject, body, reminder_id)
            for channel, address in channels_for(member)
        ]
        results = await asyncio.gather(*sends)
        return MemberOutcome(member_id=member.id, member_name=member.name, results=list(results))

    async def dispatch(self, reminder) -> DispatchOutcome:
        subject = compose_subject(reminder)
        body = compose_body(reminder)

        reachable = [m for m in reminder.group.members if channels_for(m)]
        skipped = len(reminder.group.members) - len(reachable)
        if skipped:
            _LOGGER.debug("[Dispatch] reminder %s: %d member(s) without contact info", reminder.id, skipped)

        members = await asyncio.gather(
            *(self._deliver_to_member(m, subject, body, reminder.id) for m in reachable)
        )
        outcome = DispatchOutcome(reminder_id=reminder.id, members=list(members))
        _LOGGER.info(
            "[Dispatch] reminder %s: %d/%d member(s) reached, %d ok / %d failed deliveries",
            reminder.id,
            sum(1 for m in outcome.members if m.reached),
            outcome.members_attempted,
            outcome.deliveries_succeeded,
            outcome.deliveries_failed,
        )
        return outcome


def build_default_dispatcher(settings=None, whatsapp_ready: Optional[Callable[[], bool]] = None) -> ReminderDispatcher:
    """Construct the adapters from configuration and wire them into a dispatcher."""
    from app.utils.mailer import EmailAdapter
    from app.utils.sms import SmsAdapter
    from app.utils.whatsapp import WhatsAppAdapter

    if settings is None:
        from config import settings

    return ReminderDispatcher(
        {
            Channel.EMAIL: EmailAdapter.from_settings(settings),
            Channel.SMS: SmsAdapter.from_settings(settings),
            Channel.WHATSAPP: WhatsAppAdapter.from_settings(settings, ready=whatsapp_ready),
        }
    )
