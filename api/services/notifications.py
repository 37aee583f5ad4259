"""
Notification Service — subscription event messages over email and WhatsApp.

Events are queued on a background dispatcher so a slow or failing channel
never delays or fails the state transition that produced it.
Senders log failures and return False; they never raise.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from config import settings

logger = logging.getLogger(__name__)

BUSINESS_NAME = "Elixr"

EVENT_PAUSE = "pause"
EVENT_REACTIVATE = "reactivate"
EVENT_ADMIN_PAUSE = "admin_pause"
EVENT_ADMIN_REACTIVATE = "admin_reactivate"
EVENT_RENEWAL_REMINDER = "renewal_reminder"


@dataclass
class SubscriptionEvent:
    type: str
    subscription_id: str
    email: str | None = None
    phone: str | None = None
    name: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_subscription(cls, event_type: str, subscription, **details) -> "SubscriptionEvent":
        customer = subscription.customer_info or {}
        return cls(
            type=event_type,
            subscription_id=str(subscription.id),
            email=customer.get("email"),
            phone=customer.get("phone"),
            name=customer.get("name"),
            details=details,
        )


# ── Channels ───────────────────────────────────────────────

async def send_email(to: str, subject: str, html: str) -> bool:
    """Send one email through the HTTP email API."""
    if not settings.EMAIL_API_KEY:
        logger.warning("EMAIL_API_KEY not configured — skipping email to %s", to)
        return False

    payload = {"from": settings.EMAIL_FROM, "to": [to], "subject": subject, "html": html}
    headers = {"Authorization": f"Bearer {settings.EMAIL_API_KEY}"}

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(settings.EMAIL_API_URL, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error("Email error: to=%s, error=%s", to, str(e))
        return False

    if resp.status_code in (200, 201, 202):
        logger.info("Email sent: to=%s, subject='%s'", to, subject)
        return True
    logger.warning("Email failed: to=%s, status=%s, body=%s", to, resp.status_code, resp.text[:200])
    return False


def _normalize_phone(phone: str) -> str:
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) == 10:
        digits = "91" + digits
    return digits


async def send_whatsapp(phone: str, text: str) -> bool:
    """Send a plain text WhatsApp message through the Cloud API."""
    token = settings.WHATSAPP_ACCESS_TOKEN
    phone_number_id = settings.WHATSAPP_PHONE_NUMBER_ID
    if not token or not phone_number_id:
        logger.warning("WhatsApp not configured — skipping message to %s", phone)
        return False

    url = f"https://graph.facebook.com/{settings.WHATSAPP_API_VERSION}/{phone_number_id}/messages"
    payload = {
        "messaging_product": "whatsapp",
        "to": _normalize_phone(phone),
        "type": "text",
        "text": {"body": text},
    }

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(url, json=payload, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
        logger.error("WhatsApp error: phone=%s, error=%s", phone, str(e))
        return False

    if resp.status_code == 200:
        logger.info("WhatsApp sent: phone=%s, text_preview='%s'", phone, text[:80])
        return True
    logger.warning("WhatsApp failed: phone=%s, status=%s, body=%s", phone, resp.status_code, resp.text[:200])
    return False


# ── Templates ──────────────────────────────────────────────

def _fmt_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %b %Y")
    return str(value) if value else ""


def render_event(event: SubscriptionEvent) -> tuple[str, str]:
    """Return (subject, text body) for an event."""
    name = event.name or "there"
    d = event.details
    manage_url = f"{settings.APP_URL}/subscriptions"

    if event.type == EVENT_PAUSE:
        subject = f"Your {BUSINESS_NAME} subscription is paused"
        body = (
            f"Hi {name}, your subscription has been paused. "
            f"You can reactivate it any time before {_fmt_date(d.get('reactivation_deadline'))}."
        )
    elif event.type == EVENT_REACTIVATE:
        subject = f"Welcome back! Your {BUSINESS_NAME} subscription is active"
        body = (
            f"Hi {name}, your subscription is active again. "
            f"Next delivery: {_fmt_date(d.get('next_delivery_date'))}. "
            f"Your plan now ends on {_fmt_date(d.get('extended_end_date'))}."
        )
    elif event.type == EVENT_ADMIN_PAUSE:
        until = d.get("end_date")
        subject = f"{BUSINESS_NAME} deliveries are temporarily paused"
        body = (
            f"Hi {name}, deliveries on your subscription are paused"
            f"{' until ' + _fmt_date(until) if until else ''}. Reason: {d.get('reason', 'operational')}."
        )
    elif event.type == EVENT_ADMIN_REACTIVATE:
        subject = f"{BUSINESS_NAME} deliveries are resuming"
        body = f"Hi {name}, deliveries resume on {_fmt_date(d.get('next_delivery_date'))}."
    elif event.type == EVENT_RENEWAL_REMINDER:
        days_left = d.get("days_left", 0)
        subject = f"Your {BUSINESS_NAME} subscription ends in {days_left} day{'s' if days_left != 1 else ''}"
        body = (
            f"Hi {name}, your subscription ends on {_fmt_date(d.get('end_date'))}. "
            f"Renew now to keep your deliveries coming."
        )
    else:
        raise ValueError(f"Unknown subscription event type: {event.type!r}")

    return subject, f"{body}\n\nManage your subscription: {manage_url}"


async def send_subscription_event(event: SubscriptionEvent) -> bool:
    """Deliver one event on every channel the customer has. True if any channel succeeded."""
    try:
        subject, body = render_event(event)
    except ValueError as e:
        logger.error("Cannot render notification for %s: %s", event.subscription_id, e)
        return False

    sent = False
    if event.email:
        html = "<p>" + body.replace("\n\n", "</p><p>") + "</p>"
        sent = await send_email(event.email, subject, html) or sent
    if event.phone:
        sent = await send_whatsapp(event.phone, f"*{subject}*\n\n{body}") or sent
    if not event.email and not event.phone:
        logger.info("No contact channel for subscription %s, %s not sent", event.subscription_id, event.type)
    return sent


# ── Dispatcher ─────────────────────────────────────────────

class NotificationDispatcher:
    """Single background worker draining an in-process queue of events."""

    def __init__(
        self,
        sender: Callable[[SubscriptionEvent], Awaitable[bool]] = send_subscription_event,
        maxsize: int = 1000,
    ):
        self.sender = sender
        self.queue: asyncio.Queue[SubscriptionEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run())
            logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Drain queued events, then stop the worker."""
        if not self.running:
            return
        await self.queue.put(None)
        await self._worker
        self._worker = None
        logger.info("Notification dispatcher stopped")

    def dispatch(self, event: SubscriptionEvent) -> bool:
        """Enqueue without waiting. Returns False when the queue is full."""
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping %s for %s", event.type, event.subscription_id)
            return False

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                if event is None:
                    return
                await self.sender(event)
            except Exception:
                logger.exception("Notification sender crashed on %s", event.type)
            finally:
                self.queue.task_done()


dispatcher = NotificationDispatcher()
