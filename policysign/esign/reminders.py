"""
Reminder eligibility.

A signer who has not signed can be reminded once per interval. The check
itself is a pure function of the signer and the clock; the async helpers
around it load the candidates and record what was sent.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.base_models import as_utc, utcnow
from policysign.config import settings
from policysign.esign.events import append_event
from policysign.esign.exceptions import InvalidTransition, NoChannels
from policysign.esign.models import (
    ACTIVE_REQUEST_STATUSES,
    UNSIGNED_SIGNER_STATUSES,
    DocumentEventType,
    NotificationChannel,
    NotificationKind,
    SignatureRequest,
    Signer,
)
from policysign.esign.notifications import queue_notifications
from policysign.esign.schemas import ReminderOutcome
from policysign.esign.service import get_request, load_signers, lock_request
from policysign.esign.tokens import is_past

logger = logging.getLogger(__name__)

Notifier = Callable[[AsyncSession, SignatureRequest, Signer, list[NotificationChannel], NotificationKind], Awaitable]


def reminder_interval() -> timedelta:
    return timedelta(hours=settings.reminder_interval_hours)


def is_reminder_eligible(signer: Signer, now: datetime, interval: Optional[timedelta] = None) -> bool:
    if signer.status not in UNSIGNED_SIGNER_STATUSES:
        return False
    if signer.reminded_at is None:
        return True
    return as_utc(now) - as_utc(signer.reminded_at) >= (interval or reminder_interval())


def expires_soon(signer: Signer, now: datetime, window: Optional[timedelta] = None) -> bool:
    """True when an unsigned signer's link runs out within the warning window."""
    if signer.expires_at is None or signer.status not in UNSIGNED_SIGNER_STATUSES:
        return False
    window = window or timedelta(hours=settings.expiring_soon_hours)
    remaining = as_utc(signer.expires_at) - as_utc(now)
    return timedelta(0) <= remaining <= window


async def remind_eligible_signers(
    db: AsyncSession,
    signature_request_id: uuid.UUID,
    now: Optional[datetime] = None,
    interval: Optional[timedelta] = None,
) -> list[Signer]:
    now = now or utcnow()
    sig_request = await get_request(db, signature_request_id)
    if sig_request.status not in ACTIVE_REQUEST_STATUSES:
        return []
    if is_past(sig_request.expires_at, now):
        return []
    signers = await load_signers(db, signature_request_id)
    return [s for s in signers if not is_past(s.expires_at, now) and is_reminder_eligible(s, now, interval)]


async def record_reminder(
    db: AsyncSession,
    sig_request: SignatureRequest,
    signer: Signer,
    channels: list[NotificationChannel],
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Signer:
    """Queue the reminder and stamp the signer. Caller holds the request lock."""
    now = now or utcnow()
    notifier = notifier or queue_notifications
    await notifier(db, sig_request, signer, channels, NotificationKind.reminder)

    signer.reminded_at = now
    signer.reminder_count = (signer.reminder_count or 0) + 1
    await db.flush()
    await append_event(
        db,
        sig_request.id,
        DocumentEventType.reminded,
        signer.id,
        metadata={"channels": [NotificationChannel(c).value for c in channels], "count": signer.reminder_count},
        now=now,
    )
    return signer


async def send_reminders(
    db: AsyncSession,
    signature_request_id: uuid.UUID,
    channels: list[NotificationChannel],
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    interval: Optional[timedelta] = None,
) -> ReminderOutcome:
    """Remind every eligible signer; one failure does not stop the others."""
    if not channels:
        raise NoChannels(fields=["channels"])
    now = now or utcnow()

    sig_request = await lock_request(db, signature_request_id)
    if sig_request.status not in ACTIVE_REQUEST_STATUSES:
        raise InvalidTransition(f"Cannot send reminders for a {sig_request.status.value} request")

    outcome = ReminderOutcome()
    for signer in await remind_eligible_signers(db, signature_request_id, now, interval):
        # A rolled-back savepoint expires the signer, so keep its id at hand.
        signer_id = signer.id
        try:
            async with db.begin_nested():
                await record_reminder(db, sig_request, signer, channels, now, notifier)
        except Exception:
            logger.exception("Failed to remind signer %s of request %s", signer_id, signature_request_id)
            outcome.failed.append(signer_id)
        else:
            outcome.reminded.append(signer_id)

    logger.info(
        "Reminders for request %s: %d sent, %d failed",
        signature_request_id,
        len(outcome.reminded),
        len(outcome.failed),
    )
    return outcome
