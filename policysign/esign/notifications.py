import logging
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from policysign.config import settings
from policysign.esign.models import NotificationChannel, NotificationKind, NotificationLog, SignatureRequest, Signer

logger = logging.getLogger(__name__)

PHONE_CHANNELS = (NotificationChannel.sms, NotificationChannel.whatsapp)


def signing_link(signer: Signer) -> str:
    return f"{settings.signing_base_url.rstrip('/')}/{signer.access_token}"


def render_message(kind: NotificationKind, sig_request: SignatureRequest, signer: Signer) -> str:
    if kind == NotificationKind.reminder:
        text = f"Reminder: {signer.name}, your signature is still needed on \"{sig_request.title}\"."
    else:
        text = f"{signer.name}, you have been asked to sign \"{sig_request.title}\"."
    if sig_request.message:
        text += f"\n\n{sig_request.message}"
    text += f"\n\nOpen the document: {signing_link(signer)}"
    if signer.expires_at:
        text += f"\nThe link expires on {signer.expires_at:%Y-%m-%d %H:%M} UTC."
    return text


async def queue_notifications(
    db: AsyncSession,
    sig_request: SignatureRequest,
    signer: Signer,
    channels: Iterable[NotificationChannel],
    kind: NotificationKind,
) -> list[NotificationLog]:
    """Record one outbound notification per usable channel for delivery by the messaging service."""
    entries = []
    for channel in dict.fromkeys(NotificationChannel(c) for c in channels):
        if channel in PHONE_CHANNELS and not signer.phone:
            logger.warning("Signer %s has no phone number; skipping %s %s", signer.id, channel.value, kind.value)
            continue
        entry = NotificationLog(
            signature_request_id=sig_request.id,
            signer_id=signer.id,
            channel=channel,
            kind=kind,
            status="queued",
            message=render_message(kind, sig_request, signer),
        )
        db.add(entry)
        entries.append(entry)
    await db.flush()
    return entries
