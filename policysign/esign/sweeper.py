import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.base_models import utcnow
from policysign.esign.events import append_event
from policysign.esign.models import (
    ACTIVE_REQUEST_STATUSES,
    UNSIGNED_SIGNER_STATUSES,
    DocumentEventType,
    SignatureRequest,
    SignatureRequestStatus,
    Signer,
    SignerStatus,
)
from policysign.esign.service import load_signers, lock_request, sync_document
from policysign.esign.tokens import is_past

logger = logging.getLogger(__name__)


async def _candidate_request_ids(db: AsyncSession, now: datetime) -> list[uuid.UUID]:
    # Coarse SQL filter; each candidate is re-checked with is_past under its lock.
    overdue_signers = select(Signer.signature_request_id).where(
        Signer.status.in_(UNSIGNED_SIGNER_STATUSES),
        Signer.expires_at.is_not(None),
        Signer.expires_at <= now,
    )
    result = await db.execute(
        select(SignatureRequest.id)
        .where(
            SignatureRequest.status.in_(ACTIVE_REQUEST_STATUSES),
            or_(
                SignatureRequest.expires_at <= now,
                SignatureRequest.id.in_(overdue_signers),
            ),
        )
        .order_by(SignatureRequest.expires_at)
    )
    return list(result.scalars().all())


async def expire_request(db: AsyncSession, request_id: uuid.UUID, now: datetime) -> int:
    """Expire one request and its unsigned signers if a deadline has passed.

    Returns the number of records moved to ``expired``; 0 when nothing was due.
    """
    sig_request = await lock_request(db, request_id)
    if sig_request.status not in ACTIVE_REQUEST_STATUSES:
        return 0

    signers = await load_signers(db, request_id)
    unsigned = [s for s in signers if s.status in UNSIGNED_SIGNER_STATUSES]
    overdue = is_past(sig_request.expires_at, now) or any(is_past(s.expires_at, now) for s in unsigned)
    if not overdue:
        return 0

    for signer in unsigned:
        signer.status = SignerStatus.expired
    sig_request.status = SignatureRequestStatus.expired
    await db.flush()

    for signer in unsigned:
        await append_event(db, request_id, DocumentEventType.expired, signer.id, now=now)
    await append_event(
        db, request_id, DocumentEventType.expired, metadata={"expired_signers": len(unsigned)}, now=now
    )
    await sync_document(db, sig_request)
    logger.info("Expired signature request %s and %d signer(s)", request_id, len(unsigned))
    return len(unsigned) + 1


async def sweep_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Move overdue requests and signers to ``expired``. Safe to run repeatedly."""
    now = now or utcnow()
    expired = 0
    for request_id in await _candidate_request_ids(db, now):
        try:
            async with db.begin_nested():
                expired += await expire_request(db, request_id, now)
        except Exception:
            logger.exception("Failed to expire signature request %s", request_id)
    if expired:
        logger.info("Expiration sweep moved %d record(s) to expired", expired)
    return expired
