"""
Signer access tokens.

A token is an opaque bearer credential: 256 random bits from ``secrets``,
looked up as-is. Nothing about the signer is encoded in it.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.base_models import as_utc, utcnow
from policysign.config import settings
from policysign.esign.exceptions import InvalidTransition, SignerNotFound, TokenExpired, TokenNotFound, TokenRevoked
from policysign.esign.models import SignatureRequest, SignatureRequestStatus, Signer, SignerStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSigner:
    signer: Signer
    signature_request: SignatureRequest
    # The signer already signed: the link only shows the document.
    already_signed: bool = False


def generate_access_token(nbytes: Optional[int] = None) -> str:
    return secrets.token_urlsafe(nbytes or settings.access_token_bytes)


def is_past(deadline: Optional[datetime], now: datetime) -> bool:
    """The one expiry check shared by signing, opening and the sweeper."""
    return deadline is not None and as_utc(now) > as_utc(deadline)


def default_token_ttl() -> timedelta:
    return timedelta(days=settings.signer_token_ttl_days)


def issue_token(
    signer: Signer,
    now: datetime,
    ttl: Optional[timedelta] = None,
    hard_deadline: Optional[datetime] = None,
) -> str:
    """Give ``signer`` its access token; the link expires at the earlier of ttl and ``hard_deadline``."""
    if signer.access_token is not None:
        raise InvalidTransition("Signer already holds an access token")
    expires_at = as_utc(now) + (ttl or default_token_ttl())
    if hard_deadline is not None:
        expires_at = min(expires_at, as_utc(hard_deadline))

    signer.access_token = generate_access_token()
    signer.token_issued_at = now
    signer.expires_at = expires_at
    return signer.access_token


async def resolve(db: AsyncSession, token: str, now: Optional[datetime] = None) -> ResolvedSigner:
    """Look up the signer behind ``token``. Read-only."""
    now = now or utcnow()
    if not token:
        raise TokenNotFound()

    result = await db.execute(select(Signer).where(Signer.access_token == token))
    signer = result.scalar_one_or_none()
    if signer is None:
        raise TokenNotFound()
    if signer.token_revoked_at is not None:
        raise TokenRevoked()

    req_result = await db.execute(select(SignatureRequest).where(SignatureRequest.id == signer.signature_request_id))
    sig_request = req_result.scalar_one()

    if signer.status == SignerStatus.signed:
        return ResolvedSigner(signer=signer, signature_request=sig_request, already_signed=True)
    if (
        signer.status == SignerStatus.expired
        or sig_request.status == SignatureRequestStatus.expired
        or is_past(signer.expires_at, now)
        or is_past(sig_request.expires_at, now)
    ):
        raise TokenExpired()
    return ResolvedSigner(signer=signer, signature_request=sig_request)


async def invalidate(db: AsyncSession, signer_id: uuid.UUID, now: Optional[datetime] = None) -> Signer:
    """Revoke a signer's token. The token value stays on record and is never reissued."""
    result = await db.execute(select(Signer).where(Signer.id == signer_id))
    signer = result.scalar_one_or_none()
    if signer is None:
        raise SignerNotFound()
    if signer.access_token is not None and signer.token_revoked_at is None:
        signer.token_revoked_at = now or utcnow()
        logger.info("Revoked access token of signer %s", signer.id)
        await db.flush()
    return signer
