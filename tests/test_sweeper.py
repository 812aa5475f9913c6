"""
Tests for the expiration sweep.
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.documents.models import DocumentStatus
from policysign.documents.service import get_document
from policysign.esign import sweeper
from policysign.esign.events import count_events, verify_event_chain
from policysign.esign.exceptions import TokenExpired
from policysign.esign.models import DocumentEventType, SignatureRequestStatus, SignerStatus
from policysign.esign.service import get_request, load_signers, submit_signature
from policysign.esign.tokens import resolve
from tests.factories import NOW, create_draft_request, create_sent_request

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


class TestSweepExpired:
    async def test_nothing_due_before_deadline(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        await create_sent_request(db_session, expires_at=expires_at)

        assert await sweeper.sweep_expired(db_session, expires_at) == 0
        assert await sweeper.sweep_expired(db_session, expires_at - timedelta(milliseconds=1)) == 0

    async def test_expires_request_and_unsigned_signers(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        sig_request = await create_sent_request(db_session, signer_count=2, expires_at=expires_at)
        first, second = sig_request.signers
        await submit_signature(db_session, first.id, {}, SIGNATURE, now=NOW)
        await db_session.commit()

        expired = await sweeper.sweep_expired(db_session, expires_at + timedelta(milliseconds=1))
        await db_session.commit()
        # One unsigned signer plus the request itself.
        assert expired == 2

        stored = await get_request(db_session, sig_request.id)
        assert stored.status == SignatureRequestStatus.expired
        assert stored.completed_at is None
        statuses = {s.id: s.status for s in await load_signers(db_session, sig_request.id)}
        assert statuses == {first.id: SignerStatus.signed, second.id: SignerStatus.expired}

        document = await get_document(db_session, sig_request.document_id)
        assert document.status == DocumentStatus.expired
        assert document.completed_signers == 1

        assert await count_events(db_session, sig_request.id, DocumentEventType.expired) == 2
        assert (await verify_event_chain(db_session, sig_request.id))["status"] == "valid"
        await db_session.rollback()

    async def test_sweep_is_idempotent(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        sig_request = await create_sent_request(db_session, signer_count=2, expires_at=expires_at)
        after = expires_at + timedelta(milliseconds=1)

        assert await sweeper.sweep_expired(db_session, after) == 3
        await db_session.commit()
        assert await sweeper.sweep_expired(db_session, after + timedelta(hours=1)) == 0
        assert await count_events(db_session, sig_request.id, DocumentEventType.expired) == 3
        await db_session.rollback()

    async def test_expired_token_cannot_sign_after_sweep(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        sig_request = await create_sent_request(db_session, signer_count=1, expires_at=expires_at)
        signer = sig_request.signers[0]
        await sweeper.sweep_expired(db_session, expires_at + timedelta(milliseconds=1))
        await db_session.commit()

        # Even a clock that lags behind the sweep sees the expired state.
        with pytest.raises(TokenExpired):
            await resolve(db_session, signer.access_token, NOW)
        with pytest.raises(TokenExpired):
            await submit_signature(db_session, signer.id, {}, SIGNATURE, now=NOW)
        await db_session.rollback()

    async def test_draft_requests_untouched(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        sig_request = await create_draft_request(db_session, expires_at=expires_at)
        await db_session.commit()

        assert await sweeper.sweep_expired(db_session, expires_at + timedelta(days=1)) == 0
        stored = await get_request(db_session, sig_request.id)
        assert stored.status == SignatureRequestStatus.draft
        await db_session.rollback()

    async def test_completed_requests_untouched(self, db_session: AsyncSession):
        expires_at = NOW + timedelta(days=1)
        sig_request = await create_sent_request(db_session, signer_count=1, expires_at=expires_at)
        await submit_signature(db_session, sig_request.signers[0].id, {}, SIGNATURE, now=NOW)
        await db_session.commit()

        assert await sweeper.sweep_expired(db_session, expires_at + timedelta(days=1)) == 0
        stored = await get_request(db_session, sig_request.id)
        assert stored.status == SignatureRequestStatus.completed
        await db_session.rollback()

    async def test_failure_on_one_request_is_skipped(self, db_session: AsyncSession, monkeypatch):
        expires_at = NOW + timedelta(days=1)
        broken = await create_sent_request(db_session, signer_count=1, expires_at=expires_at)
        healthy = await create_sent_request(db_session, signer_count=1, expires_at=expires_at)

        real_expire = sweeper.expire_request

        async def flaky_expire(db, request_id, now):
            if request_id == broken.id:
                raise RuntimeError("lock timeout")
            return await real_expire(db, request_id, now)

        monkeypatch.setattr(sweeper, "expire_request", flaky_expire)

        assert await sweeper.sweep_expired(db_session, expires_at + timedelta(seconds=1)) == 2
        assert (await get_request(db_session, healthy.id)).status == SignatureRequestStatus.expired
        assert (await get_request(db_session, broken.id)).status == SignatureRequestStatus.sent
        await db_session.rollback()
