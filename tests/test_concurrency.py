"""
Concurrent signing against the same request.

Each submission runs in its own session, as two web workers would.
"""

import asyncio
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from policysign.documents.models import DocumentStatus
from policysign.documents.service import get_document
from policysign.esign.events import count_events, verify_event_chain
from policysign.esign.exceptions import AlreadySigned
from policysign.esign.models import DocumentEventType, SignatureRequestStatus
from policysign.esign.service import _complete_if_all_signed, get_request, submit_signature
from tests.factories import NOW, create_sent_request

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


async def _sign(session_factory: async_sessionmaker, signer_id) -> None:
    async with session_factory() as session:
        try:
            await submit_signature(session, signer_id, {}, SIGNATURE, now=NOW)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class TestConcurrentCompletion:
    async def test_last_two_signers_at_once_complete_once(self, session_factory: async_sessionmaker):
        async with session_factory() as session:
            sig_request = await create_sent_request(session, signer_count=2)
        first, second = sig_request.signers

        await asyncio.gather(_sign(session_factory, first.id), _sign(session_factory, second.id))

        async with session_factory() as session:
            stored = await get_request(session, sig_request.id)
            assert stored.status == SignatureRequestStatus.completed
            assert stored.completed_at is not None
            assert await count_events(session, sig_request.id, DocumentEventType.completed) == 1
            assert await count_events(session, sig_request.id, DocumentEventType.signed) == 2

            document = await get_document(session, sig_request.document_id)
            assert document.status == DocumentStatus.completed
            assert document.completed_signers == 2

            chain = await verify_event_chain(session, sig_request.id)
            assert chain["status"] == "valid"
            await session.rollback()

    async def test_same_signer_twice_signs_once(self, session_factory: async_sessionmaker):
        async with session_factory() as session:
            sig_request = await create_sent_request(session, signer_count=2)
        signer = sig_request.signers[0]

        results = await asyncio.gather(
            _sign(session_factory, signer.id), _sign(session_factory, signer.id), return_exceptions=True
        )
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadySigned)

        async with session_factory() as session:
            assert await count_events(session, sig_request.id, DocumentEventType.signed, signer.id) == 1
            stored = await get_request(session, sig_request.id)
            assert stored.status == SignatureRequestStatus.in_progress
            await session.rollback()

    async def test_many_signers_complete_once(self, db_session: AsyncSession, session_factory: async_sessionmaker):
        sig_request = await create_sent_request(db_session, signer_count=5)
        await db_session.close()

        await asyncio.gather(*(_sign(session_factory, s.id) for s in sig_request.signers))

        async with session_factory() as session:
            assert await count_events(session, sig_request.id, DocumentEventType.completed) == 1
            await session.rollback()


class TestCompletionGuard:
    async def test_completing_twice_writes_one_completion(self, db_session: AsyncSession):
        sig_request = await create_sent_request(db_session, signer_count=1)
        await submit_signature(db_session, sig_request.signers[0].id, {}, SIGNATURE, now=NOW)
        await db_session.commit()

        stored = await get_request(db_session, sig_request.id)
        completed_at = stored.completed_at
        assert stored.status == SignatureRequestStatus.completed

        # A second worker that also saw every signer signed loses the conditional update.
        assert await _complete_if_all_signed(db_session, stored, NOW + timedelta(hours=1)) is False

        stored = await get_request(db_session, sig_request.id)
        assert stored.completed_at == completed_at
        assert await count_events(db_session, sig_request.id, DocumentEventType.completed) == 1
        await db_session.rollback()
