"""
Factories and builders shared by the test modules.

Importing this module has no side effects; the database and the FastAPI
dependency overrides live in conftest.py.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import factory
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.documents.models import FieldType
from policysign.documents.schemas import DocumentCreate
from policysign.documents.service import create_document
from policysign.esign.models import NotificationChannel, SignatureRequest
from policysign.esign.schemas import FieldSpec, SignatureRequestCreate, SignerCreate
from policysign.esign.service import create_request, send_request

# Fixed clock for service-level tests.
NOW = datetime(2030, 1, 15, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Factory Boy factories
# ---------------------------------------------------------------------------
class DocumentFactory(factory.Factory):
    class Meta:
        model = dict

    name = factory.Sequence(lambda n: f"Motor policy POL-{1000 + n}")
    page_count = 3


class SignerFactory(factory.Factory):
    class Meta:
        model = dict

    name = factory.Faker("name")
    email = factory.LazyFunction(lambda: f"insured-{uuid.uuid4().hex[:8]}@example.com")
    role = "signer"


class FieldSpecFactory(factory.Factory):
    class Meta:
        model = dict

    page_number = 1
    pointer_x = 72.0
    pointer_y = factory.Sequence(lambda n: 100.0 + 80.0 * (n % 8))
    zoom = 1.0
    field_type = "signature"
    is_required = True


# ---------------------------------------------------------------------------
# Service-level builders
# ---------------------------------------------------------------------------
async def create_draft_request(
    session: AsyncSession,
    signer_count: int = 2,
    expires_at: Optional[datetime] = None,
    now: datetime = NOW,
    extra_fields: Optional[list[dict]] = None,
) -> SignatureRequest:
    """A draft request with one required signature field per signer."""
    document = await create_document(session, DocumentCreate(**DocumentFactory()), None)
    fields = [
        FieldSpec(**FieldSpecFactory(field_type=FieldType.signature, signer_index=i)) for i in range(signer_count)
    ]
    fields += [FieldSpec(**FieldSpecFactory(**spec)) for spec in extra_fields or []]
    data = SignatureRequestCreate(
        document_id=document.id,
        title="Motor policy renewal",
        message="Please review and sign your renewal.",
        expires_at=expires_at or now + timedelta(days=7),
        signers=[SignerCreate(**SignerFactory()) for _ in range(signer_count)],
        fields=fields,
    )
    return await create_request(session, data, None, now=now)


async def create_sent_request(
    session: AsyncSession,
    signer_count: int = 2,
    expires_at: Optional[datetime] = None,
    now: datetime = NOW,
    extra_fields: Optional[list[dict]] = None,
) -> SignatureRequest:
    """A request sent by email and committed, so other sessions can see it."""
    sig_request = await create_draft_request(session, signer_count, expires_at, now, extra_fields)
    sig_request = await send_request(session, sig_request.id, [NotificationChannel.email], now=now)
    await session.commit()
    return sig_request
