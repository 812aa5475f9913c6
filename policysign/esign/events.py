import json
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.audit import canonical_json, compute_integrity_hash, verify_chain
from policysign.common.base_models import as_utc, utcnow
from policysign.esign.models import DocumentEvent, DocumentEventType


async def append_event(
    db: AsyncSession,
    signature_request_id: uuid.UUID,
    event_type: DocumentEventType,
    signer_id: Optional[uuid.UUID] = None,
    metadata: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> DocumentEvent:
    """Append an event to the request's chain.

    Callers hold the request row lock, so sequence numbers cannot collide.
    """
    now = as_utc(now or utcnow())
    # Store exactly what gets hashed, so verification sees the same JSON.
    metadata_json = canonical_json(metadata)
    stored_metadata = json.loads(metadata_json) if metadata_json else None

    last = (
        await db.execute(
            select(DocumentEvent.sequence, DocumentEvent.integrity_hash)
            .where(DocumentEvent.signature_request_id == signature_request_id)
            .order_by(DocumentEvent.sequence.desc())
            .limit(1)
        )
    ).first()
    sequence = last.sequence + 1 if last else 1
    previous_hash = last.integrity_hash if last else None

    event_id = uuid.uuid4()
    entry = DocumentEvent(
        id=event_id,
        signature_request_id=signature_request_id,
        sequence=sequence,
        signer_id=signer_id,
        event_type=event_type,
        timestamp=now,
        event_metadata=stored_metadata,
        previous_hash=previous_hash,
        integrity_hash=compute_integrity_hash(
            str(event_id),
            now.isoformat(),
            str(signature_request_id),
            str(signer_id) if signer_id else None,
            event_type.value,
            metadata_json,
            previous_hash,
        ),
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_events(db: AsyncSession, signature_request_id: uuid.UUID) -> list[DocumentEvent]:
    result = await db.execute(
        select(DocumentEvent)
        .where(DocumentEvent.signature_request_id == signature_request_id)
        .order_by(DocumentEvent.sequence.asc())
    )
    return result.scalars().all()


async def count_events(
    db: AsyncSession,
    signature_request_id: uuid.UUID,
    event_type: DocumentEventType,
    signer_id: Optional[uuid.UUID] = None,
) -> int:
    query = select(func.count(DocumentEvent.id)).where(
        DocumentEvent.signature_request_id == signature_request_id,
        DocumentEvent.event_type == event_type,
    )
    if signer_id is not None:
        query = query.where(DocumentEvent.signer_id == signer_id)
    return (await db.execute(query)).scalar_one()


async def verify_event_chain(db: AsyncSession, signature_request_id: uuid.UUID) -> dict:
    events = await list_events(db, signature_request_id)
    errors = verify_chain(events)
    if not events:
        status = "empty"
    else:
        status = "valid" if not errors else "broken"
    return {"status": status, "checked": len(events), "errors": errors}
