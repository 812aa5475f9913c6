import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.audit import verify_chain
from policysign.common.base_models import as_utc, utcnow
from policysign.common.encryption import decrypt_field, encrypt_field
from policysign.common.pagination import PaginationParams
from policysign.documents import geometry
from policysign.documents.models import Document, DocumentStatus, FieldType, SignatureField
from policysign.documents.service import get_document, new_field
from policysign.esign import tokens
from policysign.esign.events import append_event, list_events
from policysign.esign.exceptions import (
    AlreadySigned,
    DocumentBusy,
    FieldNotFillable,
    InvalidExpiry,
    InvalidFieldValue,
    InvalidSigner,
    InvalidTransition,
    MissingRequiredField,
    NoChannels,
    NoFieldsDefined,
    SignatureRequestNotFound,
    SignerNotFound,
    TokenExpired,
    TokenRevoked,
)
from policysign.esign.models import (
    ACTIVE_REQUEST_STATUSES,
    TERMINAL_REQUEST_STATUSES,
    DocumentEventType,
    NotificationChannel,
    NotificationKind,
    SignatureRequest,
    SignatureRequestStatus,
    SignatureType,
    Signer,
    SignerStatus,
)
from policysign.esign.notifications import queue_notifications
from policysign.esign.schemas import CompletionCertificate, SignatureRequestCreate, SignerCreate, SignerEvidence

logger = logging.getLogger(__name__)

SIGNATURE_FIELD_TYPES = (FieldType.signature, FieldType.initials)


@dataclass
class RequestDetails:
    request: SignatureRequest
    document: Document
    signers: list[Signer]
    fields: list[SignatureField]


# ── Lookups ─────────────────────────────────────────────────────────────────────


async def get_request(db: AsyncSession, request_id: uuid.UUID) -> SignatureRequest:
    result = await db.execute(
        select(SignatureRequest).where(SignatureRequest.id == request_id).execution_options(populate_existing=True)
    )
    sig_request = result.scalar_one_or_none()
    if sig_request is None:
        raise SignatureRequestNotFound()
    return sig_request


async def lock_request(db: AsyncSession, request_id: uuid.UUID) -> SignatureRequest:
    """Load the request under a row lock, discarding any stale copy in the session."""
    result = await db.execute(
        select(SignatureRequest)
        .where(SignatureRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    sig_request = result.scalar_one_or_none()
    if sig_request is None:
        raise SignatureRequestNotFound()
    return sig_request


async def get_signer(db: AsyncSession, signer_id: uuid.UUID) -> Signer:
    result = await db.execute(
        select(Signer).where(Signer.id == signer_id).execution_options(populate_existing=True)
    )
    signer = result.scalar_one_or_none()
    if signer is None:
        raise SignerNotFound()
    return signer


async def load_signers(db: AsyncSession, request_id: uuid.UUID) -> list[Signer]:
    result = await db.execute(
        select(Signer)
        .where(Signer.signature_request_id == request_id)
        .order_by(Signer.signing_order, Signer.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_request_with_details(db: AsyncSession, request_id: uuid.UUID) -> RequestDetails:
    sig_request = await get_request(db, request_id)
    document = await get_document(db, sig_request.document_id)
    signers = await load_signers(db, request_id)
    return RequestDetails(request=sig_request, document=document, signers=signers, fields=list(document.fields))


async def list_signature_requests(
    db: AsyncSession,
    pagination: PaginationParams,
    document_id: Optional[uuid.UUID] = None,
    status: Optional[SignatureRequestStatus] = None,
) -> tuple[list[SignatureRequest], int]:
    query = select(SignatureRequest)
    count_query = select(func.count(SignatureRequest.id))

    if document_id:
        query = query.where(SignatureRequest.document_id == document_id)
        count_query = count_query.where(SignatureRequest.document_id == document_id)
    if status:
        query = query.where(SignatureRequest.status == status)
        count_query = count_query.where(SignatureRequest.status == status)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(SignatureRequest.created_at.desc()).offset(pagination.offset).limit(pagination.page_size)
    )
    return result.scalars().all(), total


# ── Document projection ─────────────────────────────────────────────────────────


def derive_document_status(
    request_status: SignatureRequestStatus, signer_statuses: Iterable[SignerStatus]
) -> DocumentStatus:
    if request_status == SignatureRequestStatus.completed:
        return DocumentStatus.completed
    if request_status == SignatureRequestStatus.expired:
        return DocumentStatus.expired
    if request_status == SignatureRequestStatus.draft:
        return DocumentStatus.draft
    if any(s == SignerStatus.signed for s in signer_statuses):
        return DocumentStatus.in_progress
    return DocumentStatus.pending_signature


async def sync_document(db: AsyncSession, sig_request: SignatureRequest) -> Document:
    """Recompute the document's status and signer counters from its current request."""
    statuses = (
        await db.execute(select(Signer.status).where(Signer.signature_request_id == sig_request.id))
    ).scalars().all()
    document = await get_document(db, sig_request.document_id)
    document.total_signers = len(statuses)
    document.completed_signers = sum(1 for s in statuses if s == SignerStatus.signed)
    document.status = derive_document_status(sig_request.status, statuses)
    await db.flush()
    return document


# ── Creation ────────────────────────────────────────────────────────────────────


def _validate_signers(signers: list[SignerCreate]) -> None:
    if not signers:
        raise InvalidSigner("At least one signer is required", fields=["signers"])
    problems = []
    for index, signer in enumerate(signers):
        if not signer.name.strip():
            problems.append(f"signers[{index}].name")
        email = signer.email.strip()
        if not email or "@" not in email:
            problems.append(f"signers[{index}].email")
    if problems:
        raise InvalidSigner(fields=problems)


async def _ensure_document_free(db: AsyncSession, document_id: uuid.UUID) -> None:
    result = await db.execute(
        select(SignatureRequest.id).where(
            SignatureRequest.document_id == document_id,
            SignatureRequest.status.not_in(TERMINAL_REQUEST_STATUSES),
        )
    )
    if result.first() is not None:
        raise DocumentBusy()


async def create_request(
    db: AsyncSession,
    data: SignatureRequestCreate,
    created_by: Optional[uuid.UUID],
    now: Optional[datetime] = None,
) -> SignatureRequest:
    """Create a draft request with its signers and fields.

    Everything is validated before the first write; the writes happen in a
    savepoint so a failure leaves nothing behind.
    """
    now = now or utcnow()
    if data.expires_at is not None and not as_utc(data.expires_at) > as_utc(now):
        raise InvalidExpiry(fields=["expires_at"])
    _validate_signers(data.signers)

    bad_indexes = [
        f"fields[{i}].signer_index"
        for i, spec in enumerate(data.fields)
        if spec.signer_index is not None and spec.signer_index >= len(data.signers)
    ]
    if bad_indexes:
        raise InvalidSigner("Field assigned to an unknown signer", fields=bad_indexes)

    document = await get_document(db, data.document_id, for_update=True)
    await _ensure_document_free(db, document.id)

    placements = []
    for spec in data.fields:
        placement = geometry.place_field(
            spec.page_number,
            spec.pointer_x,
            spec.pointer_y,
            spec.zoom,
            spec.field_type,
            document.page_count,
            multiline=spec.multiline,
        )
        if spec.width is not None or spec.height is not None:
            placement = geometry.resize_field(
                placement,
                spec.width if spec.width is not None else placement.width * spec.zoom,
                spec.height if spec.height is not None else placement.height * spec.zoom,
                spec.zoom,
            )
        placements.append(placement)

    open_fields = [f for f in document.fields if f.value is None and f.assigned_signer_id is None]
    if not placements and not open_fields:
        raise NoFieldsDefined()

    async with db.begin_nested():
        sig_request = SignatureRequest(
            id=uuid.uuid4(),
            document_id=document.id,
            created_by=created_by,
            title=data.title,
            message=data.message,
            status=SignatureRequestStatus.draft,
            expires_at=data.expires_at,
        )
        db.add(sig_request)
        await db.flush()

        signers = [
            Signer(
                id=uuid.uuid4(),
                signature_request_id=sig_request.id,
                name=s.name.strip(),
                email=s.email.strip(),
                phone=s.phone,
                role=s.role,
                signing_order=s.signing_order or index + 1,
                status=SignerStatus.pending,
            )
            for index, s in enumerate(data.signers)
        ]
        db.add_all(signers)
        await db.flush()

        for spec, placement in zip(data.fields, placements):
            db.add(
                new_field(
                    document,
                    placement,
                    spec.field_type,
                    multiline=spec.multiline,
                    label=spec.label,
                    is_required=spec.is_required,
                    placeholder_text=spec.placeholder_text,
                    assigned_signer_id=signers[spec.signer_index].id if spec.signer_index is not None else None,
                )
            )
        await db.flush()

        await append_event(
            db,
            sig_request.id,
            DocumentEventType.created,
            metadata={"signers": len(signers), "fields": len(placements) + len(open_fields)},
            now=now,
        )
        await sync_document(db, sig_request)

    await db.refresh(sig_request)
    logger.info(
        "Created signature request %s for document %s with %d signer(s)", sig_request.id, document.id, len(signers)
    )
    return sig_request


# ── Dispatch ────────────────────────────────────────────────────────────────────


async def send_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    channels: list[NotificationChannel],
    now: Optional[datetime] = None,
) -> SignatureRequest:
    """Issue tokens and queue invitations. Sending twice is a no-op."""
    if not channels:
        raise NoChannels(fields=["channels"])
    now = now or utcnow()

    sig_request = await lock_request(db, request_id)
    if sig_request.status != SignatureRequestStatus.draft:
        logger.info("Signature request %s already sent (status %s)", sig_request.id, sig_request.status.value)
        return sig_request
    if tokens.is_past(sig_request.expires_at, now):
        raise InvalidExpiry("Request expired before it was sent")

    signers = await load_signers(db, sig_request.id)
    if not signers:
        raise InvalidSigner("Request has no signers")

    channel_names = [NotificationChannel(c).value for c in dict.fromkeys(channels)]
    for signer in signers:
        tokens.issue_token(signer, now, hard_deadline=sig_request.expires_at)
        signer.status = SignerStatus.sent
    sig_request.status = SignatureRequestStatus.sent
    sig_request.sent_at = now
    await db.flush()

    for signer in signers:
        await append_event(
            db, sig_request.id, DocumentEventType.sent, signer.id, metadata={"channels": channel_names}, now=now
        )
        await queue_notifications(db, sig_request, signer, channels, NotificationKind.invitation)

    await sync_document(db, sig_request)
    await db.refresh(sig_request)
    logger.info("Sent signature request %s to %d signer(s) via %s", sig_request.id, len(signers), channel_names)
    return sig_request


# ── Signer access ───────────────────────────────────────────────────────────────


async def resolve_signer(db: AsyncSession, token: str, now: Optional[datetime] = None) -> tokens.ResolvedSigner:
    return await tokens.resolve(db, token, now)


async def _mark_opened(
    db: AsyncSession,
    sig_request: SignatureRequest,
    signer: Signer,
    now: datetime,
    client_metadata: Optional[dict],
) -> None:
    signer.status = SignerStatus.opened
    if client_metadata:
        signer.client_metadata = {**(signer.client_metadata or {}), "opened": client_metadata}
    if sig_request.status == SignatureRequestStatus.sent:
        sig_request.status = SignatureRequestStatus.in_progress
    await db.flush()
    await append_event(db, sig_request.id, DocumentEventType.opened, signer.id, metadata=client_metadata, now=now)


async def open_signer(
    db: AsyncSession,
    token: str,
    now: Optional[datetime] = None,
    client_metadata: Optional[dict] = None,
) -> tokens.ResolvedSigner:
    """Resolve the token and record the first view of the document."""
    now = now or utcnow()
    resolved = await tokens.resolve(db, token, now)
    if resolved.already_signed or resolved.signer.status != SignerStatus.sent:
        return resolved

    sig_request = await lock_request(db, resolved.signature_request.id)
    signer = await get_signer(db, resolved.signer.id)
    if signer.status == SignerStatus.sent and sig_request.status in ACTIVE_REQUEST_STATUSES:
        await _mark_opened(db, sig_request, signer, now, client_metadata)
        await sync_document(db, sig_request)
        logger.info("Signer %s opened signature request %s", signer.id, sig_request.id)
    return tokens.ResolvedSigner(signer=signer, signature_request=sig_request)


# ── Signing ─────────────────────────────────────────────────────────────────────


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_field_value(field_type: FieldType, value: Any) -> str:
    """Check ``value`` against the field type and return its stored form. Raises ValueError."""
    if field_type == FieldType.checkbox:
        if not isinstance(value, bool):
            raise ValueError("checkbox needs true or false")
        return "true" if value else "false"
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_type.value} needs a non-empty string")
    if field_type == FieldType.date:
        text = value.strip()
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return datetime.fromisoformat(text).date().isoformat()
    return value


def validate_submission(
    fields: Iterable[SignatureField],
    signer: Signer,
    field_values: dict[uuid.UUID, Any],
    signature_data: Optional[str],
) -> dict[uuid.UUID, str]:
    """Work out the values this submission writes, field id to stored value.

    A signer may fill the fields assigned to them and any unfilled field
    assigned to nobody. Signature and initials fields they must sign take the
    captured signature when no explicit value is given.
    """
    fillable = {
        f.id: f
        for f in fields
        if f.value is None and (f.assigned_signer_id is None or f.assigned_signer_id == signer.id)
    }
    foreign = [str(field_id) for field_id in field_values if field_id not in fillable]
    if foreign:
        raise FieldNotFillable(fields=foreign)

    has_signature = not _is_blank(signature_data)
    missing = [] if has_signature else ["signature_data"]
    invalid = []
    values = {}
    for field in fillable.values():
        raw = field_values.get(field.id)
        obliged = field.is_required or field.assigned_signer_id == signer.id
        if _is_blank(raw) and field.field_type in SIGNATURE_FIELD_TYPES and obliged and has_signature:
            raw = signature_data
        if _is_blank(raw):
            if field.is_required:
                missing.append(str(field.id))
            continue
        try:
            values[field.id] = normalize_field_value(field.field_type, raw)
        except ValueError:
            invalid.append(str(field.id))

    if missing:
        raise MissingRequiredField(fields=missing)
    if invalid:
        raise InvalidFieldValue(fields=invalid)
    return values


def _ensure_signable(signer: Signer, sig_request: SignatureRequest, now: datetime) -> None:
    if signer.status == SignerStatus.signed:
        raise AlreadySigned()
    if signer.token_revoked_at is not None:
        raise TokenRevoked()
    if sig_request.status == SignatureRequestStatus.draft or signer.status == SignerStatus.pending:
        raise InvalidTransition("Request has not been sent")
    if (
        signer.status == SignerStatus.expired
        or sig_request.status not in ACTIVE_REQUEST_STATUSES
        or tokens.is_past(signer.expires_at, now)
        or tokens.is_past(sig_request.expires_at, now)
    ):
        raise TokenExpired()


async def _complete_if_all_signed(db: AsyncSession, sig_request: SignatureRequest, now: datetime) -> bool:
    """Flip the request to completed once every signer has signed.

    The flip is a conditional UPDATE, so however many signers finish at the
    same moment only one of them writes the completion.
    """
    statuses = (
        await db.execute(select(Signer.status).where(Signer.signature_request_id == sig_request.id))
    ).scalars().all()
    if not statuses or any(s != SignerStatus.signed for s in statuses):
        return False

    result = await db.execute(
        update(SignatureRequest)
        .where(
            SignatureRequest.id == sig_request.id,
            SignatureRequest.status.in_(ACTIVE_REQUEST_STATUSES),
        )
        .values(status=SignatureRequestStatus.completed, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Signature request %s was already completed", sig_request.id)
        return False

    await db.refresh(sig_request)
    await append_event(db, sig_request.id, DocumentEventType.completed, metadata={"signers": len(statuses)}, now=now)
    logger.info("Signature request %s completed", sig_request.id)
    return True


async def submit_signature(
    db: AsyncSession,
    signer_id: uuid.UUID,
    field_values: dict[uuid.UUID, Any],
    signature_data: Optional[str],
    signature_type: SignatureType = SignatureType.drawn,
    now: Optional[datetime] = None,
    client_metadata: Optional[dict] = None,
) -> Signer:
    """Record a signature, then complete the request if it was the last one."""
    now = now or utcnow()
    signer = await get_signer(db, signer_id)
    sig_request = await lock_request(db, signer.signature_request_id)
    # Re-read under the lock: a concurrent submission may have changed it.
    signer = await get_signer(db, signer_id)
    _ensure_signable(signer, sig_request, now)

    document = await get_document(db, sig_request.document_id)
    values = validate_submission(document.fields, signer, field_values, signature_data)

    if signer.status == SignerStatus.sent:
        await _mark_opened(db, sig_request, signer, now, client_metadata)

    for field in document.fields:
        if field.id in values:
            field.value = values[field.id]
            field.filled_at = now
            field.filled_by_signer_id = signer.id

    signer.status = SignerStatus.signed
    signer.signed_at = now
    signer.signature_data = encrypt_field(signature_data)
    signer.signature_type = signature_type
    if client_metadata:
        signer.client_metadata = {**(signer.client_metadata or {}), "signed": client_metadata}
    await db.flush()

    await append_event(
        db,
        sig_request.id,
        DocumentEventType.signed,
        signer.id,
        metadata={"signature_type": signature_type.value, "fields": len(values), **(client_metadata or {})},
        now=now,
    )
    await _complete_if_all_signed(db, sig_request, now)
    await sync_document(db, sig_request)
    logger.info("Signer %s signed signature request %s", signer.id, sig_request.id)
    return signer


# ── Completion certificate ──────────────────────────────────────────────────────


def certificate_number(sig_request: SignatureRequest) -> str:
    completed = int(as_utc(sig_request.completed_at).timestamp())
    return f"CERT-{sig_request.id.hex[:8].upper()}-{completed:X}"


def _signer_evidence(signer: Signer) -> SignerEvidence:
    signed_context = (signer.client_metadata or {}).get("signed") or {}
    return SignerEvidence(
        id=signer.id,
        name=signer.name,
        email=signer.email,
        phone=signer.phone,
        role=signer.role,
        signed_at=signer.signed_at,
        signature_type=signer.signature_type,
        signature_data=decrypt_field(signer.signature_data),
        ip_address=signed_context.get("ip_address"),
        user_agent=signed_context.get("user_agent"),
    )


async def get_completion_certificate(db: AsyncSession, request_id: uuid.UUID) -> CompletionCertificate:
    """Evidence summary of a completed request.

    ``evidence_hash`` is the integrity hash of the ``completed`` event, which
    chains every earlier event of the request.
    """
    sig_request = await get_request(db, request_id)
    if sig_request.status != SignatureRequestStatus.completed:
        raise InvalidTransition("Certificate is only available for completed requests")

    document = await get_document(db, sig_request.document_id)
    signers = await load_signers(db, request_id)
    events = await list_events(db, request_id)
    completed_event = next(e for e in reversed(events) if e.event_type == DocumentEventType.completed)
    chain_errors = verify_chain(events)

    return CompletionCertificate(
        certificate_number=certificate_number(sig_request),
        signature_request_id=sig_request.id,
        request_title=sig_request.title,
        document_id=document.id,
        document_name=document.name,
        page_count=document.page_count,
        created_at=sig_request.created_at,
        sent_at=sig_request.sent_at,
        completed_at=sig_request.completed_at,
        evidence_hash=completed_event.integrity_hash,
        chain_status="valid" if not chain_errors else "broken",
        signers=[_signer_evidence(s) for s in signers],
    )
