import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.base_models import utcnow
from policysign.common.exceptions import DomainError, to_http_exception
from policysign.common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PaginatedResponse, PaginationParams
from policysign.database import get_db
from policysign.dependencies import StaffUser, get_current_user, require_roles
from policysign.documents.schemas import SignatureFieldResponse
from policysign.documents.service import get_document
from policysign.esign.events import list_events, verify_event_chain
from policysign.esign.models import SignatureRequestStatus, Signer
from policysign.esign.reminders import expires_soon, remind_eligible_signers, send_reminders
from policysign.esign.schemas import (
    ChainVerification,
    CompletionCertificate,
    DocumentEventResponse,
    DocumentSummary,
    ReminderOutcome,
    ReminderRequest,
    SendRequest,
    SignatureReceipt,
    SignatureRequestCreate,
    SignatureRequestDetail,
    SignatureRequestResponse,
    SignatureSubmission,
    SignerResponse,
    SigningPageInfo,
    SweepResult,
)
from policysign.esign.service import (
    create_request,
    get_completion_certificate,
    get_request,
    get_request_with_details,
    list_signature_requests,
    open_signer,
    resolve_signer,
    send_request,
    submit_signature,
)
from policysign.esign.sweeper import sweep_expired
from policysign.middleware import client_context

router = APIRouter()


def _signer_response(signer: Signer, now) -> SignerResponse:
    response = SignerResponse.model_validate(signer)
    response.expires_soon = expires_soon(signer, now)
    return response


# ── Public signing routes (no auth) ────────────────────────────────────────────


@router.get("/sign/{access_token}", response_model=SigningPageInfo)
async def get_signing_page(
    access_token: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        resolved = await open_signer(db, access_token, client_metadata=client_context(request))
        document = await get_document(db, resolved.signature_request.document_id)
    except DomainError as e:
        raise to_http_exception(e)

    signer = resolved.signer
    sig_request = resolved.signature_request
    return SigningPageInfo(
        request_title=sig_request.title,
        message=sig_request.message,
        signer_name=signer.name,
        signer_email=signer.email,
        signer_status=signer.status,
        view_only=resolved.already_signed,
        expires_at=signer.expires_at,
        document=DocumentSummary.model_validate(document),
        fields=[
            SignatureFieldResponse.model_validate(f)
            for f in document.fields
            if f.assigned_signer_id in (None, signer.id)
        ],
    )


@router.post("/sign/{access_token}", response_model=SignatureReceipt)
async def sign(
    access_token: str,
    body: SignatureSubmission,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    try:
        resolved = await resolve_signer(db, access_token)
        signer = await submit_signature(
            db,
            resolved.signer.id,
            body.field_values,
            body.signature_data,
            signature_type=body.signature_type,
            client_metadata=client_context(request),
        )
        sig_request = await get_request(db, signer.signature_request_id)
    except DomainError as e:
        raise to_http_exception(e)

    return SignatureReceipt(
        status=signer.status,
        signer_name=signer.name,
        signed_at=signer.signed_at,
        request_status=sig_request.status,
    )


# ── Staff routes ────────────────────────────────────────────────────────────────


@router.post("", response_model=SignatureRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_signature_request(
    data: SignatureRequestCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        return await create_request(db, data, current_user.id)
    except DomainError as e:
        raise to_http_exception(e)


@router.get("", response_model=PaginatedResponse[SignatureRequestResponse])
async def list_requests(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
    document_id: Optional[uuid.UUID] = None,
    request_status: Optional[SignatureRequestStatus] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
):
    pagination = PaginationParams(page=page, page_size=page_size)
    requests, total = await list_signature_requests(db, pagination, document_id, request_status)
    items = [SignatureRequestResponse.model_validate(r) for r in requests]
    return PaginatedResponse[SignatureRequestResponse].create(items=items, total=total, pagination=pagination)


@router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin"))],
):
    return SweepResult(expired=await sweep_expired(db))


@router.get("/{request_id}", response_model=SignatureRequestDetail)
async def get_request_detail(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
):
    try:
        details = await get_request_with_details(db, request_id)
    except DomainError as e:
        raise to_http_exception(e)

    now = utcnow()
    return SignatureRequestDetail(
        request=SignatureRequestResponse.model_validate(details.request),
        document=DocumentSummary.model_validate(details.document),
        signers=[_signer_response(s, now) for s in details.signers],
        fields=[SignatureFieldResponse.model_validate(f) for f in details.fields],
    )


@router.get("/{request_id}/events", response_model=list[DocumentEventResponse])
async def get_request_events(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
):
    try:
        await get_request(db, request_id)
    except DomainError as e:
        raise to_http_exception(e)
    return await list_events(db, request_id)


@router.get("/{request_id}/events/verify", response_model=ChainVerification)
async def verify_request_events(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin"))],
):
    try:
        await get_request(db, request_id)
    except DomainError as e:
        raise to_http_exception(e)
    return await verify_event_chain(db, request_id)


@router.get("/{request_id}/certificate", response_model=CompletionCertificate)
async def get_certificate(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
):
    try:
        return await get_completion_certificate(db, request_id)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{request_id}/send", response_model=SignatureRequestResponse)
async def send_signature_request(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
    body: SendRequest = SendRequest(),
):
    try:
        return await send_request(db, request_id, body.channels)
    except DomainError as e:
        raise to_http_exception(e)


@router.get("/{request_id}/reminders", response_model=list[SignerResponse])
async def list_remindable_signers(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
):
    now = utcnow()
    try:
        signers = await remind_eligible_signers(db, request_id, now)
    except DomainError as e:
        raise to_http_exception(e)
    return [_signer_response(s, now) for s in signers]


@router.post("/{request_id}/reminders", response_model=ReminderOutcome)
async def remind_signers(
    request_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
    body: ReminderRequest = ReminderRequest(),
):
    try:
        return await send_reminders(db, request_id, body.channels)
    except DomainError as e:
        raise to_http_exception(e)
