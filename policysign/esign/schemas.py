import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from policysign.documents.models import DocumentStatus, FieldType
from policysign.documents.schemas import SignatureFieldResponse
from policysign.esign.models import (
    DocumentEventType,
    NotificationChannel,
    SignatureRequestStatus,
    SignatureType,
    SignerRole,
    SignerStatus,
)

# ── Create schemas ──────────────────────────────────────────────────────────────


class SignerCreate(BaseModel):
    # Presence is checked by the service so callers get InvalidSigner, not a schema error.
    name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    role: SignerRole = SignerRole.signer
    signing_order: Optional[int] = Field(default=None, ge=1)


class FieldSpec(BaseModel):
    """A field placed as part of request creation."""

    page_number: int
    pointer_x: float
    pointer_y: float
    zoom: float = 1.0
    field_type: FieldType
    multiline: bool = False
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    label: Optional[str] = Field(default=None, max_length=255)
    is_required: bool = True
    placeholder_text: Optional[str] = Field(default=None, max_length=255)
    # Index into the request's signer list; None leaves the field open to any signer.
    signer_index: Optional[int] = Field(default=None, ge=0)


class SignatureRequestCreate(BaseModel):
    document_id: uuid.UUID
    title: str = Field(min_length=1, max_length=500)
    message: Optional[str] = None
    expires_at: Optional[datetime] = None
    signers: list[SignerCreate] = []
    fields: list[FieldSpec] = []


class SendRequest(BaseModel):
    channels: list[NotificationChannel] = [NotificationChannel.email]


class ReminderRequest(BaseModel):
    channels: list[NotificationChannel] = [NotificationChannel.email]


class SignatureSubmission(BaseModel):
    field_values: dict[uuid.UUID, Any] = {}
    signature_data: str = ""
    signature_type: SignatureType = SignatureType.drawn


# ── Response schemas ────────────────────────────────────────────────────────────


class SignerResponse(BaseModel):
    id: uuid.UUID
    signature_request_id: uuid.UUID
    name: str
    email: str
    phone: Optional[str]
    role: SignerRole
    signing_order: int
    status: SignerStatus
    access_token: Optional[str]
    expires_at: Optional[datetime]
    reminded_at: Optional[datetime]
    reminder_count: int
    signed_at: Optional[datetime]
    signature_type: Optional[SignatureType]
    created_at: datetime
    expires_soon: bool = False

    model_config = {"from_attributes": True}


class SignatureRequestResponse(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    created_by: Optional[uuid.UUID]
    title: str
    message: Optional[str]
    status: SignatureRequestStatus
    expires_at: Optional[datetime]
    sent_at: Optional[datetime]
    completed_at: Optional[datetime]
    signers: list[SignerResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentSummary(BaseModel):
    id: uuid.UUID
    name: str
    page_count: int
    status: DocumentStatus
    total_signers: int
    completed_signers: int

    model_config = {"from_attributes": True}


class SignatureRequestDetail(BaseModel):
    request: SignatureRequestResponse
    document: DocumentSummary
    signers: list[SignerResponse]
    fields: list[SignatureFieldResponse]


class DocumentEventResponse(BaseModel):
    id: uuid.UUID
    signature_request_id: uuid.UUID
    sequence: int
    signer_id: Optional[uuid.UUID]
    event_type: DocumentEventType
    timestamp: datetime
    event_metadata: Optional[dict]
    integrity_hash: str
    previous_hash: Optional[str]

    model_config = {"from_attributes": True}


class ChainVerification(BaseModel):
    status: str
    checked: int
    errors: list[str]


class ReminderOutcome(BaseModel):
    reminded: list[uuid.UUID] = []
    failed: list[uuid.UUID] = []


class SweepResult(BaseModel):
    expired: int


# ── Completion certificate ──────────────────────────────────────────────────────


class SignerEvidence(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str]
    role: SignerRole
    signed_at: datetime
    signature_type: Optional[SignatureType]
    signature_data: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]


class CompletionCertificate(BaseModel):
    certificate_number: str
    signature_request_id: uuid.UUID
    request_title: str
    document_id: uuid.UUID
    document_name: str
    page_count: int
    created_at: datetime
    sent_at: Optional[datetime]
    completed_at: datetime
    evidence_hash: str
    chain_status: str
    signers: list[SignerEvidence]


# ── Public signing page schemas ─────────────────────────────────────────────────


class SigningPageInfo(BaseModel):
    request_title: str
    message: Optional[str]
    signer_name: str
    signer_email: str
    signer_status: SignerStatus
    view_only: bool
    expires_at: Optional[datetime]
    document: DocumentSummary
    fields: list[SignatureFieldResponse]


class SignatureReceipt(BaseModel):
    status: SignerStatus
    signer_name: str
    signed_at: datetime
    request_status: SignatureRequestStatus
