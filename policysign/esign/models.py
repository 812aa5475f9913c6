import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from policysign.common.base_models import GUID, TimestampMixin, UTCDateTime, UUIDBase, utcnow


class SignatureRequestStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    in_progress = "in_progress"
    completed = "completed"
    expired = "expired"


class SignerStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    opened = "opened"
    signed = "signed"
    expired = "expired"


class SignerRole(str, enum.Enum):
    signer = "signer"
    beneficiary = "beneficiary"
    witness = "witness"
    representative = "representative"


class SignatureType(str, enum.Enum):
    electronic = "electronic"
    drawn = "drawn"
    typed = "typed"


class DocumentEventType(str, enum.Enum):
    created = "created"
    sent = "sent"
    opened = "opened"
    reminded = "reminded"
    signed = "signed"
    completed = "completed"
    expired = "expired"


class NotificationChannel(str, enum.Enum):
    email = "email"
    sms = "sms"
    whatsapp = "whatsapp"
    push = "push"


class NotificationKind(str, enum.Enum):
    invitation = "invitation"
    reminder = "reminder"


ACTIVE_REQUEST_STATUSES = (SignatureRequestStatus.sent, SignatureRequestStatus.in_progress)
TERMINAL_REQUEST_STATUSES = (SignatureRequestStatus.completed, SignatureRequestStatus.expired)
UNSIGNED_SIGNER_STATUSES = (SignerStatus.pending, SignerStatus.sent, SignerStatus.opened)


class SignatureRequest(UUIDBase, TimestampMixin):
    __tablename__ = "signature_requests"
    __table_args__ = (
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) OR (status != 'completed' AND completed_at IS NULL)",
            name="ck_signature_requests_completed_at",
        ),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("documents.id"), nullable=False, index=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[SignatureRequestStatus] = mapped_column(
        Enum(SignatureRequestStatus, name="signaturerequeststatus"),
        default=SignatureRequestStatus.draft,
        nullable=False,
        index=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    signers = relationship(
        "Signer",
        back_populates="signature_request",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Signer.signing_order",
    )
    document = relationship("Document", lazy="selectin")


class Signer(UUIDBase):
    __tablename__ = "signers"
    __table_args__ = (
        CheckConstraint(
            "(status = 'signed' AND signed_at IS NOT NULL) OR (status != 'signed' AND signed_at IS NULL)",
            name="ck_signers_signed_at",
        ),
    )

    signature_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("signature_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[SignerRole] = mapped_column(
        Enum(SignerRole, name="signerrole"),
        default=SignerRole.signer,
        nullable=False,
    )
    signing_order: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[SignerStatus] = mapped_column(
        Enum(SignerStatus, name="signerstatus"),
        default=SignerStatus.pending,
        nullable=False,
        index=True,
    )

    # Issued on dispatch; kept after revocation so it can never be handed out again.
    access_token: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True, nullable=True)
    token_issued_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    token_revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True, index=True)

    reminded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    reminder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    signed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    # Fernet-encrypted captured signature
    signature_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    signature_type: Mapped[Optional[SignatureType]] = mapped_column(
        Enum(SignatureType, name="signaturetype"), nullable=True
    )
    client_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    signature_request = relationship("SignatureRequest", back_populates="signers")


class DocumentEvent(UUIDBase):
    """Append-only audit entry. Rows are never updated or deleted."""

    __tablename__ = "document_events"
    __table_args__ = (UniqueConstraint("signature_request_id", "sequence", name="uq_document_events_sequence"),)

    signature_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("signature_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Position in the request's event chain, starting at 1.
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    signer_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("signers.id"), nullable=True, index=True)
    event_type: Mapped[DocumentEventType] = mapped_column(
        Enum(DocumentEventType, name="documenteventtype"), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    integrity_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    previous_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class NotificationLog(UUIDBase):
    """A notification the workflow decided to send, queued for an external transport."""

    __tablename__ = "notification_logs"

    signature_request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("signature_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    signer_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("signers.id"), nullable=False, index=True)
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel, name="notificationchannel"), nullable=False
    )
    kind: Mapped[NotificationKind] = mapped_column(Enum(NotificationKind, name="notificationkind"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="queued", nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
