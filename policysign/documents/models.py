import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from policysign.common.base_models import GUID, TimestampMixin, UTCDateTime, UUIDBase


class DocumentStatus(str, enum.Enum):
    draft = "draft"
    pending_signature = "pending_signature"
    in_progress = "in_progress"
    completed = "completed"
    expired = "expired"


class FieldType(str, enum.Enum):
    signature = "signature"
    initials = "initials"
    date = "date"
    text = "text"
    checkbox = "checkbox"


class Document(UUIDBase, TimestampMixin):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint("page_count >= 1", name="ck_documents_page_count"),
        CheckConstraint(
            "completed_signers >= 0 AND completed_signers <= total_signers",
            name="ck_documents_signer_counts",
        ),
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    # Projection of the current signature request, maintained by the esign service.
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, name="documentstatus"),
        default=DocumentStatus.draft,
        nullable=False,
    )
    total_signers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_signers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)

    fields = relationship(
        "SignatureField",
        back_populates="document",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SignatureField.page_number",
    )


class SignatureField(UUIDBase, TimestampMixin):
    __tablename__ = "signature_fields"
    __table_args__ = (
        CheckConstraint("page_number >= 1", name="ck_signature_fields_page_number"),
        CheckConstraint("x >= 0 AND y >= 0", name="ck_signature_fields_origin"),
        CheckConstraint("width > 0 AND height > 0", name="ck_signature_fields_size"),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    field_type: Mapped[FieldType] = mapped_column(Enum(FieldType, name="fieldtype"), nullable=False)

    # Page-reference coordinates, independent of the editor zoom.
    x: Mapped[float] = mapped_column(Float, nullable=False)
    y: Mapped[float] = mapped_column(Float, nullable=False)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)

    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    multiline: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    placeholder_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    filled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    filled_by_signer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(), ForeignKey("signers.id", ondelete="SET NULL"), nullable=True
    )
    assigned_signer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(), ForeignKey("signers.id", ondelete="SET NULL"), nullable=True, index=True
    )

    document = relationship("Document", back_populates="fields")
