import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from policysign.documents.models import DocumentStatus, FieldType

# ── Request schemas ─────────────────────────────────────────────────────────────


class DocumentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=500)
    page_count: int = Field(ge=1)


class PageCountUpdate(BaseModel):
    page_count: int = Field(ge=1)


class FieldPlacement(BaseModel):
    """A field dropped on the page at an on-screen pointer position."""

    page_number: int
    pointer_x: float
    pointer_y: float
    zoom: float = 1.0
    field_type: FieldType
    multiline: bool = False
    label: Optional[str] = Field(default=None, max_length=255)
    is_required: bool = True
    placeholder_text: Optional[str] = Field(default=None, max_length=255)
    assigned_signer_id: Optional[uuid.UUID] = None


class FieldMove(BaseModel):
    current_page: int
    zoom: float = 1.0
    pointer_x: float
    pointer_y: float
    # Grab point inside the field, in page units.
    offset_x: float = 0.0
    offset_y: float = 0.0


class FieldResize(BaseModel):
    current_page: int
    zoom: float = 1.0
    width: float = Field(gt=0)
    height: float = Field(gt=0)


# ── Response schemas ────────────────────────────────────────────────────────────


class SignatureFieldResponse(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    page_number: int
    field_type: FieldType
    x: float
    y: float
    width: float
    height: float
    label: Optional[str]
    multiline: bool
    is_required: bool
    placeholder_text: Optional[str]
    value: Optional[str]
    filled_at: Optional[datetime]
    assigned_signer_id: Optional[uuid.UUID]

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: uuid.UUID
    name: str
    page_count: int
    status: DocumentStatus
    total_signers: int
    completed_signers: int
    created_by: Optional[uuid.UUID]
    fields: list[SignatureFieldResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
