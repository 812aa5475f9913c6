import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.documents import geometry
from policysign.documents.exceptions import (
    DocumentNotFound,
    FieldLocked,
    FieldNotFound,
    FieldsOutOfRange,
    InvalidPage,
)
from policysign.documents.models import Document, DocumentStatus, FieldType, SignatureField
from policysign.documents.schemas import DocumentCreate, FieldMove, FieldPlacement, FieldResize

logger = logging.getLogger(__name__)

# Documents in these states have a request out for signature.
LOCKED_DOCUMENT_STATUSES = (DocumentStatus.pending_signature, DocumentStatus.in_progress)


async def get_document(db: AsyncSession, document_id: uuid.UUID, for_update: bool = False) -> Document:
    query = select(Document).where(Document.id == document_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    document = result.scalar_one_or_none()
    if document is None:
        raise DocumentNotFound()
    return document


async def get_field(db: AsyncSession, document_id: uuid.UUID, field_id: uuid.UUID) -> SignatureField:
    result = await db.execute(
        select(SignatureField).where(SignatureField.id == field_id, SignatureField.document_id == document_id)
    )
    field = result.scalar_one_or_none()
    if field is None:
        raise FieldNotFound()
    return field


async def create_document(db: AsyncSession, data: DocumentCreate, created_by: Optional[uuid.UUID]) -> Document:
    document = Document(
        name=data.name,
        page_count=data.page_count,
        status=DocumentStatus.draft,
        created_by=created_by,
    )
    db.add(document)
    await db.flush()
    await db.refresh(document)
    return document


async def set_page_count(db: AsyncSession, document_id: uuid.UUID, page_count: int) -> Document:
    """Change the page count, refusing to strand fields past the new last page."""
    if page_count < 1:
        raise InvalidPage("A document needs at least one page")
    document = await get_document(db, document_id, for_update=True)

    result = await db.execute(
        select(func.max(SignatureField.page_number)).where(SignatureField.document_id == document_id)
    )
    last_used_page = result.scalar_one_or_none()
    if last_used_page is not None and last_used_page > page_count:
        raise FieldsOutOfRange(f"Fields exist on page {last_used_page}; cannot reduce to {page_count} page(s)")

    document.page_count = page_count
    await db.flush()
    await db.refresh(document)
    return document


def new_field(
    document: Document,
    placement: geometry.Placement,
    field_type: FieldType,
    *,
    multiline: bool = False,
    label: Optional[str] = None,
    is_required: bool = True,
    placeholder_text: Optional[str] = None,
    assigned_signer_id: Optional[uuid.UUID] = None,
) -> SignatureField:
    geometry.validate_page(placement.page_number, document.page_count)
    return SignatureField(
        id=uuid.uuid4(),
        document_id=document.id,
        page_number=placement.page_number,
        field_type=field_type,
        x=placement.x,
        y=placement.y,
        width=placement.width,
        height=placement.height,
        multiline=multiline and field_type == FieldType.text,
        label=label,
        is_required=is_required,
        placeholder_text=placeholder_text,
        assigned_signer_id=assigned_signer_id,
    )


def _ensure_editable(document: Document, field: Optional[SignatureField] = None) -> None:
    if document.status in LOCKED_DOCUMENT_STATUSES:
        raise FieldLocked("Document is out for signature; fields cannot be edited")
    if field is not None and field.value is not None:
        raise FieldLocked("Field has already been filled")


async def _check_assignable_signer(db: AsyncSession, document: Document, signer_id: uuid.UUID) -> None:
    from policysign.esign.models import SignatureRequest, SignatureRequestStatus, Signer

    result = await db.execute(
        select(Signer.id)
        .join(SignatureRequest, Signer.signature_request_id == SignatureRequest.id)
        .where(
            Signer.id == signer_id,
            SignatureRequest.document_id == document.id,
            SignatureRequest.status == SignatureRequestStatus.draft,
        )
    )
    if result.scalar_one_or_none() is None:
        raise FieldLocked("Fields can only be assigned to signers of a draft request on this document")


async def add_field(db: AsyncSession, document_id: uuid.UUID, data: FieldPlacement) -> SignatureField:
    document = await get_document(db, document_id, for_update=True)
    _ensure_editable(document)

    placement = geometry.place_field(
        data.page_number,
        data.pointer_x,
        data.pointer_y,
        data.zoom,
        data.field_type,
        document.page_count,
        multiline=data.multiline,
    )
    if data.assigned_signer_id is not None:
        await _check_assignable_signer(db, document, data.assigned_signer_id)

    field = new_field(
        document,
        placement,
        data.field_type,
        multiline=data.multiline,
        label=data.label,
        is_required=data.is_required,
        placeholder_text=data.placeholder_text,
        assigned_signer_id=data.assigned_signer_id,
    )
    db.add(field)
    await db.flush()
    await db.refresh(field)
    logger.info(
        "Placed %s field %s on document %s page %d", field.field_type.value, field.id, document.id, field.page_number
    )
    return field


def _apply(field: SignatureField, placement: geometry.Placement) -> None:
    field.x = placement.x
    field.y = placement.y
    field.width = placement.width
    field.height = placement.height


async def move_field(
    db: AsyncSession, document_id: uuid.UUID, field_id: uuid.UUID, data: FieldMove
) -> SignatureField:
    document = await get_document(db, document_id, for_update=True)
    field = await get_field(db, document_id, field_id)
    _ensure_editable(document, field)

    session = geometry.EditorSession(page_count=document.page_count, current_page=data.current_page, zoom=data.zoom)
    session.drag_offset = (data.offset_x, data.offset_y)
    _apply(field, session.drag_to(field, data.pointer_x, data.pointer_y))
    session.end_drag()

    await db.flush()
    await db.refresh(field)
    return field


async def resize_field(
    db: AsyncSession, document_id: uuid.UUID, field_id: uuid.UUID, data: FieldResize
) -> SignatureField:
    document = await get_document(db, document_id, for_update=True)
    field = await get_field(db, document_id, field_id)
    _ensure_editable(document, field)

    session = geometry.EditorSession(page_count=document.page_count, current_page=data.current_page, zoom=data.zoom)
    if field.page_number != session.current_page:
        raise geometry.FieldNotOnPage(
            f"Field is on page {field.page_number}, editor shows page {session.current_page}"
        )
    _apply(field, geometry.resize_field(field, data.width, data.height, session.zoom))

    await db.flush()
    await db.refresh(field)
    return field


async def delete_field(db: AsyncSession, document_id: uuid.UUID, field_id: uuid.UUID) -> None:
    document = await get_document(db, document_id, for_update=True)
    field = await get_field(db, document_id, field_id)
    _ensure_editable(document, field)
    await db.delete(field)
    await db.flush()
