import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from policysign.common.exceptions import DomainError, to_http_exception
from policysign.database import get_db
from policysign.dependencies import StaffUser, get_current_user, require_roles
from policysign.documents.schemas import (
    DocumentCreate,
    DocumentResponse,
    FieldMove,
    FieldPlacement,
    FieldResize,
    PageCountUpdate,
    SignatureFieldResponse,
)
from policysign.documents.service import (
    add_field,
    create_document,
    delete_field,
    get_document,
    move_field,
    resize_field,
    set_page_count,
)

router = APIRouter()


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_new_document(
    data: DocumentCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    return await create_document(db, data, current_user.id)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document_detail(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(get_current_user)],
):
    try:
        return await get_document(db, document_id)
    except DomainError as e:
        raise to_http_exception(e)


@router.patch("/{document_id}/pages", response_model=DocumentResponse)
async def update_page_count(
    document_id: uuid.UUID,
    data: PageCountUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        return await set_page_count(db, document_id, data.page_count)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{document_id}/fields", response_model=SignatureFieldResponse, status_code=status.HTTP_201_CREATED)
async def place_field(
    document_id: uuid.UUID,
    data: FieldPlacement,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        return await add_field(db, document_id, data)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{document_id}/fields/{field_id}/move", response_model=SignatureFieldResponse)
async def drag_field(
    document_id: uuid.UUID,
    field_id: uuid.UUID,
    data: FieldMove,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        return await move_field(db, document_id, field_id, data)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{document_id}/fields/{field_id}/resize", response_model=SignatureFieldResponse)
async def change_field_size(
    document_id: uuid.UUID,
    field_id: uuid.UUID,
    data: FieldResize,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        return await resize_field(db, document_id, field_id, data)
    except DomainError as e:
        raise to_http_exception(e)


@router.delete("/{document_id}/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_field(
    document_id: uuid.UUID,
    field_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[StaffUser, Depends(require_roles("admin", "agent"))],
):
    try:
        await delete_field(db, document_id, field_id)
    except DomainError as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
