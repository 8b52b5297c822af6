# jurisdiction/routes/content.py
from typing import List

from fastapi import APIRouter, Depends, status

from jurisdiction.dependencies.auth import get_principal, get_services
from jurisdiction.models.content import ContentRecord, ContentType
from jurisdiction.models.user import Principal
from jurisdiction.schemas.content import ContentCreate, ContentUpdate
from jurisdiction.services.container import ServiceContainer

router = APIRouter()


@router.get("/{content_type}", response_model=List[ContentRecord])
async def list_content(
    content_type: ContentType,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.content.list_content(principal, content_type)


@router.get("/{content_type}/{content_id}", response_model=ContentRecord)
async def get_content(
    content_type: ContentType,
    content_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.content.get_content(principal, content_type, content_id)


@router.post(
    "/{content_type}", response_model=ContentRecord, status_code=status.HTTP_201_CREATED
)
async def create_content(
    content_type: ContentType,
    payload: ContentCreate,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Creates content; broader target pointers are filled in from the most specific."""
    return await services.content.create_content(principal, content_type, payload)


@router.put("/{content_type}/{content_id}", response_model=ContentRecord)
async def update_content(
    content_type: ContentType,
    content_id: str,
    payload: ContentUpdate,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.content.update_content(principal, content_type, content_id, payload)


@router.patch("/{content_type}/{content_id}/publish", response_model=ContentRecord)
async def toggle_publish(
    content_type: ContentType,
    content_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Flips the published flag."""
    return await services.content.toggle_publish(principal, content_type, content_id)


@router.delete("/{content_type}/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(
    content_type: ContentType,
    content_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    await services.content.delete_content(principal, content_type, content_id)
