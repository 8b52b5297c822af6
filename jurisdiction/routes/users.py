# jurisdiction/routes/users.py
from typing import List

from fastapi import APIRouter, Depends

from jurisdiction.dependencies.auth import get_principal, get_services
from jurisdiction.models.user import Principal
from jurisdiction.schemas.user import HierarchyAssignment, UserPublic
from jurisdiction.services.container import ServiceContainer

router = APIRouter()


@router.get("/me", response_model=Principal)
async def read_me(principal: Principal = Depends(get_principal)):
    """The caller's decoded claims."""
    return principal


@router.get("/", response_model=List[UserPublic])
async def list_users(
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Users within the caller's jurisdiction."""
    return await services.users.list_users(principal)


@router.get("/{user_id}", response_model=UserPublic)
async def get_user(
    user_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.users.get_user(principal, user_id)


@router.put("/{user_id}/hierarchy", response_model=UserPublic)
async def assign_hierarchy(
    user_id: str,
    assignment: HierarchyAssignment,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Moves a user to a node; the node's path becomes the user's."""
    return await services.users.assign_hierarchy(principal, user_id, assignment.node_id)
