# jurisdiction/routes/admins.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from jurisdiction.dependencies.auth import get_principal, get_services
from jurisdiction.models.hierarchy import HierarchyFamily, NodeRecord
from jurisdiction.models.user import AdminLevel, Principal
from jurisdiction.schemas.user import NewAdminSpec, UserPublic
from jurisdiction.services.container import ServiceContainer

router = APIRouter()


@router.post("/", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def provision_admin(
    spec: NewAdminSpec,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """
    Creates an admin strictly below the caller, assigned to a node inside the
    caller's own subtree.
    """
    return await services.provisioning.provision_admin(principal, spec)


@router.get("/levels", response_model=List[AdminLevel])
async def available_admin_levels(
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return services.provisioning.get_available_admin_levels(principal)


@router.get("/options", response_model=List[NodeRecord])
async def assignment_options(
    admin_level: AdminLevel,
    active_hierarchy: Optional[HierarchyFamily] = None,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Nodes a new admin of ``admin_level`` may be assigned to."""
    return await services.provisioning.get_assignment_options(
        principal, admin_level, active_hierarchy
    )
