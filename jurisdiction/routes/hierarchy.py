# jurisdiction/routes/hierarchy.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status

from jurisdiction.dependencies.auth import get_principal, get_services
from jurisdiction.models.content import ContentType
from jurisdiction.models.hierarchy import AncestorPath, NodeRecord, NodeType
from jurisdiction.models.user import Principal
from jurisdiction.schemas.hierarchy import (
    DeriveRequest,
    ManageableSet,
    NodeCreate,
    NodeReparent,
    NodeStatusChange,
    NodeUpdate,
)
from jurisdiction.services.access import ResourceKind
from jurisdiction.services.container import ServiceContainer

router = APIRouter()


@router.post("/nodes", response_model=NodeRecord, status_code=status.HTTP_201_CREATED)
async def create_node(
    payload: NodeCreate = Body(...),
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Creates a node in any family; ancestors are derived from the parent."""
    return await services.hierarchy.create_node(principal, payload)


@router.get("/nodes", response_model=List[NodeRecord])
async def list_nodes(
    node_type: Optional[NodeType] = None,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Nodes within the caller's jurisdiction, optionally of one type."""
    return await services.hierarchy.list_nodes(principal, node_type)


@router.get("/nodes/{node_id}", response_model=NodeRecord)
async def get_node(
    node_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.hierarchy.get_node(principal, node_id)


@router.put("/nodes/{node_id}", response_model=NodeRecord)
async def update_node(
    node_id: str,
    payload: NodeUpdate,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.hierarchy.update_node(principal, node_id, payload)


@router.put("/nodes/{node_id}/parent", response_model=NodeRecord)
async def reparent_node(
    node_id: str,
    payload: NodeReparent,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Moves a node. Descendants are not recomputed."""
    return await services.hierarchy.reparent_node(principal, node_id, payload)


@router.post("/nodes/{node_id}/deactivate", response_model=NodeRecord)
async def deactivate_node(
    node_id: str,
    payload: Optional[NodeStatusChange] = None,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    return await services.hierarchy.deactivate_node(
        principal, node_id, payload.expected_updated_at if payload else None
    )


@router.delete("/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    node_id: str,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Hard delete; refused while anything still references the node."""
    await services.hierarchy.delete_node(principal, node_id)


@router.post("/derive", response_model=AncestorPath)
async def derive_ancestors(
    payload: DeriveRequest,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    """Previews the ancestors a node would get, without writing anything."""
    return await services.hierarchy.derive_ancestors(
        principal, payload.node_type, payload.parent_id, payload.declared_ancestors
    )


@router.get("/manageable/{resource_kind}", response_model=ManageableSet)
async def get_manageable_set(
    resource_kind: ResourceKind,
    content_type: Optional[ContentType] = None,
    principal: Principal = Depends(get_principal),
    services: ServiceContainer = Depends(get_services),
):
    ids = await services.access.get_manageable_set(principal, resource_kind, content_type)
    return {"ids": sorted(ids)}
