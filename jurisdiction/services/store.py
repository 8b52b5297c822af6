# jurisdiction/services/store.py
"""
The persistence seam.

Services only talk to a ``HierarchyStore``. Filters are flat mappings of
dotted field paths to the value they must equal, e.g.
``{"ancestors.region_id": "abc", "node_type": "locality"}``.
"""
from enum import Enum
from typing import Any, AsyncContextManager, Dict, List, Mapping, Optional, Protocol

from jurisdiction.models.content import ContentFields, ContentRecord, ContentType
from jurisdiction.models.hierarchy import NodeFields, NodeRecord
from jurisdiction.models.user import UserFields, UserRecord


class StoreError(Exception):
    """Base class for failures reported by a store implementation."""


class UniqueViolation(StoreError):
    pass


class ForeignKeyViolation(StoreError):
    pass


class RecordNotFound(StoreError):
    pass


class StoreConnectionError(StoreError):
    """Transient connectivity failure; the only store error worth retrying."""


Filters = Mapping[str, Any]


def plain_filters(filters: Optional[Filters]) -> Dict[str, Any]:
    """Replaces enum members by their values so every backend compares alike."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in (filters or {}).items()
    }


def reference_filters(node: NodeRecord) -> Dict[str, List[Dict[str, str]]]:
    """
    Filters matching every record that still points at ``node``.

    A node cannot be deleted while any of these match (delete RESTRICT).
    """
    pointer = node.level.pointer
    return {
        "nodes": [{"parent_id": node.id}, {f"ancestors.{pointer}": node.id}],
        "users": [{f"path.{pointer}": node.id}],
        "content": [{f"target.target_{pointer}": node.id}],
    }


class HierarchyStore(Protocol):
    def transaction(self) -> AsyncContextManager[None]: ...

    async def ping(self) -> None: ...

    # nodes
    async def get_node(self, node_id: str) -> Optional[NodeRecord]: ...

    async def find_nodes(self, filters: Optional[Filters] = None) -> List[NodeRecord]: ...

    async def insert_node(self, fields: NodeFields) -> NodeRecord: ...

    async def update_node(self, node_id: str, changes: Dict[str, Any]) -> NodeRecord: ...

    async def delete_node(self, node_id: str) -> None: ...

    # users
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    async def find_users(self, filters: Optional[Filters] = None) -> List[UserRecord]: ...

    async def insert_user(self, fields: UserFields) -> UserRecord: ...

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> UserRecord: ...

    # content
    async def get_content(
        self, content_type: ContentType, content_id: str
    ) -> Optional[ContentRecord]: ...

    async def find_content(
        self, content_type: ContentType, filters: Optional[Filters] = None
    ) -> List[ContentRecord]: ...

    async def insert_content(
        self, content_type: ContentType, fields: ContentFields
    ) -> ContentRecord: ...

    async def update_content(
        self, content_type: ContentType, content_id: str, changes: Dict[str, Any]
    ) -> ContentRecord: ...

    async def delete_content(self, content_type: ContentType, content_id: str) -> None: ...
