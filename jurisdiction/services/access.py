# jurisdiction/services/access.py
"""
Authorization decisions over a principal and a hierarchy-scoped resource.

Containment is exact equality on cached pointers: a principal only reaches
records whose pointer at the principal's own level (and every non-null level
above it) equals the principal's. There is no ancestor subsumption beyond
that; the top-level bypass is the only blanket rule.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Set

from jurisdiction.exceptions import ForbiddenError
from jurisdiction.models.content import ContentRecord, ContentType
from jurisdiction.models.hierarchy import (
    LEVELS,
    HierarchyFamily,
    Level,
    NodeRecord,
    NodeType,
)
from jurisdiction.models.levels import (
    NODE_ADMIN_LEVELS,
    SUPERUSER_LEVELS,
    chain_pointers,
    level_for,
    rank,
)
from jurisdiction.models.user import AdminLevel, Principal, UserRecord, UserRole
from jurisdiction.services.store import HierarchyStore

logger = logging.getLogger(__name__)

INSUFFICIENT_PERMISSIONS = "Forbidden - Insufficient permissions"
INVALID_HIERARCHY_LEVEL = "Forbidden - Invalid hierarchy level"
INSUFFICIENT_HIERARCHY_PERMISSIONS = "Forbidden - Insufficient hierarchy permissions"

AFFILIATION = LEVELS[NodeType.EXPATRIATE_REGION].pointer


class Operation(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    CREATE_ADMIN = "CREATE_ADMIN"
    DELETE = "DELETE"


class ResourceKind(str, Enum):
    NODE = "node"
    USER = "user"
    CONTENT = "content"


@dataclass(frozen=True)
class Resource:
    """
    What an operation targets.

    Existing records are addressed by ``id``. A node that does not exist yet
    (create) is described by its ``node_type`` and derived ``ancestors``.
    """

    kind: ResourceKind
    id: Optional[str] = None
    node_type: Optional[NodeType] = None
    content_type: Optional[ContentType] = None
    admin_level: Optional[AdminLevel] = None
    ancestors: Optional[Any] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str = INSUFFICIENT_PERMISSIONS) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        if not self.allowed:
            raise ForbiddenError(self.reason or INSUFFICIENT_PERMISSIONS)


def is_superuser(principal: Principal) -> bool:
    return principal.admin_level in SUPERUSER_LEVELS


def own_level(principal: Principal) -> Optional[Level]:
    return level_for(principal.admin_level, principal.active_hierarchy)


class AccessControlEngine:
    """Pure decisions, plus the store reads needed to look targets up."""

    def __init__(self, store: HierarchyStore):
        self.store = store

    # --- rank and level checks ---

    def require_admin_level(
        self, principal: Principal, minimum: AdminLevel
    ) -> Decision:
        if is_superuser(principal) or rank(principal.admin_level) >= rank(minimum):
            return Decision.allow()
        return Decision.deny(f"Forbidden - Requires {AdminLevel(minimum).value} level or higher")

    def can_create_admin(self, principal: Principal, admin_level: AdminLevel) -> Decision:
        # Strict rank order even for superusers: nobody creates their equal.
        if rank(principal.admin_level) > rank(admin_level):
            return Decision.allow()
        return Decision.deny(
            f"You don't have permission to create {AdminLevel(admin_level).value} level admins"
        )

    def authorize_hierarchy(
        self, principal: Principal, level: str, resource_id: str
    ) -> Decision:
        """
        Exact-match check of one pointer. A region-level principal does not
        pass a locality check for a locality inside their region.

        The ADMIN role passes this check outright, on top of the superuser
        levels. Containment decisions made by ``authorize`` and the
        manageable sets go by admin level only.
        """
        if is_superuser(principal) or principal.role == UserRole.ADMIN:
            return Decision.allow()
        try:
            node_type = NodeType(level)
        except ValueError:
            return Decision.deny(INVALID_HIERARCHY_LEVEL)
        target = LEVELS[node_type]
        if (
            principal.admin_level == AdminLevel.EXPATRIATE_GENERAL
            and target.family == HierarchyFamily.EXPATRIATE
        ):
            return Decision.allow()
        mine = principal.path.get(target.pointer)
        if mine is not None and mine == resource_id:
            return Decision.allow()
        return Decision.deny(INSUFFICIENT_HIERARCHY_PERMISSIONS)

    # --- containment ---

    def path_within(self, principal: Principal, path) -> bool:
        """
        True when ``path`` agrees with the principal's path at the
        principal's own level and every non-null level above it.
        """
        level = own_level(principal)
        if level is None or path.family != level.family.value:
            return False
        if principal.path.get(level.pointer) is None:
            return False
        for pointer in chain_pointers(level):
            mine = principal.path.get(pointer)
            if mine is not None and path.get(pointer) != mine:
                return False
        return True

    def _node_within(self, principal: Principal, scope) -> bool:
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            return scope.family == HierarchyFamily.EXPATRIATE.value or (
                scope.family == HierarchyFamily.SECTOR.value
                and scope.get(AFFILIATION) is not None
            )
        return self.path_within(principal, scope)

    def user_within(self, principal: Principal, user: UserRecord) -> bool:
        if is_superuser(principal):
            return True
        if user.id == principal.id:
            return True
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            return user.active_hierarchy == HierarchyFamily.EXPATRIATE
        return self.path_within(principal, user.path)

    def content_within(self, principal: Principal, content: ContentRecord) -> bool:
        if is_superuser(principal):
            return True
        if principal.admin_level == AdminLevel.USER:
            return content.created_by_id == principal.id
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            return content.target.get(AFFILIATION) is not None
        level = own_level(principal)
        if level is None:
            return False
        mine = principal.path.get(level.pointer)
        return mine is not None and content.target.get(level.pointer) == mine

    async def can_manage_user(self, principal: Principal, user_id: str) -> Decision:
        user = await self.store.get_user(user_id)
        if user is not None and self.user_within(principal, user):
            return Decision.allow()
        return Decision.deny()

    async def can_manage_content(
        self, principal: Principal, content_type: ContentType, content_id: str
    ) -> Decision:
        content = await self.store.get_content(content_type, content_id)
        if content is not None and self.content_within(principal, content):
            return Decision.allow()
        return Decision.deny()

    async def authorize_anchor(
        self, principal: Principal, anchor_id: Optional[str]
    ) -> Decision:
        """
        Whether ``principal`` may derive a path from the node ``anchor_id``.

        Checked before derivation reads the anchor, so a missing anchor and
        one outside the principal's reach are denied alike.
        """
        if anchor_id is None:
            return Decision.allow()
        return await self.authorize(
            principal, Operation.READ, Resource(kind=ResourceKind.NODE, id=anchor_id)
        )

    def can_place_node(self, principal: Principal, node_type: NodeType, ancestors) -> Decision:
        """Whether ``principal`` may write a node of this type at this position."""
        if is_superuser(principal):
            return Decision.allow()
        required = NODE_ADMIN_LEVELS.get(NodeType(node_type))
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            if self._node_within(principal, ancestors):
                return Decision.allow()
            return Decision.deny()
        if required is None or rank(principal.admin_level) < rank(required):
            return Decision.deny()
        if LEVELS[NodeType(node_type)].parent is None:
            # Roots are only created by superusers.
            return Decision.deny()
        if self.path_within(principal, ancestors):
            return Decision.allow()
        return Decision.deny()

    # --- entry point ---

    async def authorize(
        self, principal: Principal, operation: Operation, resource: Resource
    ) -> Decision:
        operation = Operation(operation)
        if operation == Operation.CREATE_ADMIN:
            decision = self.can_create_admin(principal, resource.admin_level)
        elif is_superuser(principal):
            decision = Decision.allow()
        elif resource.kind == ResourceKind.NODE:
            decision = await self._authorize_node(principal, operation, resource)
        elif resource.kind == ResourceKind.USER:
            decision = await self.can_manage_user(principal, resource.id)
        elif resource.kind == ResourceKind.CONTENT:
            decision = await self.can_manage_content(
                principal, resource.content_type, resource.id
            )
        else:
            decision = Decision.deny()

        if not decision.allowed:
            logger.warning(
                f"Denied {operation.value} on {resource.kind.value} {resource.id} "
                f"for {principal.id} ({principal.admin_level.value}): {decision.reason}"
            )
        return decision

    async def _authorize_node(
        self, principal: Principal, operation: Operation, resource: Resource
    ) -> Decision:
        if resource.id is None:
            if resource.node_type is None or resource.ancestors is None:
                return Decision.deny()
            return self.can_place_node(principal, resource.node_type, resource.ancestors)

        node = await self.store.get_node(resource.id)
        if node is None:
            return Decision.deny()
        if operation == Operation.READ:
            return Decision.allow() if self._node_within(principal, node.scope()) else Decision.deny()
        # The node itself sits outside its own strict ancestors, so a principal
        # never edits or deletes the node that defines its scope.
        return self.can_place_node(principal, node.node_type, node.ancestors)

    # --- manageable sets ---

    async def get_manageable_users(self, principal: Principal) -> List[UserRecord]:
        if is_superuser(principal):
            return await self.store.find_users()
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            return await self.store.find_users(
                {"active_hierarchy": HierarchyFamily.EXPATRIATE}
            )
        level = own_level(principal)
        if level is None or principal.path.get(level.pointer) is None:
            user = await self.store.get_user(principal.id)
            return [user] if user is not None else []
        filters = {"active_hierarchy": level.family}
        for pointer in chain_pointers(level):
            mine = principal.path.get(pointer)
            if mine is not None:
                filters[f"path.{pointer}"] = mine
        return await self.store.find_users(filters)

    async def get_manageable_content(
        self, principal: Principal, content_type: ContentType
    ) -> List[ContentRecord]:
        if is_superuser(principal):
            return await self.store.find_content(content_type)
        if principal.admin_level == AdminLevel.USER:
            return await self.store.find_content(
                content_type, {"created_by_id": principal.id}
            )
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            records = await self.store.find_content(content_type)
            return [c for c in records if self.content_within(principal, c)]
        level = own_level(principal)
        mine = principal.path.get(level.pointer) if level is not None else None
        if mine is None:
            return []
        return await self.store.find_content(
            content_type, {f"target.target_{level.pointer}": mine}
        )

    async def get_manageable_nodes(
        self, principal: Principal, node_type: Optional[NodeType] = None
    ) -> List[NodeRecord]:
        """The principal's own node plus every node cached beneath it."""
        type_filter = {"node_type": NodeType(node_type)} if node_type else {}
        if is_superuser(principal):
            return await self.store.find_nodes(type_filter)
        if principal.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            nodes = await self.store.find_nodes(type_filter)
            return [n for n in nodes if self._node_within(principal, n.scope())]
        level = own_level(principal)
        mine = principal.path.get(level.pointer) if level is not None else None
        if mine is None:
            return []
        nodes = await self.store.find_nodes({f"ancestors.{level.pointer}": mine, **type_filter})
        own = await self.store.get_node(mine)
        if own is not None and (node_type is None or own.node_type == node_type):
            nodes.insert(0, own)
        return nodes

    async def get_manageable_set(
        self,
        principal: Principal,
        resource_kind: ResourceKind,
        content_type: Optional[ContentType] = None,
    ) -> Set[str]:
        resource_kind = ResourceKind(resource_kind)
        if resource_kind == ResourceKind.NODE:
            records = await self.get_manageable_nodes(principal)
        elif resource_kind == ResourceKind.USER:
            records = await self.get_manageable_users(principal)
        else:
            records = await self.get_manageable_content(
                principal, content_type or ContentType.BULLETINS
            )
        return {record.id for record in records}
