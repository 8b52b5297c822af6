# jurisdiction/services/user_service.py
import logging
from typing import List

from jurisdiction.exceptions import NotFoundError, ValidationError
from jurisdiction.models.hierarchy import utcnow
from jurisdiction.models.levels import node_type_for
from jurisdiction.models.user import AdminLevel, Principal, UserRecord
from jurisdiction.services.access import (
    AccessControlEngine,
    Operation,
    Resource,
    ResourceKind,
    is_superuser,
)
from jurisdiction.services.store import HierarchyStore

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: HierarchyStore, access: AccessControlEngine):
        self.store = store
        self.access = access

    async def get_user(self, principal: Principal, user_id: str) -> UserRecord:
        """Fetches a user the principal manages. Unknown ids look forbidden."""
        decision = await self.access.authorize(
            principal, Operation.READ, Resource(kind=ResourceKind.USER, id=user_id)
        )
        decision.enforce()
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self, principal: Principal) -> List[UserRecord]:
        return await self.access.get_manageable_users(principal)

    async def assign_hierarchy(
        self, principal: Principal, user_id: str, node_id: str
    ) -> UserRecord:
        """Moves a user to ``node_id``; the node's scope becomes the user's path."""
        async with self.store.transaction():
            decision = await self.access.authorize(
                principal, Operation.WRITE, Resource(kind=ResourceKind.USER, id=user_id)
            )
            decision.enforce()
            user = await self.store.get_user(user_id)
            if user is None:
                raise NotFoundError("User not found")

            node = await self.store.get_node(node_id)
            if node is None:
                raise ValidationError("Invalid hierarchy node ID", {"field": "node_id"})
            if not is_superuser(principal):
                node_decision = await self.access.authorize(
                    principal, Operation.READ, Resource(kind=ResourceKind.NODE, id=node.id)
                )
                if not node_decision.allowed:
                    raise ValidationError(
                        f"Requested {node.level.label} is outside your jurisdiction",
                        {"field": "node_id"},
                    )

            expected = node_type_for(user.admin_level, node.family)
            if user.admin_level != AdminLevel.USER and expected != node.node_type:
                raise ValidationError(
                    f"A {user.admin_level.value} admin cannot be assigned to a {node.level.label}",
                    {"field": "node_id"},
                )

            updated = await self.store.update_user(
                user_id,
                {
                    "active_hierarchy": node.family,
                    "path": node.scope(),
                    "updated_at": utcnow(),
                },
            )

        logger.info(f"{principal.id} assigned user {user_id} to {node.level.label} {node_id}")
        return updated
