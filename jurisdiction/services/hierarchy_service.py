# jurisdiction/services/hierarchy_service.py
import logging
from datetime import timedelta
from typing import List, Optional

from jurisdiction.exceptions import NotFoundError
from jurisdiction.models.hierarchy import (
    LEVELS,
    AncestorPath,
    NodeFields,
    NodeRecord,
    NodeType,
    utcnow,
)
from jurisdiction.models.user import Principal
from jurisdiction.schemas.hierarchy import (
    NodeCreate,
    NodeReparent,
    NodeUpdate,
    SectorNodeCreate,
)
from jurisdiction.services.access import (
    AccessControlEngine,
    Operation,
    Resource,
    ResourceKind,
)
from jurisdiction.services.cache import ScopeCache
from jurisdiction.services.normalization import (
    DEFAULT_LOCK_TOLERANCE,
    check_optimistic_lock,
    classify_store_error,
    normalize_update,
    validate_and_normalize,
)
from jurisdiction.services.scope import ScopeDerivationEngine
from jurisdiction.services.store import HierarchyStore, StoreError

logger = logging.getLogger(__name__)

NODE_NOT_FOUND = "Hierarchy node not found"


def _node_key(node_id: str):
    return ("node", node_id)


class HierarchyService:
    """
    Node CRUD across all three families.

    Every mutation runs normalize, derive and persist inside one store
    transaction. Reparenting recomputes the moved node only; its descendants
    keep their cached ancestors until they are saved again.
    """

    def __init__(
        self,
        store: HierarchyStore,
        scope: ScopeDerivationEngine,
        access: AccessControlEngine,
        cache: ScopeCache,
        lock_tolerance: timedelta = DEFAULT_LOCK_TOLERANCE,
    ):
        self.store = store
        self.scope = scope
        self.access = access
        self.cache = cache
        self.lock_tolerance = lock_tolerance

    async def create_node(self, principal: Principal, payload: NodeCreate) -> NodeRecord:
        normalized = validate_and_normalize(payload)
        level = LEVELS[payload.node_type]
        sector_type = payload.sector_type if isinstance(payload, SectorNodeCreate) else None

        async with self.store.transaction():
            await self._check_anchor(
                principal, payload.node_type, payload.parent_id, payload.declared_ancestors
            )
            placement = await self.scope.derive_placement(
                payload.node_type,
                parent_id=payload.parent_id,
                declared=payload.declared_ancestors,
                sector_type=sector_type,
            )
            decision = await self.access.authorize(
                principal,
                Operation.WRITE,
                Resource(
                    kind=ResourceKind.NODE,
                    node_type=payload.node_type,
                    ancestors=placement.ancestors,
                ),
            )
            decision.enforce()
            fields = NodeFields(
                node_type=payload.node_type,
                name=normalized.name,
                code=normalized.code,
                description=normalized.description,
                admin_id=payload.admin_id,
                parent_id=placement.parent_id,
                sector_type=placement.sector_type,
                ancestors=placement.ancestors,
            )
            try:
                node = await self.store.insert_node(fields)
            except StoreError as exc:
                raise classify_store_error(exc, level.label) from exc

        logger.info(f"Created {level.label} {node.id} ({node.name}) by {principal.id}")
        return node

    async def get_node(self, principal: Principal, node_id: str) -> NodeRecord:
        decision = await self.access.authorize(
            principal, Operation.READ, Resource(kind=ResourceKind.NODE, id=node_id)
        )
        decision.enforce()
        node = await self.cache.get_or_set(
            _node_key(node_id), lambda: self.store.get_node(node_id)
        )
        if node is None:
            raise NotFoundError(NODE_NOT_FOUND)
        return node

    async def list_nodes(
        self, principal: Principal, node_type: Optional[NodeType] = None
    ) -> List[NodeRecord]:
        return await self.access.get_manageable_nodes(principal, node_type)

    async def derive_ancestors(
        self,
        principal: Principal,
        node_type: NodeType,
        parent_id: Optional[str] = None,
        declared: Optional[AncestorPath] = None,
    ) -> AncestorPath:
        """Previews a derivation from a parent the principal can read."""
        await self._check_anchor(principal, node_type, parent_id, declared)
        return await self.scope.derive_ancestors(node_type, parent_id, declared)

    async def update_node(
        self, principal: Principal, node_id: str, payload: NodeUpdate
    ) -> NodeRecord:
        changes = normalize_update(payload)
        async with self.store.transaction():
            current = await self._load_for_write(principal, node_id, Operation.WRITE)
            check_optimistic_lock(
                current.updated_at,
                payload.expected_updated_at,
                current.level.label,
                self.lock_tolerance,
            )
            node = await self._apply(current, changes)

        logger.info(f"Updated {current.level.label} {node_id}: {sorted(changes)}")
        return node

    async def reparent_node(
        self, principal: Principal, node_id: str, payload: NodeReparent
    ) -> NodeRecord:
        async with self.store.transaction():
            current = await self._load_for_write(principal, node_id, Operation.WRITE)
            check_optimistic_lock(
                current.updated_at,
                payload.expected_updated_at,
                current.level.label,
                self.lock_tolerance,
            )
            await self._check_anchor(
                principal, current.node_type, payload.parent_id, payload.declared_ancestors
            )
            placement = await self.scope.derive_placement(
                current.node_type,
                parent_id=payload.parent_id,
                declared=payload.declared_ancestors,
                sector_type=current.sector_type,
                current=current,
                migrate_affiliation=payload.migrate_affiliation,
            )
            decision = await self.access.authorize(
                principal,
                Operation.WRITE,
                Resource(
                    kind=ResourceKind.NODE,
                    node_type=current.node_type,
                    ancestors=placement.ancestors,
                ),
            )
            decision.enforce()
            node = await self._apply(
                current,
                {
                    "parent_id": placement.parent_id,
                    "ancestors": placement.ancestors,
                    "sector_type": placement.sector_type,
                },
            )

        logger.info(
            f"Reparented {current.level.label} {node_id} from {current.parent_id} "
            f"to {node.parent_id}; descendants keep their cached ancestors"
        )
        return node

    async def deactivate_node(
        self,
        principal: Principal,
        node_id: str,
        expected_updated_at=None,
    ) -> NodeRecord:
        async with self.store.transaction():
            current = await self._load_for_write(principal, node_id, Operation.WRITE)
            check_optimistic_lock(
                current.updated_at,
                expected_updated_at,
                current.level.label,
                self.lock_tolerance,
            )
            node = await self._apply(current, {"active": False})
        logger.info(f"Deactivated {current.level.label} {node_id}")
        return node

    async def delete_node(self, principal: Principal, node_id: str) -> None:
        async with self.store.transaction():
            current = await self._load_for_write(principal, node_id, Operation.DELETE)
            try:
                await self.store.delete_node(node_id)
            except StoreError as exc:
                raise classify_store_error(exc, current.level.label) from exc
        self.cache.delete(_node_key(node_id))
        logger.info(f"Deleted {current.level.label} {node_id}")

    # --- internals ---

    async def _check_anchor(self, principal: Principal, node_type, parent_id, declared) -> None:
        anchor_id = self.scope.anchor_id(node_type, parent_id, declared)
        decision = await self.access.authorize_anchor(principal, anchor_id)
        decision.enforce()

    async def _load_for_write(
        self, principal: Principal, node_id: str, operation: Operation
    ) -> NodeRecord:
        decision = await self.access.authorize(
            principal, operation, Resource(kind=ResourceKind.NODE, id=node_id)
        )
        decision.enforce()
        current = await self.store.get_node(node_id)
        if current is None:
            raise NotFoundError(NODE_NOT_FOUND)
        return current

    async def _apply(self, current: NodeRecord, changes: dict) -> NodeRecord:
        changes = dict(changes, updated_at=utcnow())
        try:
            node = await self.store.update_node(current.id, changes)
        except StoreError as exc:
            raise classify_store_error(exc, current.level.label) from exc
        self.cache.delete(_node_key(current.id))
        return node
