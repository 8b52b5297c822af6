# jurisdiction/services/scope.py
import logging
from typing import Dict, Optional

from pydantic import BaseModel

from jurisdiction.exceptions import AncestorDriftError, ValidationError
from jurisdiction.models.content import ContentTarget
from jurisdiction.models.hierarchy import (
    FAMILY_CHAINS,
    LEVELS,
    POINTER_LABELS,
    AncestorPath,
    HierarchyFamily,
    Level,
    NodeRecord,
    NodeType,
    SectorPath,
    SectorType,
    empty_path,
)
from jurisdiction.services.store import HierarchyStore

logger = logging.getLogger(__name__)

AFFILIATION = LEVELS[NodeType.EXPATRIATE_REGION].pointer

_ORIGINAL_POINTERS = {LEVELS[t].pointer for t in FAMILY_CHAINS[HierarchyFamily.ORIGINAL]}
_SECTOR_POINTERS = {LEVELS[t].pointer for t in FAMILY_CHAINS[HierarchyFamily.SECTOR]}


def _claimed_target(target: ContentTarget) -> Dict[str, str]:
    return {k: v for k, v in target.pointers().items() if v is not None}


class Placement(BaseModel):
    """Where a node ends up: its parent, derived ancestors and sector type."""

    parent_id: Optional[str] = None
    ancestors: AncestorPath
    sector_type: Optional[SectorType] = None


class ScopeDerivationEngine:
    """
    Computes the cached ancestor path of a node from its immediate parent.

    The parent's own cached path is reused, so derivation costs one lookup
    no matter how deep the tree is. Caller-declared ancestors are only ever
    compared against the derived values, never persisted as-is.
    """

    def __init__(self, store: HierarchyStore):
        self.store = store

    async def derive_ancestors(
        self,
        node_type: NodeType,
        parent_id: Optional[str] = None,
        declared: Optional[AncestorPath] = None,
    ) -> AncestorPath:
        ancestors, _ = await self._derive(LEVELS[NodeType(node_type)], parent_id, declared)
        return ancestors

    async def derive_placement(
        self,
        node_type: NodeType,
        parent_id: Optional[str] = None,
        declared: Optional[AncestorPath] = None,
        sector_type: Optional[SectorType] = None,
        current: Optional[NodeRecord] = None,
        migrate_affiliation: bool = False,
    ) -> Placement:
        """
        Full placement for a create (``current`` is None) or a reparent.

        A sector node keeps its root affiliation across reparents unless
        ``migrate_affiliation`` is set.
        """
        level = LEVELS[NodeType(node_type)]
        ancestors, parent = await self._derive(level, parent_id, declared)

        if (
            current is not None
            and level.family == HierarchyFamily.SECTOR
            and not migrate_affiliation
            and ancestors.get(AFFILIATION) != current.ancestors.get(AFFILIATION)
        ):
            raise AncestorDriftError(
                f"{POINTER_LABELS[AFFILIATION]} conflicts with current sector affiliation",
                {"field": AFFILIATION},
            )

        return Placement(
            parent_id=parent.id if parent else None,
            ancestors=ancestors,
            sector_type=self._resolve_sector_type(level, parent, sector_type),
        )

    @staticmethod
    def anchor_id(
        node_type: NodeType,
        parent_id: Optional[str] = None,
        declared: Optional[AncestorPath] = None,
    ) -> Optional[str]:
        """The node a derivation would be read from, without reading it."""
        level = LEVELS[NodeType(node_type)]
        claimed = declared.populated() if declared is not None else {}
        if level.parent is not None:
            parent_id = parent_id or claimed.get(LEVELS[level.parent].pointer)
            if parent_id:
                return parent_id
        if level.family == HierarchyFamily.SECTOR:
            return claimed.get(AFFILIATION)
        return None

    def target_anchor(self, target: ContentTarget) -> Optional[str]:
        """The most specific node a content target points at."""
        claimed = _claimed_target(target)
        if not claimed:
            return None
        return claimed[self._target_anchor_level(claimed).pointer]

    async def derive_target(self, target: ContentTarget) -> ContentTarget:
        """
        Fills in the broader target pointers from the most specific one set.

        A target may only point into one family. Broader pointers the caller
        did set must agree with the hierarchy.
        """
        claimed = _claimed_target(target)
        if not claimed:
            return target

        anchor_level = self._target_anchor_level(claimed)
        anchor = await self._load(anchor_level.node_type, claimed[anchor_level.pointer])
        derived = anchor.scope()

        for pointer, value in claimed.items():
            if derived.get(pointer) != value:
                raise AncestorDriftError(
                    f"{POINTER_LABELS[pointer]} conflicts with target {anchor_level.label}",
                    {"field": f"target_{pointer}"},
                )
        return ContentTarget.from_pointers(derived.pointers())

    # --- internals ---

    async def _derive(self, level: Level, parent_id, declared):
        if declared is not None and declared.family != level.family.value:
            raise ValidationError(
                f"Declared ancestors belong to the {declared.family.lower()} "
                f"hierarchy, not {level.family.value.lower()}"
            )
        claimed: Dict[str, str] = declared.populated() if declared is not None else {}

        if level.parent is None:
            return await self._derive_root(level, claimed), None

        parent_level = LEVELS[level.parent]
        parent_id = parent_id or claimed.get(parent_level.pointer)
        if parent_id:
            parent = await self._load(parent_level.node_type, parent_id)
            derived = parent.scope()
            anchor_label = parent_level.label
        elif level.family == HierarchyFamily.SECTOR and claimed.get(AFFILIATION):
            # A sector subtree may hang directly off an expatriate region.
            region = await self._load(NodeType.EXPATRIATE_REGION, claimed[AFFILIATION])
            parent = None
            derived = SectorPath(expatriate_region_id=region.id)
            anchor_label = region.level.label
        elif level.family == HierarchyFamily.SECTOR:
            raise ValidationError(
                f"{parent_level.pointer_label} or "
                f"{LEVELS[NodeType.EXPATRIATE_REGION].label} ID is required",
                {"field": parent_level.pointer},
            )
        else:
            raise ValidationError(
                f"{parent_level.pointer_label} is required",
                {"field": parent_level.pointer},
            )

        self._check_drift(claimed, derived, f"parent {anchor_label}")
        return derived, parent

    async def _derive_root(self, level: Level, claimed: Dict[str, str]):
        derived = empty_path(level.family)
        if level.family == HierarchyFamily.SECTOR and AFFILIATION in claimed:
            region = await self._load(NodeType.EXPATRIATE_REGION, claimed[AFFILIATION])
            derived = derived.with_pointer(AFFILIATION, region.id)
        self._check_drift(claimed, derived, "parent hierarchy")
        return derived

    def _check_drift(self, claimed: Dict[str, str], derived, anchor: str) -> None:
        for pointer, value in claimed.items():
            if derived.get(pointer) != value:
                logger.warning(
                    f"Rejected drifting {pointer}={value}, derived {derived.get(pointer)}"
                )
                raise AncestorDriftError(
                    f"{POINTER_LABELS[pointer]} conflicts with {anchor}",
                    {"field": pointer},
                )

    async def _load(self, node_type: NodeType, node_id: str) -> NodeRecord:
        node = await self.store.get_node(node_id)
        if node is None or node.node_type != node_type:
            level = LEVELS[node_type]
            raise ValidationError(
                f"Invalid {level.label} ID", {"field": level.pointer}
            )
        return node

    @staticmethod
    def _resolve_sector_type(
        level: Level, parent: Optional[NodeRecord], requested: Optional[SectorType]
    ) -> Optional[SectorType]:
        if level.family != HierarchyFamily.SECTOR:
            if requested is not None:
                raise ValidationError("Sector type only applies to sector hierarchy nodes")
            return None
        inherited = parent.sector_type if parent is not None else None
        if requested is not None and inherited is not None and requested != inherited:
            raise AncestorDriftError(
                f"Sector type conflicts with parent {parent.level.label}",
                {"field": "sector_type"},
            )
        sector_type = requested or inherited
        if sector_type is None:
            raise ValidationError("Sector type is required", {"field": "sector_type"})
        return sector_type

    def _target_anchor_level(self, claimed: Dict[str, str]) -> Level:
        chain = FAMILY_CHAINS[self._target_family(claimed)]
        return next(LEVELS[t] for t in reversed(chain) if LEVELS[t].pointer in claimed)

    @staticmethod
    def _target_family(claimed: Dict[str, str]) -> HierarchyFamily:
        pointers = set(claimed)
        families = set()
        if pointers & _ORIGINAL_POINTERS:
            families.add(HierarchyFamily.ORIGINAL)
        if pointers & _SECTOR_POINTERS:
            families.add(HierarchyFamily.SECTOR)
        if len(families) > 1:
            raise ValidationError("Content target must reference a single hierarchy")
        if families:
            family = families.pop()
            if family == HierarchyFamily.ORIGINAL and AFFILIATION in pointers:
                raise ValidationError("Content target must reference a single hierarchy")
            return family
        return HierarchyFamily.EXPATRIATE
