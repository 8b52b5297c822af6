# jurisdiction/models/levels.py
from typing import Dict, List, Optional, Tuple

from jurisdiction.models.hierarchy import (
    FAMILY_CHAINS,
    LEVELS,
    HierarchyFamily,
    Level,
    NodeType,
)
from jurisdiction.models.user import AdminLevel

# Total order used by both "who may create whom" and "who may see what".
ADMIN_LEVEL_RANKS: Dict[AdminLevel, int] = {
    AdminLevel.USER: 0,
    AdminLevel.DISTRICT: 1,
    AdminLevel.ADMIN_UNIT: 2,
    AdminLevel.LOCALITY: 3,
    AdminLevel.REGION: 4,
    AdminLevel.EXPATRIATE_REGION: 4,
    AdminLevel.NATIONAL_LEVEL: 5,
    AdminLevel.EXPATRIATE_GENERAL: 5,
    AdminLevel.GENERAL_SECRETARIAT: 6,
    AdminLevel.ADMIN: 7,
}

SUPERUSER_LEVELS = frozenset(
    {AdminLevel.ADMIN, AdminLevel.GENERAL_SECRETARIAT, AdminLevel.NATIONAL_LEVEL}
)

EXPATRIATE_LEVELS = frozenset(
    {AdminLevel.EXPATRIATE_REGION, AdminLevel.EXPATRIATE_GENERAL}
)

_GEOGRAPHIC_LEVELS = [
    AdminLevel.NATIONAL_LEVEL,
    AdminLevel.REGION,
    AdminLevel.LOCALITY,
    AdminLevel.ADMIN_UNIT,
    AdminLevel.DISTRICT,
]


def _build_admin_nodes() -> Dict[Tuple[AdminLevel, HierarchyFamily], NodeType]:
    nodes = {}
    for family in (HierarchyFamily.ORIGINAL, HierarchyFamily.SECTOR):
        for admin_level, node_type in zip(_GEOGRAPHIC_LEVELS, FAMILY_CHAINS[family]):
            nodes[(admin_level, family)] = node_type
    nodes[(AdminLevel.EXPATRIATE_REGION, HierarchyFamily.EXPATRIATE)] = (
        NodeType.EXPATRIATE_REGION
    )
    return nodes


# (admin level, family) -> the node type an admin of that level is assigned to.
ADMIN_LEVEL_NODES = _build_admin_nodes()

# node type -> the admin level that owns nodes of that type
NODE_ADMIN_LEVELS: Dict[NodeType, AdminLevel] = {
    node_type: admin_level for (admin_level, _), node_type in ADMIN_LEVEL_NODES.items()
}


def rank(admin_level: AdminLevel) -> int:
    return ADMIN_LEVEL_RANKS[AdminLevel(admin_level)]


def node_type_for(
    admin_level: AdminLevel, family: HierarchyFamily
) -> Optional[NodeType]:
    return ADMIN_LEVEL_NODES.get((AdminLevel(admin_level), HierarchyFamily(family)))


def level_for(admin_level: AdminLevel, family: HierarchyFamily) -> Optional[Level]:
    node_type = node_type_for(admin_level, family)
    return LEVELS[node_type] if node_type else None


def chain_pointers(level: Level) -> List[str]:
    """
    Pointers from the family root down to and including ``level``.

    Sector chains start with the root affiliation pointer so that two sector
    trees under different expatriate regions never compare equal.
    """
    chain = FAMILY_CHAINS[level.family]
    pointers = [LEVELS[t].pointer for t in chain[: chain.index(level.node_type) + 1]]
    if level.family == HierarchyFamily.SECTOR:
        pointers.insert(0, LEVELS[NodeType.EXPATRIATE_REGION].pointer)
    return pointers
