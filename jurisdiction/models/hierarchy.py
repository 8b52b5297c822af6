# jurisdiction/models/hierarchy.py
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from beanie import Document
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ASCENDING, IndexModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Hierarchy families and node types ---
class HierarchyFamily(str, Enum):
    """The three parallel trees a node or user can belong to."""

    ORIGINAL = "ORIGINAL"
    EXPATRIATE = "EXPATRIATE"
    SECTOR = "SECTOR"


class NodeType(str, Enum):
    NATIONAL_LEVEL = "national_level"
    REGION = "region"
    LOCALITY = "locality"
    ADMIN_UNIT = "admin_unit"
    DISTRICT = "district"
    EXPATRIATE_REGION = "expatriate_region"
    SECTOR_NATIONAL_LEVEL = "sector_national_level"
    SECTOR_REGION = "sector_region"
    SECTOR_LOCALITY = "sector_locality"
    SECTOR_ADMIN_UNIT = "sector_admin_unit"
    SECTOR_DISTRICT = "sector_district"


class SectorType(str, Enum):
    SOCIAL = "SOCIAL"
    ECONOMIC = "ECONOMIC"
    ORGANIZATIONAL = "ORGANIZATIONAL"
    POLITICAL = "POLITICAL"


@dataclass(frozen=True)
class Level:
    """One level of a hierarchy family: where it sits and which pointer names it."""

    node_type: NodeType
    family: HierarchyFamily
    pointer: str
    label: str
    parent: Optional[NodeType] = None

    @property
    def title(self) -> str:
        return self.label[0].upper() + self.label[1:]

    @property
    def pointer_label(self) -> str:
        return f"{self.title} ID"


FAMILY_CHAINS: Dict[HierarchyFamily, List[NodeType]] = {
    HierarchyFamily.ORIGINAL: [
        NodeType.NATIONAL_LEVEL,
        NodeType.REGION,
        NodeType.LOCALITY,
        NodeType.ADMIN_UNIT,
        NodeType.DISTRICT,
    ],
    HierarchyFamily.EXPATRIATE: [NodeType.EXPATRIATE_REGION],
    HierarchyFamily.SECTOR: [
        NodeType.SECTOR_NATIONAL_LEVEL,
        NodeType.SECTOR_REGION,
        NodeType.SECTOR_LOCALITY,
        NodeType.SECTOR_ADMIN_UNIT,
        NodeType.SECTOR_DISTRICT,
    ],
}

_LABELS = {
    NodeType.NATIONAL_LEVEL: "national level",
    NodeType.REGION: "region",
    NodeType.LOCALITY: "locality",
    NodeType.ADMIN_UNIT: "admin unit",
    NodeType.DISTRICT: "district",
    NodeType.EXPATRIATE_REGION: "expatriate region",
    NodeType.SECTOR_NATIONAL_LEVEL: "sector national level",
    NodeType.SECTOR_REGION: "sector region",
    NodeType.SECTOR_LOCALITY: "sector locality",
    NodeType.SECTOR_ADMIN_UNIT: "sector admin unit",
    NodeType.SECTOR_DISTRICT: "sector district",
}


def _build_levels() -> Dict[NodeType, Level]:
    levels = {}
    for family, chain in FAMILY_CHAINS.items():
        parent = None
        for node_type in chain:
            levels[node_type] = Level(
                node_type=node_type,
                family=family,
                pointer=f"{node_type.value}_id",
                label=_LABELS[node_type],
                parent=parent,
            )
            parent = node_type
    return levels


LEVELS: Dict[NodeType, Level] = _build_levels()

# Pointer name -> human label, e.g. "expatriate_region_id" -> "Expatriate region ID"
POINTER_LABELS: Dict[str, str] = {
    level.pointer: level.pointer_label for level in LEVELS.values()
}


# --- Ancestor paths ---
class _PathBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def pointers(self) -> Dict[str, Optional[str]]:
        """Pointer fields in root-to-leaf order, without the family tag."""
        return self.model_dump(exclude={"family"})

    def get(self, pointer: str) -> Optional[str]:
        return getattr(self, pointer, None)

    def with_pointer(self, pointer: str, value: Optional[str]):
        return self.model_copy(update={pointer: value})

    def populated(self) -> Dict[str, str]:
        return {k: v for k, v in self.pointers().items() if v is not None}


class OriginalPath(_PathBase):
    family: Literal["ORIGINAL"] = "ORIGINAL"
    national_level_id: Optional[str] = None
    region_id: Optional[str] = None
    locality_id: Optional[str] = None
    admin_unit_id: Optional[str] = None
    district_id: Optional[str] = None


class ExpatriatePath(_PathBase):
    family: Literal["EXPATRIATE"] = "EXPATRIATE"
    expatriate_region_id: Optional[str] = None


class SectorPath(_PathBase):
    family: Literal["SECTOR"] = "SECTOR"
    # Root affiliation: null for the national sector tree, otherwise the
    # expatriate region the whole sector tree hangs under.
    expatriate_region_id: Optional[str] = None
    sector_national_level_id: Optional[str] = None
    sector_region_id: Optional[str] = None
    sector_locality_id: Optional[str] = None
    sector_admin_unit_id: Optional[str] = None
    sector_district_id: Optional[str] = None


AncestorPath = Annotated[
    Union[OriginalPath, ExpatriatePath, SectorPath], Field(discriminator="family")
]

PATH_MODELS = {
    HierarchyFamily.ORIGINAL: OriginalPath,
    HierarchyFamily.EXPATRIATE: ExpatriatePath,
    HierarchyFamily.SECTOR: SectorPath,
}


def empty_path(family: HierarchyFamily):
    return PATH_MODELS[HierarchyFamily(family)]()


# --- Hierarchy nodes ---
class NodeFields(BaseModel):
    """Attributes shared by every node of every family."""

    node_type: NodeType
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    active: bool = True
    admin_id: Optional[str] = None  # weak reference to the responsible user
    parent_id: Optional[str] = None
    sector_type: Optional[SectorType] = None
    # Strict ancestors only; the node's own pointer is added by scope().
    ancestors: AncestorPath
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def level(self) -> Level:
        return LEVELS[self.node_type]

    @property
    def family(self) -> HierarchyFamily:
        return self.level.family


class NodeRecord(NodeFields):
    id: str

    def scope(self):
        """The node's ancestors plus the node itself."""
        return self.ancestors.with_pointer(self.level.pointer, self.id)


class HierarchyNode(Document, NodeFields):
    """Stored form of a node in any of the three families."""

    class Settings:
        name = "hierarchy_nodes"
        indexes = [
            IndexModel(
                [("node_type", ASCENDING), ("code", ASCENDING)],
                unique=True,
                partialFilterExpression={"code": {"$type": "string"}},
                name="node_type_code_unique",
            ),
            IndexModel([("parent_id", ASCENDING)], name="parent_id"),
        ]

    def to_record(self) -> NodeRecord:
        data = self.model_dump(include=set(NodeFields.model_fields))
        data["id"] = str(self.id)
        return NodeRecord.model_validate(data)
