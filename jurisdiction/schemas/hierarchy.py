# jurisdiction/schemas/hierarchy.py
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jurisdiction.models.hierarchy import (
    LEVELS,
    AncestorPath,
    ExpatriatePath,
    NodeType,
    OriginalPath,
    SectorPath,
    SectorType,
)


class NodeDetails(BaseModel):
    """Free-text attributes of a node, before normalization."""

    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None


class _NodeCreateBase(NodeDetails):
    node_type: NodeType
    parent_id: Optional[str] = None
    admin_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _node_type_matches_family(self):
        if LEVELS[self.node_type].family.value != self.family:
            raise ValueError(
                f"{self.node_type.value} is not a {self.family.lower()} node type"
            )
        return self


class OriginalNodeCreate(_NodeCreateBase):
    family: Literal["ORIGINAL"] = "ORIGINAL"
    declared_ancestors: Optional[OriginalPath] = None


class ExpatriateNodeCreate(_NodeCreateBase):
    family: Literal["EXPATRIATE"] = "EXPATRIATE"
    declared_ancestors: Optional[ExpatriatePath] = None


class SectorNodeCreate(_NodeCreateBase):
    family: Literal["SECTOR"] = "SECTOR"
    sector_type: Optional[SectorType] = None
    declared_ancestors: Optional[SectorPath] = None


NodeCreate = Annotated[
    Union[OriginalNodeCreate, ExpatriateNodeCreate, SectorNodeCreate],
    Field(discriminator="family"),
]


class NodeUpdate(NodeDetails):
    admin_id: Optional[str] = None
    active: Optional[bool] = None
    # Last updated_at the caller saw; enables the optimistic lock check.
    expected_updated_at: Optional[datetime] = None

    # Parent changes go through NodeReparent.
    model_config = ConfigDict(extra="forbid")


class NodeReparent(BaseModel):
    parent_id: Optional[str] = None
    declared_ancestors: Optional[AncestorPath] = None
    expected_updated_at: Optional[datetime] = None
    migrate_affiliation: bool = False

    model_config = ConfigDict(extra="forbid")


class NodeStatusChange(BaseModel):
    expected_updated_at: Optional[datetime] = None


class DeriveRequest(BaseModel):
    node_type: NodeType
    parent_id: Optional[str] = None
    declared_ancestors: Optional[AncestorPath] = None


class ManageableSet(BaseModel):
    ids: List[str] = Field(default_factory=list)
