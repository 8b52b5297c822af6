# jurisdiction/schemas/user.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from jurisdiction.models.hierarchy import AncestorPath, HierarchyFamily
from jurisdiction.models.user import AdminLevel, UserRole


class NewAdminSpec(BaseModel):
    mobile_number: str = Field(..., min_length=6)
    password: str = Field(..., min_length=6)
    first_name: str
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    admin_level: AdminLevel
    # Defaults to the creator's hierarchy; expatriate levels always use EXPATRIATE.
    active_hierarchy: Optional[HierarchyFamily] = None
    # Node the new admin is responsible for (region id for a REGION admin, ...)
    assignment_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class UserPublic(BaseModel):
    id: str
    mobile_number: str
    email: Optional[EmailStr] = None
    first_name: str
    last_name: Optional[str] = None
    role: UserRole
    admin_level: AdminLevel
    active_hierarchy: HierarchyFamily
    path: AncestorPath
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HierarchyAssignment(BaseModel):
    node_id: str
