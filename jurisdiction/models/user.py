# jurisdiction/models/user.py
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, EmailStr, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from jurisdiction.exceptions import UnauthorizedError
from jurisdiction.models.hierarchy import (
    AncestorPath,
    HierarchyFamily,
    OriginalPath,
    utcnow,
)


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class AdminLevel(str, Enum):
    """Position of a principal in its hierarchy. Ranks live in models.levels."""

    USER = "USER"
    DISTRICT = "DISTRICT"
    ADMIN_UNIT = "ADMIN_UNIT"
    LOCALITY = "LOCALITY"
    REGION = "REGION"
    NATIONAL_LEVEL = "NATIONAL_LEVEL"
    GENERAL_SECRETARIAT = "GENERAL_SECRETARIAT"
    EXPATRIATE_REGION = "EXPATRIATE_REGION"
    EXPATRIATE_GENERAL = "EXPATRIATE_GENERAL"
    ADMIN = "ADMIN"


class _PlacedModel(BaseModel):
    """A model that sits somewhere in exactly one hierarchy family."""

    active_hierarchy: HierarchyFamily = HierarchyFamily.ORIGINAL
    path: AncestorPath = Field(default_factory=OriginalPath)

    @model_validator(mode="after")
    def _path_matches_active_hierarchy(self):
        if self.path.family != self.active_hierarchy.value:
            raise ValueError(
                f"path belongs to {self.path.family} but active hierarchy is "
                f"{self.active_hierarchy.value}"
            )
        return self


class UserFields(_PlacedModel):
    mobile_number: str
    email: Optional[EmailStr] = None
    hashed_password: str
    first_name: str
    last_name: Optional[str] = None
    role: UserRole = UserRole.USER
    admin_level: AdminLevel = AdminLevel.USER
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserRecord(UserFields):
    id: str


class UserAccount(Document, UserFields):
    mobile_number: Indexed(str, unique=True)

    class Settings:
        name = "users"

    def to_record(self) -> UserRecord:
        data = self.model_dump(include=set(UserFields.model_fields))
        data["id"] = str(self.id)
        return UserRecord.model_validate(data)


class Principal(_PlacedModel):
    """The decoded claims of an authenticated caller."""

    id: str
    role: UserRole = UserRole.USER
    admin_level: AdminLevel = AdminLevel.USER

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        """
        Builds a principal from a verified token payload.

        Expected claims: ``sub``, ``role``, ``admin_level``, ``active_hierarchy``
        and ``path`` (a mapping of ancestor pointers). A path without a
        ``family`` tag is read as belonging to the active hierarchy.
        """
        active = claims.get("active_hierarchy") or HierarchyFamily.ORIGINAL.value
        path = dict(claims.get("path") or {})
        path.setdefault("family", active)
        try:
            return cls(
                id=claims.get("sub"),
                role=claims.get("role") or UserRole.USER.value,
                admin_level=claims.get("admin_level") or AdminLevel.USER.value,
                active_hierarchy=active,
                path=path,
            )
        except PydanticValidationError:
            raise UnauthorizedError("Could not validate credentials")

    @classmethod
    def from_user(cls, user: UserRecord) -> "Principal":
        return cls(
            id=user.id,
            role=user.role,
            admin_level=user.admin_level,
            active_hierarchy=user.active_hierarchy,
            path=user.path,
        )

    def to_claims(self) -> dict:
        return {
            "sub": self.id,
            "role": self.role.value,
            "admin_level": self.admin_level.value,
            "active_hierarchy": self.active_hierarchy.value,
            "path": self.path.model_dump(),
        }
