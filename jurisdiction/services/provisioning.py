# jurisdiction/services/provisioning.py
import logging
from typing import Callable, List, Optional

from jurisdiction.exceptions import (
    AdminPermissionError,
    ConflictError,
    ValidationError,
)
from jurisdiction.models.hierarchy import (
    LEVELS,
    HierarchyFamily,
    NodeRecord,
    empty_path,
)
from jurisdiction.models.levels import (
    ADMIN_LEVEL_RANKS,
    EXPATRIATE_LEVELS,
    node_type_for,
    rank,
)
from jurisdiction.models.user import (
    AdminLevel,
    Principal,
    UserFields,
    UserRecord,
    UserRole,
)
from jurisdiction.schemas.user import NewAdminSpec
from jurisdiction.services.access import (
    AccessControlEngine,
    Operation,
    Resource,
    ResourceKind,
    is_superuser,
)
from jurisdiction.services.store import HierarchyStore, UniqueViolation

logger = logging.getLogger(__name__)

DUPLICATE_MOBILE = "User with this mobile number already exists"


class AdminProvisioningService:
    """Creates admin accounts below the creator, inside the creator's subtree."""

    def __init__(
        self,
        store: HierarchyStore,
        access: AccessControlEngine,
        hash_password: Callable[[str], str],
    ):
        self.store = store
        self.access = access
        self.hash_password = hash_password

    def get_available_admin_levels(self, creator: Principal) -> List[AdminLevel]:
        """Levels the creator may hand out, highest first."""
        creator_rank = rank(creator.admin_level)
        levels = [
            level
            for level in AdminLevel
            if level != AdminLevel.USER and ADMIN_LEVEL_RANKS[level] < creator_rank
        ]
        if not is_superuser(creator):
            levels = [level for level in levels if self._fits_family(creator, level)]
        return sorted(levels, key=lambda level: ADMIN_LEVEL_RANKS[level], reverse=True)

    async def get_assignment_options(
        self,
        creator: Principal,
        admin_level: AdminLevel,
        active_hierarchy: Optional[HierarchyFamily] = None,
    ) -> List[NodeRecord]:
        """Nodes a new admin of ``admin_level`` could be assigned to."""
        self._check_rank(creator, admin_level)
        family = self._family_for(creator, admin_level, active_hierarchy)
        node_type = node_type_for(admin_level, family)
        if node_type is None:
            return []
        return await self.access.get_manageable_nodes(creator, node_type)

    async def provision_admin(self, creator: Principal, spec: NewAdminSpec) -> UserRecord:
        admin_level = spec.admin_level
        self._check_rank(creator, admin_level)
        if admin_level in (AdminLevel.USER, AdminLevel.ADMIN):
            raise ValidationError("Invalid admin level", {"field": "admin_level"})

        family = self._family_for(creator, admin_level, spec.active_hierarchy)
        if not is_superuser(creator) and not self._fits_family(creator, admin_level, family):
            raise ValidationError(
                "Requested hierarchy is outside your jurisdiction",
                {"field": "active_hierarchy"},
            )
        path = await self._resolve_path(creator, admin_level, family, spec.assignment_id)

        fields = UserFields(
            mobile_number=spec.mobile_number,
            email=spec.email,
            hashed_password=self.hash_password(spec.password),
            first_name=spec.first_name,
            last_name=spec.last_name,
            role=UserRole.ADMIN,
            admin_level=admin_level,
            active_hierarchy=family,
            path=path,
        )
        async with self.store.transaction():
            if await self.store.find_users({"mobile_number": spec.mobile_number}):
                raise ConflictError(DUPLICATE_MOBILE, {"field": "mobile_number"})
            try:
                admin = await self.store.insert_user(fields)
            except UniqueViolation as exc:
                raise ConflictError(DUPLICATE_MOBILE, {"field": "mobile_number"}) from exc

        logger.info(
            f"{creator.id} ({creator.admin_level.value}) provisioned "
            f"{admin_level.value} admin {admin.id} in {family.value}"
        )
        return admin

    # --- internals ---

    def _check_rank(self, creator: Principal, admin_level: AdminLevel) -> None:
        if not self.get_available_admin_levels(creator):
            raise AdminPermissionError("You don't have permission to create admins")
        decision = self.access.can_create_admin(creator, admin_level)
        if not decision.allowed:
            raise AdminPermissionError(decision.reason)

    @staticmethod
    def _family_for(
        creator: Principal,
        admin_level: AdminLevel,
        requested: Optional[HierarchyFamily],
    ) -> HierarchyFamily:
        if admin_level in EXPATRIATE_LEVELS:
            return HierarchyFamily.EXPATRIATE
        family = HierarchyFamily(requested or creator.active_hierarchy)
        if family == HierarchyFamily.EXPATRIATE:
            raise ValidationError(
                f"{admin_level.value} admins cannot be assigned to the expatriate hierarchy",
                {"field": "active_hierarchy"},
            )
        return family

    @staticmethod
    def _fits_family(
        creator: Principal,
        admin_level: AdminLevel,
        family: Optional[HierarchyFamily] = None,
    ) -> bool:
        if creator.admin_level == AdminLevel.EXPATRIATE_GENERAL:
            return admin_level == AdminLevel.EXPATRIATE_REGION
        family = family or creator.active_hierarchy
        return (
            family == creator.active_hierarchy
            and node_type_for(admin_level, family) is not None
        )

    async def _resolve_path(
        self,
        creator: Principal,
        admin_level: AdminLevel,
        family: HierarchyFamily,
        assignment_id: Optional[str],
    ):
        node_type = node_type_for(admin_level, family)
        if node_type is None:
            return empty_path(family)

        level = LEVELS[node_type]
        if not assignment_id:
            raise ValidationError(
                f"{level.pointer_label} is required", {"field": "assignment_id"}
            )
        node = await self.store.get_node(assignment_id)
        if node is None or node.node_type != node_type:
            raise ValidationError(
                f"Invalid {level.label} ID", {"field": "assignment_id"}
            )
        scope = node.scope()
        decision = await self.access.authorize(
            creator,
            Operation.READ,
            Resource(kind=ResourceKind.NODE, id=node.id),
        )
        if not decision.allowed:
            raise ValidationError(
                f"Requested {level.label} is outside your jurisdiction",
                {"field": "assignment_id"},
            )
        return scope
