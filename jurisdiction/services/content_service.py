# jurisdiction/services/content_service.py
import logging
from typing import List

from jurisdiction.exceptions import ForbiddenError, NotFoundError, ValidationError
from jurisdiction.models.content import (
    ContentFields,
    ContentRecord,
    ContentTarget,
    ContentType,
)
from jurisdiction.models.hierarchy import utcnow
from jurisdiction.models.user import AdminLevel, Principal
from jurisdiction.schemas.content import ContentCreate, ContentUpdate
from jurisdiction.services.access import (
    INSUFFICIENT_PERMISSIONS,
    AccessControlEngine,
    Operation,
    Resource,
    ResourceKind,
)
from jurisdiction.services.scope import ScopeDerivationEngine
from jurisdiction.services.store import HierarchyStore

logger = logging.getLogger(__name__)

CONTENT_NOT_FOUND = "Content not found"


class ContentService:
    """Bulletins, surveys, voting items, reports and subscription plans."""

    def __init__(
        self,
        store: HierarchyStore,
        scope: ScopeDerivationEngine,
        access: AccessControlEngine,
    ):
        self.store = store
        self.scope = scope
        self.access = access

    async def create_content(
        self, principal: Principal, content_type: ContentType, payload: ContentCreate
    ) -> ContentRecord:
        self._require_writer(principal)
        target = await self._derive_target(principal, payload.target)
        fields = ContentFields(
            title=payload.title.strip(),
            body=payload.body,
            published=payload.published,
            created_by_id=principal.id,
            target=target,
        )
        # The draft is checked with the same rule that later governs editing it.
        draft = ContentRecord(id="", content_type=content_type, **fields.model_dump())
        self._require_within(principal, draft)

        async with self.store.transaction():
            content = await self.store.insert_content(content_type, fields)
        logger.info(f"{principal.id} created {content_type.value} {content.id}")
        return content

    async def get_content(
        self, principal: Principal, content_type: ContentType, content_id: str
    ) -> ContentRecord:
        return await self._load(principal, Operation.READ, content_type, content_id)

    async def list_content(
        self, principal: Principal, content_type: ContentType
    ) -> List[ContentRecord]:
        return await self.access.get_manageable_content(principal, content_type)

    async def update_content(
        self,
        principal: Principal,
        content_type: ContentType,
        content_id: str,
        payload: ContentUpdate,
    ) -> ContentRecord:
        """Applies the fields that were set. A moved target must stay in reach."""
        self._require_writer(principal)
        changes = payload.model_dump(exclude_unset=True, exclude={"target"})
        if "title" in changes:
            if not (changes["title"] or "").strip():
                raise ValidationError("Title is required", {"field": "title"})
            changes["title"] = changes["title"].strip()
        if changes.get("published", False) is None:
            del changes["published"]

        async with self.store.transaction():
            current = await self._load(principal, Operation.WRITE, content_type, content_id)
            if payload.target is not None:
                target = await self._derive_target(principal, payload.target)
                self._require_within(principal, current.model_copy(update={"target": target}))
                changes["target"] = target
            changes["updated_at"] = utcnow()
            content = await self.store.update_content(content_type, content_id, changes)

        logger.info(f"{principal.id} updated {content_type.value} {content_id}: {sorted(changes)}")
        return content

    async def toggle_publish(
        self, principal: Principal, content_type: ContentType, content_id: str
    ) -> ContentRecord:
        self._require_writer(principal)
        async with self.store.transaction():
            current = await self._load(principal, Operation.WRITE, content_type, content_id)
            content = await self.store.update_content(
                content_type,
                content_id,
                {"published": not current.published, "updated_at": utcnow()},
            )
        logger.info(
            f"{principal.id} set {content_type.value} {content_id} published={content.published}"
        )
        return content

    async def delete_content(
        self, principal: Principal, content_type: ContentType, content_id: str
    ) -> None:
        self._require_writer(principal)
        async with self.store.transaction():
            await self._load(principal, Operation.DELETE, content_type, content_id)
            await self.store.delete_content(content_type, content_id)
        logger.info(f"{principal.id} deleted {content_type.value} {content_id}")

    # --- internals ---

    @staticmethod
    def _require_writer(principal: Principal) -> None:
        if principal.admin_level == AdminLevel.USER:
            raise ForbiddenError(INSUFFICIENT_PERMISSIONS)

    def _require_within(self, principal: Principal, content: ContentRecord) -> None:
        if not self.access.content_within(principal, content):
            raise ForbiddenError(INSUFFICIENT_PERMISSIONS)

    async def _derive_target(self, principal: Principal, target: ContentTarget) -> ContentTarget:
        decision = await self.access.authorize_anchor(principal, self.scope.target_anchor(target))
        decision.enforce()
        return await self.scope.derive_target(target)

    async def _load(
        self,
        principal: Principal,
        operation: Operation,
        content_type: ContentType,
        content_id: str,
    ) -> ContentRecord:
        decision = await self.access.authorize(
            principal,
            operation,
            Resource(kind=ResourceKind.CONTENT, id=content_id, content_type=content_type),
        )
        decision.enforce()
        content = await self.store.get_content(content_type, content_id)
        if content is None:
            raise NotFoundError(CONTENT_NOT_FOUND)
        return content
