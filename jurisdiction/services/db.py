# jurisdiction/services/db.py
"""
MongoDB implementation of the store seam, on top of Beanie documents.

Uniqueness comes from the collection indexes; delete RESTRICT is enforced here
by counting every record that still points at the node.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId
from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import DuplicateKeyError

from jurisdiction.models.content import (
    CONTENT_DOCUMENTS,
    ContentFields,
    ContentRecord,
    ContentType,
)
from jurisdiction.models.hierarchy import HierarchyNode, NodeFields, NodeRecord
from jurisdiction.models.user import UserAccount, UserFields, UserRecord
from jurisdiction.services.retry import RetryPolicy
from jurisdiction.services.store import (
    Filters,
    ForeignKeyViolation,
    RecordNotFound,
    UniqueViolation,
    plain_filters,
    reference_filters,
)

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [HierarchyNode, UserAccount, *CONTENT_DOCUMENTS.values()]

_session: ContextVar = ContextVar("store_session", default=None)


def _object_id(value: str) -> Optional[PydanticObjectId]:
    if not value or not ObjectId.is_valid(value):
        return None
    return PydanticObjectId(value)


class BeanieStore:
    def __init__(
        self,
        client: AsyncMongoClient,
        retry: Optional[RetryPolicy] = None,
        use_transactions: bool = False,
    ):
        self.client = client
        self.retry = retry or RetryPolicy()
        self.use_transactions = use_transactions

    @asynccontextmanager
    async def transaction(self):
        # Transactions need a replica set; standalone servers fall back to
        # single-document atomicity.
        if not self.use_transactions or _session.get() is not None:
            yield
            return
        async with self.client.start_session() as session:
            async with await session.start_transaction():
                token = _session.set(session)
                try:
                    yield
                finally:
                    _session.reset(token)

    async def _call(self, fn, *args, **kwargs):
        try:
            return await self.retry.run(fn, *args, **kwargs)
        except DuplicateKeyError as exc:
            raise UniqueViolation(str(exc)) from exc

    async def ping(self) -> None:
        await self._call(self.client.admin.command, "ping")

    # --- nodes ---

    async def _node_document(self, node_id: str) -> Optional[HierarchyNode]:
        oid = _object_id(node_id)
        if oid is None:
            return None
        return await self._call(HierarchyNode.get, oid, session=_session.get())

    async def get_node(self, node_id: str) -> Optional[NodeRecord]:
        doc = await self._node_document(node_id)
        return doc.to_record() if doc else None

    async def find_nodes(self, filters: Optional[Filters] = None) -> List[NodeRecord]:
        docs = await self._call(
            lambda: HierarchyNode.find(
                plain_filters(filters), session=_session.get()
            ).to_list()
        )
        return [doc.to_record() for doc in docs]

    async def insert_node(self, fields: NodeFields) -> NodeRecord:
        doc = HierarchyNode.model_validate(fields.model_dump())
        await self._call(doc.insert, session=_session.get())
        return doc.to_record()

    async def update_node(self, node_id: str, changes: Dict[str, Any]) -> NodeRecord:
        doc = await self._node_document(node_id)
        if doc is None:
            raise RecordNotFound(node_id)
        for key, value in changes.items():
            setattr(doc, key, value)
        await self._call(doc.save, session=_session.get())
        return doc.to_record()

    async def delete_node(self, node_id: str) -> None:
        doc = await self._node_document(node_id)
        if doc is None:
            raise RecordNotFound(node_id)
        references = reference_filters(doc.to_record())
        collections = [
            (HierarchyNode, references["nodes"]),
            (UserAccount, references["users"]),
        ] + [(model, references["content"]) for model in CONTENT_DOCUMENTS.values()]
        for model, filters in collections:
            for query in filters:
                count = await self._call(
                    lambda: model.find(query, session=_session.get()).count()
                )
                if count:
                    raise ForeignKeyViolation(
                        f"{count} {model.Settings.name} reference {node_id}"
                    )
        await self._call(doc.delete, session=_session.get())

    # --- users ---

    async def _user_document(self, user_id: str) -> Optional[UserAccount]:
        oid = _object_id(user_id)
        if oid is None:
            return None
        return await self._call(UserAccount.get, oid, session=_session.get())

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        doc = await self._user_document(user_id)
        return doc.to_record() if doc else None

    async def find_users(self, filters: Optional[Filters] = None) -> List[UserRecord]:
        docs = await self._call(
            lambda: UserAccount.find(
                plain_filters(filters), session=_session.get()
            ).to_list()
        )
        return [doc.to_record() for doc in docs]

    async def insert_user(self, fields: UserFields) -> UserRecord:
        doc = UserAccount.model_validate(fields.model_dump())
        await self._call(doc.insert, session=_session.get())
        return doc.to_record()

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> UserRecord:
        doc = await self._user_document(user_id)
        if doc is None:
            raise RecordNotFound(user_id)
        for key, value in changes.items():
            setattr(doc, key, value)
        await self._call(doc.save, session=_session.get())
        return doc.to_record()

    # --- content ---

    async def _content_document(self, content_type: ContentType, content_id: str):
        oid = _object_id(content_id)
        if oid is None:
            return None
        model = CONTENT_DOCUMENTS[ContentType(content_type)]
        return await self._call(model.get, oid, session=_session.get())

    async def get_content(
        self, content_type: ContentType, content_id: str
    ) -> Optional[ContentRecord]:
        doc = await self._content_document(content_type, content_id)
        return doc.to_record() if doc else None

    async def find_content(
        self, content_type: ContentType, filters: Optional[Filters] = None
    ) -> List[ContentRecord]:
        model = CONTENT_DOCUMENTS[ContentType(content_type)]
        docs = await self._call(
            lambda: model.find(plain_filters(filters), session=_session.get()).to_list()
        )
        return [doc.to_record() for doc in docs]

    async def insert_content(
        self, content_type: ContentType, fields: ContentFields
    ) -> ContentRecord:
        model = CONTENT_DOCUMENTS[ContentType(content_type)]
        doc = model.model_validate(fields.model_dump())
        await self._call(doc.insert, session=_session.get())
        return doc.to_record()

    async def update_content(
        self, content_type: ContentType, content_id: str, changes: Dict[str, Any]
    ) -> ContentRecord:
        doc = await self._content_document(content_type, content_id)
        if doc is None:
            raise RecordNotFound(content_id)
        for key, value in changes.items():
            setattr(doc, key, value)
        await self._call(doc.save, session=_session.get())
        return doc.to_record()

    async def delete_content(self, content_type: ContentType, content_id: str) -> None:
        doc = await self._content_document(content_type, content_id)
        if doc is None:
            raise RecordNotFound(content_id)
        await self._call(doc.delete, session=_session.get())


class StoreHealthMonitor:
    """Pings the store on an interval and logs when its health flips."""

    def __init__(self, store, interval_seconds: float = 30):
        self.store = store
        self.interval_seconds = interval_seconds
        self.healthy: Optional[bool] = None

    async def probe(self) -> bool:
        try:
            await self.store.ping()
            healthy = True
        except Exception as e:
            logger.debug(f"Store health probe failed: {e}")
            healthy = False

        if healthy != self.healthy:
            if healthy:
                logger.info("Store connection healthy")
            else:
                logger.warning("Store connection unhealthy")
        self.healthy = healthy
        return healthy

    async def run(self) -> None:
        logger.info(f"Store health probe started (every {self.interval_seconds}s)")
        while True:
            await self.probe()
            await asyncio.sleep(self.interval_seconds)
