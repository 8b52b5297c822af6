"""
Shared fixtures: an in-memory store with the same constraints as MongoDB
(unique codes and mobile numbers, delete RESTRICT, rollback on error) and a
small seeded hierarchy covering all three families.
"""

import copy
import uuid
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel

from jurisdiction.auth.auth import ClaimsDecoder
from jurisdiction.dependencies.auth import get_claims_decoder
from jurisdiction.models.content import ContentFields, ContentRecord, ContentTarget, ContentType
from jurisdiction.models.hierarchy import (
    HierarchyFamily,
    NodeFields,
    NodeRecord,
    NodeType,
    SectorPath,
    SectorType,
    empty_path,
)
from jurisdiction.models.user import AdminLevel, Principal, UserFields, UserRecord, UserRole
from jurisdiction.services.cache import ScopeCache
from jurisdiction.services.container import ServiceContainer
from jurisdiction.services.scope import ScopeDerivationEngine
from jurisdiction.services.store import (
    ForeignKeyViolation,
    RecordNotFound,
    StoreConnectionError,
    UniqueViolation,
    plain_filters,
    reference_filters,
)

TEST_SECRET = "test-secret"


# ── Helpers / Fakes ──────────────────────────────────────────────────

def _lookup(data, dotted):
    for part in dotted.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(part)
    return data


def _matches(record, filters) -> bool:
    data = record.model_dump(mode="json")
    return all(_lookup(data, key) == value for key, value in plain_filters(filters).items())


def _merge(record, changes):
    data = record.model_dump()
    for key, value in changes.items():
        data[key] = value.model_dump() if isinstance(value, BaseModel) else value
    return type(record).model_validate(data)


class InMemoryStore:
    """Dict-backed HierarchyStore."""

    def __init__(self):
        self.nodes = {}
        self.users = {}
        self.content = {content_type: {} for content_type in ContentType}
        self.healthy = True
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy((self.nodes, self.users, self.content))
        self.transactions += 1
        try:
            yield
        except BaseException:
            self.nodes, self.users, self.content = snapshot
            raise

    async def ping(self):
        if not self.healthy:
            raise StoreConnectionError("connection refused")

    # nodes

    def _check_code(self, node_type, code, node_id=None):
        if code is None:
            return
        for other in self.nodes.values():
            if other.id != node_id and other.node_type == node_type and other.code == code:
                raise UniqueViolation(f"duplicate code {code}")

    async def get_node(self, node_id):
        return self.nodes.get(node_id)

    async def find_nodes(self, filters=None):
        return [node for node in self.nodes.values() if _matches(node, filters)]

    async def insert_node(self, fields: NodeFields):
        self._check_code(fields.node_type, fields.code)
        node = NodeRecord(id=uuid.uuid4().hex, **fields.model_dump())
        self.nodes[node.id] = node
        return node

    async def update_node(self, node_id, changes):
        current = self.nodes.get(node_id)
        if current is None:
            raise RecordNotFound(node_id)
        node = _merge(current, changes)
        self._check_code(node.node_type, node.code, node_id)
        self.nodes[node_id] = node
        return node

    async def delete_node(self, node_id):
        node = self.nodes.get(node_id)
        if node is None:
            raise RecordNotFound(node_id)
        references = reference_filters(node)
        records = {
            "nodes": list(self.nodes.values()),
            "users": list(self.users.values()),
            "content": [c for by_type in self.content.values() for c in by_type.values()],
        }
        for collection, filters in references.items():
            for query in filters:
                if any(_matches(record, query) for record in records[collection]):
                    raise ForeignKeyViolation(f"{collection} reference {node_id}")
        del self.nodes[node_id]

    # users

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def find_users(self, filters=None):
        return [user for user in self.users.values() if _matches(user, filters)]

    async def insert_user(self, fields: UserFields):
        if any(u.mobile_number == fields.mobile_number for u in self.users.values()):
            raise UniqueViolation(f"duplicate mobile {fields.mobile_number}")
        user = UserRecord(id=uuid.uuid4().hex, **fields.model_dump())
        self.users[user.id] = user
        return user

    async def update_user(self, user_id, changes):
        current = self.users.get(user_id)
        if current is None:
            raise RecordNotFound(user_id)
        user = _merge(current, changes)
        self.users[user_id] = user
        return user

    # content

    async def get_content(self, content_type, content_id):
        return self.content[ContentType(content_type)].get(content_id)

    async def find_content(self, content_type, filters=None):
        records = self.content[ContentType(content_type)].values()
        return [record for record in records if _matches(record, filters)]

    async def insert_content(self, content_type, fields: ContentFields):
        record = ContentRecord(
            id=uuid.uuid4().hex, content_type=content_type, **fields.model_dump()
        )
        self.content[ContentType(content_type)][record.id] = record
        return record

    async def update_content(self, content_type, content_id, changes):
        by_type = self.content[ContentType(content_type)]
        current = by_type.get(content_id)
        if current is None:
            raise RecordNotFound(content_id)
        record = _merge(current, changes)
        by_type[content_id] = record
        return record

    async def delete_content(self, content_type, content_id):
        by_type = self.content[ContentType(content_type)]
        if content_id not in by_type:
            raise RecordNotFound(content_id)
        del by_type[content_id]


async def add_node(store, node_type, name, parent=None, code=None, sector_type=None, affiliation=None):
    """Seeds a node straight into the store, with derived ancestors."""
    declared = SectorPath(expatriate_region_id=affiliation.id) if affiliation else None
    placement = await ScopeDerivationEngine(store).derive_placement(
        node_type,
        parent_id=parent.id if parent else None,
        declared=declared,
        sector_type=sector_type,
    )
    return await store.insert_node(
        NodeFields(
            node_type=node_type,
            name=name,
            code=code,
            parent_id=placement.parent_id,
            sector_type=placement.sector_type,
            ancestors=placement.ancestors,
        )
    )


async def add_user(store, mobile, node=None, admin_level=AdminLevel.USER, family=HierarchyFamily.ORIGINAL):
    path = node.scope() if node else empty_path(family)
    return await store.insert_user(
        UserFields(
            mobile_number=mobile,
            hashed_password="hashed:secret",
            first_name=f"User {mobile}",
            role=UserRole.USER if admin_level == AdminLevel.USER else UserRole.ADMIN,
            admin_level=admin_level,
            active_hierarchy=path.family,
            path=path,
        )
    )


async def add_content(store, created_by, content_type=ContentType.BULLETINS, title="Notice", **target):
    return await store.insert_content(
        content_type,
        ContentFields(
            title=title,
            created_by_id=created_by,
            target=ContentTarget(**target),
        ),
    )


def make_principal(admin_level, node=None, family=HierarchyFamily.ORIGINAL, principal_id=None):
    path = node.scope() if node else empty_path(family)
    return Principal(
        id=principal_id or f"{admin_level.value.lower()}-admin",
        role=UserRole.USER if admin_level == AdminLevel.USER else UserRole.ADMIN,
        admin_level=admin_level,
        active_hierarchy=path.family,
        path=path,
    )


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
async def tree(store):
    """
    Nation
    ├── R1 ── L1 ── AU1 ── D1
    └── R2 ── L2
    E1 ── SN (social sector, affiliated to E1) ── SR
    E2
    SN0 (national social sector)
    """
    t = SimpleNamespace()
    t.N = await add_node(store, NodeType.NATIONAL_LEVEL, "Nation", code="NAT")
    t.R1 = await add_node(store, NodeType.REGION, "North", parent=t.N, code="R1")
    t.R2 = await add_node(store, NodeType.REGION, "South", parent=t.N, code="R2")
    t.L1 = await add_node(store, NodeType.LOCALITY, "North Town", parent=t.R1)
    t.L2 = await add_node(store, NodeType.LOCALITY, "South Town", parent=t.R2)
    t.AU1 = await add_node(store, NodeType.ADMIN_UNIT, "North Unit", parent=t.L1)
    t.D1 = await add_node(store, NodeType.DISTRICT, "North District", parent=t.AU1)
    t.E1 = await add_node(store, NodeType.EXPATRIATE_REGION, "Gulf", code="E1")
    t.E2 = await add_node(store, NodeType.EXPATRIATE_REGION, "Europe", code="E2")
    t.SN = await add_node(
        store,
        NodeType.SECTOR_NATIONAL_LEVEL,
        "Gulf Social",
        sector_type=SectorType.SOCIAL,
        affiliation=t.E1,
    )
    t.SR = await add_node(store, NodeType.SECTOR_REGION, "Gulf Social North", parent=t.SN)
    t.SN0 = await add_node(
        store, NodeType.SECTOR_NATIONAL_LEVEL, "National Social", sector_type=SectorType.SOCIAL
    )
    return t


@pytest.fixture
def services(store):
    return ServiceContainer(store, ScopeCache(), hash_password=lambda raw: f"hashed:{raw}")


@pytest.fixture
def superuser():
    return make_principal(AdminLevel.GENERAL_SECRETARIAT, principal_id="gs-admin")


@pytest.fixture
def region_admin(tree):
    return make_principal(AdminLevel.REGION, tree.R1, principal_id="region-admin")


@pytest.fixture
def decoder():
    return ClaimsDecoder(TEST_SECRET)


@pytest.fixture
def client(services, decoder):
    from jurisdiction.main import app

    app.state.services = services
    app.dependency_overrides[get_claims_decoder] = lambda: decoder
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.services


@pytest.fixture
def auth_headers(decoder):
    def _headers(principal):
        return {"Authorization": f"Bearer {decoder.encode(principal.to_claims())}"}

    return _headers
