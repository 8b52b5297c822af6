"""
Node CRUD through the hierarchy service: normalization, derivation,
authorization and store error mapping working together.
"""

from datetime import timedelta

import pytest

from jurisdiction.exceptions import (
    AncestorDriftError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OptimisticLockError,
    ValidationError,
)
from jurisdiction.models.hierarchy import NodeType, OriginalPath, SectorType
from jurisdiction.models.user import AdminLevel
from jurisdiction.schemas.hierarchy import (
    NodeReparent,
    NodeUpdate,
    OriginalNodeCreate,
    SectorNodeCreate,
)

from conftest import add_user, make_principal


def region(name, parent, code=None):
    return OriginalNodeCreate(node_type=NodeType.REGION, name=name, code=code, parent_id=parent.id)


def locality(name, parent, code=None):
    return OriginalNodeCreate(node_type=NodeType.LOCALITY, name=name, code=code, parent_id=parent.id)


# ── Tests: create ────────────────────────────────────────────────────

async def test_create_normalizes_and_derives(services, superuser, tree):
    node = await services.hierarchy.create_node(superuser, region("  East  ", tree.N, code=" r-9 "))
    assert node.name == "East"
    assert node.code == "R-9"
    assert node.parent_id == tree.N.id
    assert node.ancestors == OriginalPath(national_level_id=tree.N.id)


async def test_duplicate_code_is_a_conflict(services, superuser, tree):
    with pytest.raises(ConflictError) as e:
        await services.hierarchy.create_node(superuser, region("Copy", tree.N, code="r1"))
    assert e.value.message == "Region with this code already exists"
    assert e.value.http_status == 409


async def test_same_code_on_another_level_is_fine(services, superuser, tree):
    node = await services.hierarchy.create_node(superuser, locality("Town", tree.R2, code="R1"))
    assert node.code == "R1"


async def test_invalid_input_never_reaches_the_store(services, store, superuser, tree):
    before = len(store.nodes)
    with pytest.raises(ValidationError):
        await services.hierarchy.create_node(superuser, region("   ", tree.N))
    with pytest.raises(ValidationError):
        await services.hierarchy.create_node(superuser, region("Bad", tree.N, code="no spaces"))
    assert len(store.nodes) == before


async def test_region_admin_creates_inside_own_region(services, region_admin, tree):
    node = await services.hierarchy.create_node(region_admin, locality("New Town", tree.R1))
    assert node.ancestors.region_id == tree.R1.id


async def test_region_admin_cannot_create_elsewhere(services, store, region_admin, tree):
    before = len(store.nodes)
    with pytest.raises(ForbiddenError):
        await services.hierarchy.create_node(region_admin, locality("Far Town", tree.R2))
    with pytest.raises(ForbiddenError):
        await services.hierarchy.create_node(region_admin, region("West", tree.N))
    assert len(store.nodes) == before


async def test_missing_and_foreign_parents_are_denied_alike(services, region_admin, tree):
    messages = []
    for parent_id in ("does-not-exist", tree.R2.id):
        with pytest.raises(ForbiddenError) as e:
            await services.hierarchy.create_node(
                region_admin,
                OriginalNodeCreate(node_type=NodeType.LOCALITY, name="Town", parent_id=parent_id),
            )
        messages.append(e.value.message)
    assert messages == ["Forbidden - Insufficient permissions"] * 2


async def test_guessed_ancestors_outside_scope_are_not_confirmed(services, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.hierarchy.create_node(
            region_admin,
            OriginalNodeCreate(
                node_type=NodeType.LOCALITY,
                name="Town",
                parent_id=tree.R2.id,
                declared_ancestors=OriginalPath(national_level_id="guess"),
            ),
        )


async def test_superuser_is_told_the_parent_is_invalid(services, superuser):
    with pytest.raises(ValidationError) as e:
        await services.hierarchy.create_node(
            superuser,
            OriginalNodeCreate(node_type=NodeType.LOCALITY, name="Town", parent_id="does-not-exist"),
        )
    assert e.value.message == "Invalid region ID"


async def test_derive_preview_needs_a_readable_parent(services, region_admin, tree):
    ancestors = await services.hierarchy.derive_ancestors(region_admin, NodeType.ADMIN_UNIT, tree.L1.id)
    assert ancestors.locality_id == tree.L1.id
    member = make_principal(AdminLevel.USER, tree.L1)
    with pytest.raises(ForbiddenError):
        await services.hierarchy.derive_ancestors(member, NodeType.ADMIN_UNIT, tree.L2.id)
    with pytest.raises(ForbiddenError):
        await services.hierarchy.derive_ancestors(region_admin, NodeType.ADMIN_UNIT, "does-not-exist")


async def test_create_sector_node_inherits_type(services, superuser, tree):
    node = await services.hierarchy.create_node(
        superuser,
        SectorNodeCreate(node_type=NodeType.SECTOR_LOCALITY, name="Gulf Social Town", parent_id=tree.SR.id),
    )
    assert node.sector_type == SectorType.SOCIAL
    assert node.ancestors.expatriate_region_id == tree.E1.id


# ── Tests: read ──────────────────────────────────────────────────────

async def test_get_node_outside_scope_is_forbidden(services, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.hierarchy.get_node(region_admin, tree.R2.id)
    with pytest.raises(ForbiddenError):
        await services.hierarchy.get_node(region_admin, "missing")


async def test_list_nodes_by_type(services, region_admin, tree):
    nodes = await services.hierarchy.list_nodes(region_admin, NodeType.ADMIN_UNIT)
    assert [n.id for n in nodes] == [tree.AU1.id]


# ── Tests: update and optimistic lock ────────────────────────────────

async def test_update_renames_and_clears_code(services, superuser, tree):
    node = await services.hierarchy.update_node(
        superuser, tree.R1.id, NodeUpdate(name=" Far North ", code="")
    )
    assert node.name == "Far North"
    assert node.code is None
    assert node.updated_at >= tree.R1.updated_at


async def test_stale_update_is_rejected(services, superuser, tree):
    with pytest.raises(OptimisticLockError):
        await services.hierarchy.update_node(
            superuser,
            tree.L1.id,
            NodeUpdate(name="Renamed", expected_updated_at=tree.L1.updated_at - timedelta(seconds=5)),
        )


async def test_fresh_update_passes_lock(services, superuser, tree):
    node = await services.hierarchy.update_node(
        superuser,
        tree.L1.id,
        NodeUpdate(name="Renamed", expected_updated_at=tree.L1.updated_at),
    )
    assert node.name == "Renamed"


async def test_admin_cannot_edit_own_node(services, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.hierarchy.update_node(region_admin, tree.R1.id, NodeUpdate(name="Mine"))


async def test_update_invalidates_cached_read(services, superuser, tree):
    await services.hierarchy.get_node(superuser, tree.L2.id)
    await services.hierarchy.deactivate_node(superuser, tree.L2.id)
    node = await services.hierarchy.get_node(superuser, tree.L2.id)
    assert node.active is False


# ── Tests: reparent ──────────────────────────────────────────────────

async def test_reparent_does_not_cascade(services, store, superuser, tree):
    moved = await services.hierarchy.reparent_node(
        superuser, tree.L1.id, NodeReparent(parent_id=tree.R2.id)
    )
    assert moved.parent_id == tree.R2.id
    assert moved.ancestors.region_id == tree.R2.id
    # Descendants keep their cached ancestors until they are saved again.
    assert store.nodes[tree.AU1.id].ancestors.region_id == tree.R1.id


async def test_reparent_with_drifting_declaration(services, store, superuser, tree):
    with pytest.raises(AncestorDriftError):
        await services.hierarchy.reparent_node(
            superuser,
            tree.L1.id,
            NodeReparent(
                parent_id=tree.R2.id,
                declared_ancestors=OriginalPath(region_id=tree.R1.id),
            ),
        )
    assert store.nodes[tree.L1.id].parent_id == tree.R1.id


async def test_region_admin_cannot_move_node_out_of_region(services, store, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.hierarchy.reparent_node(
            region_admin, tree.AU1.id, NodeReparent(parent_id=tree.L2.id)
        )
    assert store.nodes[tree.AU1.id].parent_id == tree.L1.id


async def test_reparent_under_missing_parent_is_forbidden(services, store, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.hierarchy.reparent_node(
            region_admin, tree.AU1.id, NodeReparent(parent_id="does-not-exist")
        )
    assert store.nodes[tree.AU1.id].parent_id == tree.L1.id


async def test_sector_reparent_needs_explicit_migration(services, superuser, tree):
    with pytest.raises(AncestorDriftError):
        await services.hierarchy.reparent_node(
            superuser, tree.SR.id, NodeReparent(parent_id=tree.SN0.id)
        )
    moved = await services.hierarchy.reparent_node(
        superuser, tree.SR.id, NodeReparent(parent_id=tree.SN0.id, migrate_affiliation=True)
    )
    assert moved.ancestors.expatriate_region_id is None


# ── Tests: delete ────────────────────────────────────────────────────

async def test_delete_is_restricted_by_children(services, superuser, tree):
    east = await services.hierarchy.create_node(superuser, region("East", tree.N))
    town = await services.hierarchy.create_node(superuser, locality("East Town", east))

    with pytest.raises(ConflictError) as e:
        await services.hierarchy.delete_node(superuser, east.id)
    assert e.value.message == "Cannot delete region: has dependent records"

    await services.hierarchy.delete_node(superuser, town.id)
    await services.hierarchy.delete_node(superuser, east.id)
    with pytest.raises(NotFoundError):
        await services.hierarchy.get_node(superuser, east.id)


async def test_delete_is_restricted_by_users(services, store, superuser, tree):
    await add_user(store, "800001", tree.D1)
    with pytest.raises(ConflictError):
        await services.hierarchy.delete_node(superuser, tree.D1.id)
    assert tree.D1.id in store.nodes


async def test_delete_missing_node(services, superuser):
    with pytest.raises(NotFoundError):
        await services.hierarchy.delete_node(superuser, "missing")


async def test_locality_admin_deletes_leaf_below(services, store, tree):
    locality_admin = make_principal(AdminLevel.LOCALITY, tree.L1)
    await services.hierarchy.delete_node(locality_admin, tree.D1.id)
    assert tree.D1.id not in store.nodes
