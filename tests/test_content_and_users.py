"""
Content scoping and user hierarchy assignment.
"""

import pytest

from jurisdiction.exceptions import AncestorDriftError, ForbiddenError, NotFoundError, ValidationError
from jurisdiction.models.content import ContentTarget, ContentType
from jurisdiction.models.hierarchy import HierarchyFamily
from jurisdiction.models.user import AdminLevel
from jurisdiction.schemas.content import ContentCreate, ContentUpdate

from conftest import add_content, add_user, make_principal


def draft(title="Water cuts", **target):
    return ContentCreate(title=title, target=ContentTarget(**target))


# ── Tests: content ───────────────────────────────────────────────────

async def test_region_admin_posts_to_own_locality(services, region_admin, tree):
    record = await services.content.create_content(
        region_admin, ContentType.BULLETINS, draft(target_locality_id=tree.L1.id)
    )
    assert record.content_type == ContentType.BULLETINS
    assert record.created_by_id == region_admin.id
    assert record.target.target_region_id == tree.R1.id
    assert record.target.target_national_level_id == tree.N.id


async def test_region_admin_cannot_post_elsewhere(services, store, region_admin, tree):
    with pytest.raises(ForbiddenError):
        await services.content.create_content(
            region_admin, ContentType.SURVEYS, draft(target_region_id=tree.R2.id)
        )
    assert store.content[ContentType.SURVEYS] == {}


async def test_plain_user_cannot_post(services, tree):
    member = make_principal(AdminLevel.USER, tree.L1)
    with pytest.raises(ForbiddenError):
        await services.content.create_content(
            member, ContentType.REPORTS, draft(target_locality_id=tree.L1.id)
        )


async def test_drifting_target_is_rejected(services, superuser, tree):
    with pytest.raises(AncestorDriftError):
        await services.content.create_content(
            superuser,
            ContentType.BULLETINS,
            draft(target_region_id=tree.R2.id, target_locality_id=tree.L1.id),
        )


async def test_expatriate_general_posts_to_expatriate_region(services, tree):
    general = make_principal(AdminLevel.EXPATRIATE_GENERAL, family=HierarchyFamily.EXPATRIATE)
    record = await services.content.create_content(
        general, ContentType.VOTING_ITEMS, draft(target_expatriate_region_id=tree.E2.id)
    )
    fetched = await services.content.get_content(general, ContentType.VOTING_ITEMS, record.id)
    assert fetched.id == record.id


async def test_content_listing_and_reads_are_scoped(services, superuser, region_admin, tree):
    mine = await services.content.create_content(
        superuser, ContentType.BULLETINS, draft(target_region_id=tree.R1.id)
    )
    theirs = await services.content.create_content(
        superuser, ContentType.BULLETINS, draft(target_region_id=tree.R2.id)
    )
    listed = await services.content.list_content(region_admin, ContentType.BULLETINS)
    assert [c.id for c in listed] == [mine.id]
    with pytest.raises(ForbiddenError):
        await services.content.get_content(region_admin, ContentType.BULLETINS, theirs.id)


async def test_missing_content_for_superuser(services, superuser):
    with pytest.raises(NotFoundError):
        await services.content.get_content(superuser, ContentType.REPORTS, "missing")


async def test_missing_and_foreign_targets_are_denied_alike(services, region_admin, tree):
    messages = []
    for locality_id in ("does-not-exist", tree.L2.id):
        with pytest.raises(ForbiddenError) as e:
            await services.content.create_content(
                region_admin, ContentType.BULLETINS, draft(target_locality_id=locality_id)
            )
        messages.append(e.value.message)
    assert messages == ["Forbidden - Insufficient permissions"] * 2


# ── Tests: content edits ─────────────────────────────────────────────

async def test_update_rederives_target(services, region_admin, tree):
    record = await services.content.create_content(
        region_admin, ContentType.BULLETINS, draft(target_region_id=tree.R1.id)
    )
    updated = await services.content.update_content(
        region_admin,
        ContentType.BULLETINS,
        record.id,
        ContentUpdate(title=" Water back ", target=ContentTarget(target_admin_unit_id=tree.AU1.id)),
    )
    assert updated.title == "Water back"
    assert updated.body == record.body
    assert updated.target.target_locality_id == tree.L1.id
    assert updated.target.target_region_id == tree.R1.id
    assert updated.updated_at >= record.updated_at


async def test_update_cannot_move_content_out_of_reach(services, store, region_admin, tree):
    record = await services.content.create_content(
        region_admin, ContentType.SURVEYS, draft(target_locality_id=tree.L1.id)
    )
    with pytest.raises(ForbiddenError):
        await services.content.update_content(
            region_admin,
            ContentType.SURVEYS,
            record.id,
            ContentUpdate(target=ContentTarget(target_region_id=tree.R2.id)),
        )
    assert store.content[ContentType.SURVEYS][record.id].target == record.target


async def test_out_of_scope_edits_are_denied(services, store, superuser, region_admin, tree):
    theirs = await services.content.create_content(
        superuser, ContentType.BULLETINS, draft(target_region_id=tree.R2.id)
    )
    with pytest.raises(ForbiddenError):
        await services.content.update_content(
            region_admin, ContentType.BULLETINS, theirs.id, ContentUpdate(title="Mine now")
        )
    with pytest.raises(ForbiddenError):
        await services.content.toggle_publish(region_admin, ContentType.BULLETINS, theirs.id)
    with pytest.raises(ForbiddenError):
        await services.content.delete_content(region_admin, ContentType.BULLETINS, theirs.id)
    assert store.content[ContentType.BULLETINS][theirs.id] == theirs


async def test_plain_user_cannot_edit_own_content(services, store, tree):
    member = make_principal(AdminLevel.USER, tree.L1, principal_id="member-1")
    own = await add_content(store, "member-1", target_region_id=tree.R1.id)
    with pytest.raises(ForbiddenError):
        await services.content.update_content(
            member, ContentType.BULLETINS, own.id, ContentUpdate(title="Edited")
        )
    with pytest.raises(ForbiddenError):
        await services.content.delete_content(member, ContentType.BULLETINS, own.id)


async def test_blank_title_is_rejected(services, superuser, tree):
    record = await services.content.create_content(
        superuser, ContentType.REPORTS, draft(target_region_id=tree.R1.id)
    )
    with pytest.raises(ValidationError):
        await services.content.update_content(
            superuser, ContentType.REPORTS, record.id, ContentUpdate(title="   ")
        )


async def test_toggle_publish(services, region_admin, tree):
    record = await services.content.create_content(
        region_admin, ContentType.VOTING_ITEMS, draft(target_region_id=tree.R1.id)
    )
    assert record.published is False
    toggled = await services.content.toggle_publish(region_admin, ContentType.VOTING_ITEMS, record.id)
    assert toggled.published is True
    toggled = await services.content.toggle_publish(region_admin, ContentType.VOTING_ITEMS, record.id)
    assert toggled.published is False


async def test_delete_content(services, store, region_admin, superuser, tree):
    record = await services.content.create_content(
        region_admin, ContentType.REPORTS, draft(target_locality_id=tree.L1.id)
    )
    await services.content.delete_content(region_admin, ContentType.REPORTS, record.id)
    assert record.id not in store.content[ContentType.REPORTS]
    with pytest.raises(ForbiddenError):
        await services.content.delete_content(region_admin, ContentType.REPORTS, record.id)
    with pytest.raises(NotFoundError):
        await services.content.delete_content(superuser, ContentType.REPORTS, record.id)


# ── Tests: users ─────────────────────────────────────────────────────

async def test_superuser_assigns_user_to_node(services, store, superuser, tree):
    user = await add_user(store, "600001")
    updated = await services.users.assign_hierarchy(superuser, user.id, tree.L2.id)
    assert updated.path == tree.L2.scope()
    assert updated.active_hierarchy == HierarchyFamily.ORIGINAL


async def test_assignment_moves_user_across_families(services, store, superuser, tree):
    user = await add_user(store, "600002", tree.L1)
    updated = await services.users.assign_hierarchy(superuser, user.id, tree.SR.id)
    assert updated.active_hierarchy == HierarchyFamily.SECTOR
    assert updated.path.expatriate_region_id == tree.E1.id


async def test_admin_level_must_fit_node_type(services, store, superuser, tree):
    admin = await add_user(store, "600003", tree.L1, admin_level=AdminLevel.LOCALITY)
    with pytest.raises(ValidationError):
        await services.users.assign_hierarchy(superuser, admin.id, tree.R2.id)


async def test_region_admin_cannot_assign_outside(services, store, region_admin, tree):
    local = await add_user(store, "600004", tree.L1)
    foreign = await add_user(store, "600005", tree.L2)
    with pytest.raises(ForbiddenError):
        await services.users.assign_hierarchy(region_admin, foreign.id, tree.L1.id)
    with pytest.raises(ValidationError) as e:
        await services.users.assign_hierarchy(region_admin, local.id, tree.L2.id)
    assert e.value.message == "Requested locality is outside your jurisdiction"
    assert store.users[local.id].path == tree.L1.scope()


async def test_get_user(services, store, region_admin, superuser, tree):
    local = await add_user(store, "600006", tree.AU1)
    foreign = await add_user(store, "600007", tree.R2)
    assert (await services.users.get_user(region_admin, local.id)).id == local.id
    with pytest.raises(ForbiddenError):
        await services.users.get_user(region_admin, foreign.id)
    with pytest.raises(NotFoundError):
        await services.users.get_user(superuser, "missing")
