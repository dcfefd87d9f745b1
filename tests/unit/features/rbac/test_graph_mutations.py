from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rolegraph.core.rbac.errors import (
    InvalidNameError,
    RoleAlreadyExistsError,
    RoleCycleError,
    RoleNotFoundError,
)
from rolegraph.features.rbac.service import RbacService
from rolegraph.models import RoleChild

pytestmark = pytest.mark.asyncio


async def _children(rbac: RbacService) -> dict[str, tuple[str, ...]]:
    return {role.name: role.children for role in await rbac.get_all_roles()}


async def _inherited(rbac: RbacService, user_id: str) -> set[str]:
    return await rbac.get_roles_for_user(user_id)


async def test_create_role_returns_name_and_rejects_duplicates(rbac: RbacService) -> None:
    assert await rbac.create_role("admin") == "admin"

    with pytest.raises(RoleAlreadyExistsError):
        await rbac.create_role("admin")

    assert await rbac.create_role("admin", unless_exists=True) is None
    assert await _children(rbac) == {"admin": ()}


@pytest.mark.parametrize("name", ["", " admin", "admin ", None, 42])
async def test_create_role_rejects_malformed_names(rbac: RbacService, name) -> None:
    with pytest.raises(InvalidNameError):
        await rbac.create_role(name)


async def test_add_parent_requires_both_roles(rbac: RbacService) -> None:
    await rbac.create_role("admin")

    with pytest.raises(RoleNotFoundError):
        await rbac.add_roles_to_parent("ghost", "admin")
    with pytest.raises(RoleNotFoundError):
        await rbac.add_roles_to_parent("admin", "ghost")


async def test_add_parent_is_idempotent(rbac: RbacService) -> None:
    await rbac.create_role("admin")
    await rbac.create_role("editor")

    await rbac.add_roles_to_parent("editor", "admin")
    await rbac.add_roles_to_parent("editor", "admin")

    assert (await _children(rbac))["admin"] == ("editor",)


async def test_add_parent_rejects_cycles_and_leaves_graph_unchanged(rbac: RbacService) -> None:
    for name in ("a", "b", "c"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("b", "a")
    await rbac.add_roles_to_parent("c", "b")
    before = await _children(rbac)

    with pytest.raises(RoleCycleError):
        await rbac.add_roles_to_parent("a", "c")
    with pytest.raises(RoleCycleError):
        await rbac.add_roles_to_parent("a", "a")

    assert await _children(rbac) == before


async def test_add_parent_propagates_to_existing_assignments(rbac: RbacService) -> None:
    for name in ("admin", "editor", "viewer"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("viewer", "editor")
    await rbac.add_users_to_roles("u1", "admin")

    await rbac.add_roles_to_parent("editor", "admin")

    assert await _inherited(rbac, "u1") == {"admin", "editor", "viewer"}


async def test_add_parent_propagates_through_grandparents(rbac: RbacService) -> None:
    for name in ("root", "mid", "leaf", "extra"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("mid", "root")
    await rbac.add_roles_to_parent("leaf", "mid")
    await rbac.add_users_to_roles("u1", "root", "acme")

    await rbac.add_roles_to_parent("extra", "leaf")

    assert await rbac.user_is_in_role("u1", "extra", "acme")


async def test_remove_parent_recomputes_closures(rbac: RbacService) -> None:
    for name in ("admin", "editor", "viewer"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("editor", "admin")
    await rbac.add_roles_to_parent("viewer", "editor")
    await rbac.add_users_to_roles("u1", "admin")
    await rbac.add_users_to_roles("u2", "editor")

    await rbac.remove_roles_from_parent("viewer", "editor")

    assert await _inherited(rbac, "u1") == {"admin", "editor"}
    assert await _inherited(rbac, "u2") == {"editor"}


async def test_remove_parent_without_edge_is_noop(rbac: RbacService) -> None:
    await rbac.create_role("admin")
    await rbac.create_role("editor")
    await rbac.add_users_to_roles("u1", "admin")

    await rbac.remove_roles_from_parent("editor", "admin")

    assert await _inherited(rbac, "u1") == {"admin"}


async def test_remove_parent_requires_existing_role(rbac: RbacService) -> None:
    await rbac.create_role("admin")

    with pytest.raises(RoleNotFoundError):
        await rbac.remove_roles_from_parent("ghost", "admin")


async def test_remove_parent_keeps_roles_reachable_through_diamond(rbac: RbacService) -> None:
    #     top
    #    /   \
    #  left  right
    #    \   /
    #    bottom
    for name in ("top", "left", "right", "bottom"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent(["left", "right"], "top")
    await rbac.add_roles_to_parent("bottom", "left")
    await rbac.add_roles_to_parent("bottom", "right")
    await rbac.add_users_to_roles("u1", "top")

    await rbac.remove_roles_from_parent("bottom", "left")
    assert await _inherited(rbac, "u1") == {"top", "left", "right", "bottom"}

    await rbac.remove_roles_from_parent("bottom", "right")
    assert await _inherited(rbac, "u1") == {"top", "left", "right"}


async def test_delete_role_purges_assignments_and_edges(rbac: RbacService) -> None:
    await rbac.create_role("admin")
    await rbac.create_role("editor")
    await rbac.add_roles_to_parent("editor", "admin")
    await rbac.add_users_to_roles("u1", "editor")
    await rbac.add_users_to_roles("u2", "admin")

    await rbac.delete_role("editor")

    assert not await rbac.user_is_in_role("u1", "editor")
    assert not await rbac.user_is_in_role("u2", "editor")
    assert await rbac.user_is_in_role("u2", "admin")
    assert await _children(rbac) == {"admin": ()}
    assert await rbac.get_roles_for_user("u1") == set()


async def test_delete_role_detaches_from_every_parent(rbac: RbacService) -> None:
    for name in ("root", "p1", "p2", "shared", "below"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent(["p1", "p2"], "root")
    await rbac.add_roles_to_parent("shared", "p1")
    await rbac.add_roles_to_parent("shared", "p2")
    await rbac.add_roles_to_parent("below", "shared")
    await rbac.add_users_to_roles("u1", "root")

    await rbac.delete_role("shared")

    assert await _inherited(rbac, "u1") == {"root", "p1", "p2"}
    children = await _children(rbac)
    assert "shared" not in children
    assert children["p1"] == ()
    assert children["p2"] == ()


async def test_delete_unknown_role_is_noop(rbac: RbacService) -> None:
    await rbac.create_role("admin")

    await rbac.delete_role("ghost")

    assert await _children(rbac) == {"admin": ()}


async def test_rename_role_rewrites_references(rbac: RbacService) -> None:
    for name in ("admin", "editor", "viewer"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("editor", "admin")
    await rbac.add_roles_to_parent("viewer", "editor")
    await rbac.add_users_to_roles("u1", "admin")
    await rbac.add_users_to_roles("u2", "editor", "acme")

    await rbac.rename_role("editor", "author")

    assert await _children(rbac) == {
        "admin": ("author",),
        "author": ("viewer",),
        "viewer": (),
    }
    assert await _inherited(rbac, "u1") == {"admin", "author", "viewer"}
    assert await rbac.get_roles_for_user("u2", {"scope": "acme", "only_assigned": True}) == {"author"}
    assert not await rbac.user_is_in_role("u2", "editor", "acme")


async def test_rename_role_merges_into_dangling_edge(
    rbac: RbacService, session: AsyncSession
) -> None:
    await rbac.create_role("p")
    await rbac.create_role("a")
    await rbac.add_roles_to_parent("a", "p")
    await rbac.add_users_to_roles("u1", "p")
    # Edge to a role that no longer exists.
    session.add(RoleChild(parent_name="p", child_name="b"))
    await session.flush()

    await rbac.rename_role("a", "b")

    assert await _children(rbac) == {"b": (), "p": ("b",)}
    assert await _inherited(rbac, "u1") == {"p", "b"}


async def test_rename_role_errors(rbac: RbacService) -> None:
    await rbac.create_role("admin")
    await rbac.create_role("editor")

    with pytest.raises(RoleNotFoundError):
        await rbac.rename_role("ghost", "other")
    with pytest.raises(RoleAlreadyExistsError):
        await rbac.rename_role("admin", "editor")

    await rbac.rename_role("admin", "admin")
    assert await _children(rbac) == {"admin": (), "editor": ()}


async def test_is_ancestor_of(rbac: RbacService) -> None:
    for name in ("admin", "editor", "viewer"):
        await rbac.create_role(name)
    await rbac.add_roles_to_parent("editor", "admin")
    await rbac.add_roles_to_parent("viewer", "editor")

    assert await rbac.is_ancestor_of("admin", "viewer")
    assert await rbac.is_ancestor_of("viewer", "viewer")
    assert not await rbac.is_ancestor_of("viewer", "admin")
    assert not await rbac.is_ancestor_of("ghost", "admin")
    assert not await rbac.is_ancestor_of(None, "admin")
