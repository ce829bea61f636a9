"""PermissionResolver tests."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from bulletin.models.user import SubjectModerator, UserGroup, UserGroupMember, UserRole
from bulletin.modules.moderation.permissions import (
    ALL_PERMISSIONS,
    EffectivePermissions,
    PermissionResolver,
    PermissionSources,
    merge_permissions,
    role_defaults,
)
from conftest import make_subject, make_user

# ==================== Pure merge ====================


def test_role_defaults_table():
    assert role_defaults(UserRole.ADMIN) == ALL_PERMISSIONS
    assert role_defaults(UserRole.MODERATOR) == ALL_PERMISSIONS
    assert role_defaults(UserRole.USER) == EffectivePermissions(can_post=True, can_reply=True)
    assert role_defaults(UserRole.GUEST) == EffectivePermissions()


def test_unknown_role_gets_user_rights():
    assert role_defaults("SUPERHERO") == role_defaults(UserRole.USER)


def test_subject_moderator_gets_everything():
    sources = PermissionSources(role=UserRole.GUEST, is_subject_moderator=True)

    assert merge_permissions(sources) == ALL_PERMISSIONS


def test_groups_only_add_rights():
    """Group flags are OR-ed in; a group can never take a right away."""
    sources = PermissionSources(
        role=UserRole.USER,
        groups=(
            EffectivePermissions(),
            EffectivePermissions(can_moderate=True),
        ),
    )

    assert merge_permissions(sources) == ALL_PERMISSIONS


def test_guest_with_posting_group():
    sources = PermissionSources(
        role=UserRole.GUEST,
        groups=(EffectivePermissions(can_reply=True),),
    )

    assert merge_permissions(sources) == EffectivePermissions(can_reply=True)


# ==================== Resolver ====================


@pytest.mark.asyncio
async def test_resolve_anonymous_uses_role_defaults(db):
    resolver = PermissionResolver(db)

    assert await resolver.resolve(None, 1, UserRole.GUEST) == EffectivePermissions()


@pytest.mark.asyncio
async def test_resolve_reads_moderator_assignment(db):
    user = await make_user(db, "mod")
    subject = await make_subject(db)
    other = await make_subject(db, name="Other")
    db.add(SubjectModerator(user_id=user.id, subject_id=subject.id))
    await db.commit()

    resolver = PermissionResolver(db)

    assert (await resolver.resolve(user.id, subject.id, user.role)).can_moderate is True
    assert (await resolver.resolve(user.id, other.id, user.role)).can_moderate is False


@pytest.mark.asyncio
async def test_resolve_reads_group_memberships(db):
    user = await make_user(db, "guest", role=UserRole.GUEST)
    group = UserGroup(name="Helpers", can_reply=True)
    db.add(group)
    await db.flush()
    db.add(UserGroupMember(user_id=user.id, group_id=group.id))
    await db.commit()

    permissions = await PermissionResolver(db).resolve(user.id, None, user.role)

    assert permissions == EffectivePermissions(can_reply=True)


@pytest.mark.asyncio
async def test_resolve_fails_closed_on_database_error(db, monkeypatch):
    """A failing lookup never grants more than the role defaults."""
    user = await make_user(db, "bob")

    async def broken(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    resolver = PermissionResolver(db)
    monkeypatch.setattr(resolver, "_load_sources", broken)

    permissions = await resolver.resolve(user.id, 1, UserRole.USER)

    assert permissions == role_defaults(UserRole.USER)
    assert permissions.can_moderate is False


@pytest.mark.asyncio
async def test_resolve_caches_and_invalidates(db, cache):
    user = await make_user(db, "carol")
    subject = await make_subject(db)
    resolver = PermissionResolver(db, cache=cache, ttl=60)

    assert (await resolver.resolve(user.id, subject.id, user.role)).can_moderate is False

    db.add(SubjectModerator(user_id=user.id, subject_id=subject.id))
    await db.commit()

    # Still served from cache
    assert (await resolver.resolve(user.id, subject.id, user.role)).can_moderate is False

    await resolver.invalidate(user.id)

    assert (await resolver.resolve(user.id, subject.id, user.role)).can_moderate is True
