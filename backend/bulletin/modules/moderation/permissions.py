"""
Permission Resolver - effective posting rights for a user in a subject.

A user's rights in a subject are the boolean OR of three sources:
the role default table, a moderator assignment for that subject,
and the flags of every group the user belongs to.
"""

from dataclasses import asdict, dataclass, field

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.cache import TTLCache
from bulletin.core.config import settings
from bulletin.models.user import SubjectModerator, UserGroup, UserGroupMember, UserRole


@dataclass(frozen=True)
class EffectivePermissions:
    """Resolved posting rights."""

    can_post: bool = False
    can_reply: bool = False
    can_moderate: bool = False

    def __or__(self, other: "EffectivePermissions") -> "EffectivePermissions":
        return EffectivePermissions(
            can_post=self.can_post or other.can_post,
            can_reply=self.can_reply or other.can_reply,
            can_moderate=self.can_moderate or other.can_moderate,
        )


ALL_PERMISSIONS = EffectivePermissions(can_post=True, can_reply=True, can_moderate=True)

ROLE_DEFAULTS: dict[UserRole, EffectivePermissions] = {
    UserRole.ADMIN: ALL_PERMISSIONS,
    UserRole.MODERATOR: ALL_PERMISSIONS,
    UserRole.USER: EffectivePermissions(can_post=True, can_reply=True, can_moderate=False),
    UserRole.GUEST: EffectivePermissions(),
}


@dataclass(frozen=True)
class PermissionSources:
    """Everything that contributes to a user's rights in one subject."""

    role: UserRole | str
    is_subject_moderator: bool = False
    groups: tuple[EffectivePermissions, ...] = field(default_factory=tuple)


def role_defaults(role: UserRole | str | None) -> EffectivePermissions:
    """Default permissions of a role; unknown roles get USER rights."""
    try:
        return ROLE_DEFAULTS[UserRole(role)]
    except ValueError:
        return ROLE_DEFAULTS[UserRole.USER]


def merge_permissions(sources: PermissionSources) -> EffectivePermissions:
    """OR together role default, moderator assignment and group grants."""
    permissions = role_defaults(sources.role)

    if sources.is_subject_moderator:
        permissions = ALL_PERMISSIONS

    for group in sources.groups:
        permissions = permissions | group

    return permissions


class PermissionResolver:
    """
    Resolves effective permissions from the database.

    Lookup failures degrade to the role defaults so a broken query can
    never grant moderation rights.

    Usage:
        resolver = PermissionResolver(db_session)
        perms = await resolver.resolve(user.id, subject.id, user.role)
    """

    CACHE_PREFIX = "perm:"

    def __init__(
        self,
        db: AsyncSession,
        cache: TTLCache | None = None,
        ttl: float | None = None,
    ) -> None:
        self.db = db
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.permission_cache_ttl_seconds

    def _cache_key(self, user_id: int | None, subject_id: int | None) -> str:
        return f"{self.CACHE_PREFIX}{user_id}:{subject_id or 'global'}"

    async def resolve(
        self,
        user_id: int | None,
        subject_id: int | None,
        role: UserRole | str,
    ) -> EffectivePermissions:
        """
        Compute rights of a user in a subject.

        Args:
            user_id: User ID (None for anonymous)
            subject_id: Subject ID (None for global rights)
            role: User role

        Returns:
            Effective permissions
        """
        if user_id is None:
            return role_defaults(role)

        key = self._cache_key(user_id, subject_id)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return EffectivePermissions(**cached)

        # Savepoint: a failed lookup must not abort the caller's transaction
        try:
            async with self.db.begin_nested():
                sources = await self._load_sources(user_id, subject_id, role)
        except SQLAlchemyError as e:
            logger.warning(
                f"Permission lookup failed for user {user_id} in subject {subject_id}, "
                f"using {role} defaults: {e}"
            )
            return role_defaults(role)

        permissions = merge_permissions(sources)

        if self.cache is not None:
            await self.cache.set(key, asdict(permissions), self.ttl)

        return permissions

    async def _load_sources(
        self,
        user_id: int,
        subject_id: int | None,
        role: UserRole | str,
    ) -> PermissionSources:
        is_moderator = False
        if subject_id is not None:
            result = await self.db.execute(
                select(SubjectModerator.id).where(
                    SubjectModerator.user_id == user_id,
                    SubjectModerator.subject_id == subject_id,
                )
            )
            is_moderator = result.first() is not None

        result = await self.db.execute(
            select(UserGroup.can_post, UserGroup.can_reply, UserGroup.can_moderate)
            .join(UserGroupMember, UserGroupMember.group_id == UserGroup.id)
            .where(UserGroupMember.user_id == user_id)
            .order_by(UserGroup.priority.desc())
        )
        groups = tuple(
            EffectivePermissions(
                can_post=bool(row.can_post),
                can_reply=bool(row.can_reply),
                can_moderate=bool(row.can_moderate),
            )
            for row in result
        )

        return PermissionSources(role=role, is_subject_moderator=is_moderator, groups=groups)

    async def invalidate(self, user_id: int | None = None) -> None:
        """Drop cached results for one user, or for everyone."""
        if self.cache is None:
            return
        if user_id is None:
            await self.cache.delete_prefix(self.CACHE_PREFIX)
        else:
            await self.cache.delete_prefix(f"{self.CACHE_PREFIX}{user_id}:")
