"""
Moderation API Endpoints.

Site-wide moderation settings (administrators only).
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bulletin.core.database import get_db
from bulletin.core.security import Principal, require_admin
from bulletin.modules.moderation.policy import (
    ModerationPolicyStore,
    ModerationPolicyUpdate,
    get_policy_store,
)

router = APIRouter()


@router.get("/settings")
async def get_settings(
    _admin: Principal = Depends(require_admin),
    policy_store: ModerationPolicyStore = Depends(get_policy_store),
) -> dict[str, Any]:
    """Get the active moderation settings."""
    policy = await policy_store.get_settings()
    return policy.model_dump(mode="json")


@router.put("/settings")
async def update_settings(
    request: ModerationPolicyUpdate,
    _admin: Principal = Depends(require_admin),
    policy_store: ModerationPolicyStore = Depends(get_policy_store),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Replace the moderation settings; takes effect on the next submission."""
    policy = await policy_store.save_settings(db, request)
    return policy.model_dump(mode="json")
