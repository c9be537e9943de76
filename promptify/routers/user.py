from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.database import get_db
from promptify.models import Profile
from promptify.schemas import Identity, ProfileRead, UnlockedPromptIds
from promptify.services.profiles import profile_snapshot, unlocked_prompt_ids
from promptify.utils import current_profile, require_identity

router = APIRouter(prefix="/api/me", tags=["me"])


@router.get("", response_model=ProfileRead)
async def me(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    return await profile_snapshot(db, identity)


@router.get("/unlocked", response_model=UnlockedPromptIds)
async def me_unlocked(
    profile: Profile = Depends(current_profile),
    db: AsyncSession = Depends(get_db),
):
    return UnlockedPromptIds(prompt_ids=await unlocked_prompt_ids(db, profile.id))


__all__ = ["router"]
