from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.database import get_db
from promptify.models import Profile
from promptify.schemas import PromptRead, PromptSecretRead, UnlockResult
from promptify.services.catalog import get_prompt, list_prompts
from promptify.services.ledger import unlock_prompt
from promptify.services.secret_gate import fetch_secret
from promptify.utils import current_profile

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


@router.get("", response_model=list[PromptRead])
async def prompts_index(db: AsyncSession = Depends(get_db)):
    return await list_prompts(db)


@router.get("/{prompt_id}", response_model=PromptRead)
async def prompt_detail(prompt_id: int, db: AsyncSession = Depends(get_db)):
    return await get_prompt(db, prompt_id)


@router.post("/{prompt_id}/unlock", response_model=UnlockResult)
async def prompt_unlock(
    prompt_id: int,
    profile: Profile = Depends(current_profile),
    db: AsyncSession = Depends(get_db),
):
    return await unlock_prompt(db, profile.id, prompt_id)


@router.get("/{prompt_id}/secret", response_model=PromptSecretRead)
async def prompt_secret(
    prompt_id: int,
    profile: Profile = Depends(current_profile),
    db: AsyncSession = Depends(get_db),
):
    text = await fetch_secret(db, profile.id, prompt_id)
    return PromptSecretRead(prompt_id=prompt_id, prompt_text=text)


__all__ = ["router"]
