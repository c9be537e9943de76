# services/catalog.py
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.errors import NotFound
from promptify.models import Prompt, PromptSecret
from promptify.schemas import PromptImportItem, PromptRead

_METADATA_FIELDS = ("description", "image_url", "ai_model", "category", "author", "is_trending")


async def list_prompts(db: AsyncSession) -> list[PromptRead]:
    rows = (
        await db.execute(select(Prompt).order_by(Prompt.created_at.desc(), Prompt.id.desc()))
    ).scalars().all()
    return [PromptRead.model_validate(p) for p in rows]


async def get_prompt(db: AsyncSession, prompt_id: int) -> PromptRead:
    prompt = await db.get(Prompt, prompt_id)
    if prompt is None:
        raise NotFound("Prompt not found")
    return PromptRead.model_validate(prompt)


async def import_prompts(db: AsyncSession, items: list[PromptImportItem], patch: bool = True) -> dict:
    """Create or update prompts together with their secret text."""
    created = 0
    updated = 0
    for item in items:
        prompt: Optional[Prompt] = None
        if patch and item.id:
            prompt = await db.get(Prompt, item.id)
        if prompt:
            updated += 1
        else:
            prompt = Prompt(title=item.title.strip(), unlock_count=0, rating_avg=0.0)
            db.add(prompt)
            created += 1
        prompt.title = item.title.strip()
        for field in _METADATA_FIELDS:
            value = getattr(item, field)
            if value is not None:
                setattr(prompt, field, value)
        await db.flush()

        secret = await db.get(PromptSecret, prompt.id)
        if secret is None:
            db.add(PromptSecret(prompt_id=prompt.id, secret_text=item.prompt_text))
        else:
            secret.secret_text = item.prompt_text
    await db.commit()
    return {"ok": True, "created": created, "updated": updated, "total": created + updated}


async def export_prompts(db: AsyncSession) -> dict:
    # metadata only; secret text never leaves through export
    prompts = await list_prompts(db)
    return {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "total_prompts": len(prompts),
        "prompts": [p.model_dump(mode="json") for p in prompts],
    }
