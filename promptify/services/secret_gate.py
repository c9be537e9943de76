# services/secret_gate.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.errors import Forbidden, NotFound
from promptify.models import Grant, Prompt, PromptSecret


async def fetch_secret(db: AsyncSession, user_id: str, prompt_id: int) -> str:
    """Return the prompt text only if the ledger holds a grant for (user_id, prompt_id).

    The grant check is part of the query itself, so there is no path that loads
    the secret first and filters afterwards.
    """
    q = (
        select(PromptSecret.secret_text)
        .join(Grant, Grant.prompt_id == PromptSecret.prompt_id)
        .where(PromptSecret.prompt_id == prompt_id)
        .where(Grant.user_id == user_id)
        .limit(1)
    )
    text = (await db.execute(q)).scalar_one_or_none()
    if text is not None:
        return text

    known = (await db.execute(select(Prompt.id).where(Prompt.id == prompt_id))).scalar_one_or_none()
    if known is None:
        raise NotFound("Prompt not found")
    granted = (
        await db.execute(
            select(Grant.id).where(Grant.user_id == user_id, Grant.prompt_id == prompt_id).limit(1)
        )
    ).scalar_one_or_none()
    if granted is None:
        raise Forbidden("Unlock this prompt to read it")
    # granted, but the prompt has no secret row
    raise NotFound("Prompt text not available")
