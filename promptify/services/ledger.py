# services/ledger.py
"""Coin debit / prompt unlock.

The only writer of ``Profile.coins`` for unlocks. Everything below runs in one
database transaction:

* the caller's profile row is locked first (``FOR UPDATE`` on PostgreSQL,
  ``BEGIN IMMEDIATE`` on SQLite), so balance checks for one user never
  interleave;
* the debit is a compare-and-set on ``coins >= 1``;
* the grant row's unique key turns a lost race into a read of the winner's
  grant instead of a second debit.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.errors import InsufficientBalance, NotFound
from promptify.models import Grant, Profile, Prompt
from promptify.schemas import UnlockResult

logger = logging.getLogger(__name__)


async def _has_grant(db: AsyncSession, user_id: str, prompt_id: int) -> bool:
    q = select(Grant.id).where(Grant.user_id == user_id, Grant.prompt_id == prompt_id).limit(1)
    return (await db.execute(q)).scalar_one_or_none() is not None


async def _locked_balance(db: AsyncSession, user_id: str) -> int | None:
    q = select(Profile.coins).where(Profile.id == user_id).with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


async def _current_balance(db: AsyncSession, user_id: str) -> int:
    return (await db.execute(select(Profile.coins).where(Profile.id == user_id))).scalar_one()


async def unlock_prompt(db: AsyncSession, user_id: str, prompt_id: int) -> UnlockResult:
    """Spend one coin to grant ``user_id`` permanent access to ``prompt_id``.

    Owning the prompt already is a success that charges nothing.
    Raises NotFound for an unknown profile or prompt and InsufficientBalance
    when the balance is below one coin; neither mutates anything.
    """
    try:
        coins = await _locked_balance(db, user_id)
        if coins is None:
            raise NotFound("Profile not found")

        prompt_known = (await db.execute(select(Prompt.id).where(Prompt.id == prompt_id))).scalar_one_or_none()
        if prompt_known is None:
            raise NotFound("Prompt not found")

        if await _has_grant(db, user_id, prompt_id):
            await db.commit()
            logger.debug("Unlock no-op: %s already owns prompt %s", user_id, prompt_id)
            return UnlockResult(unlocked=True, coins_left=coins)

        if coins < 1:
            raise InsufficientBalance()

        coins_left = (
            await db.execute(
                update(Profile)
                .where(Profile.id == user_id, Profile.coins >= 1)
                .values(coins=Profile.coins - 1)
                .returning(Profile.coins)
                .execution_options(synchronize_session=False)
            )
        ).scalar_one_or_none()
        if coins_left is None:
            raise InsufficientBalance()

        db.add(Grant(user_id=user_id, prompt_id=prompt_id))
        await db.execute(
            update(Prompt)
            .where(Prompt.id == prompt_id)
            .values(unlock_count=Prompt.unlock_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except IntegrityError:
        # another transaction recorded this grant first; its debit stands, ours is rolled back
        await db.rollback()
        if not await _has_grant(db, user_id, prompt_id):
            raise
        coins = await _current_balance(db, user_id)
        await db.commit()
        logger.info("Unlock race for %s on prompt %s resolved to existing grant", user_id, prompt_id)
        return UnlockResult(unlocked=True, coins_left=coins)
    except Exception:
        await db.rollback()
        raise

    logger.info("User %s unlocked prompt %s (%s coins left)", user_id, prompt_id, coins_left)
    return UnlockResult(unlocked=True, coins_left=coins_left)
