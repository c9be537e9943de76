# services/profiles.py
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promptify.models import Grant, Profile, Role
from promptify.schemas import Identity, ProfileRead
from promptify.settings.config import settings

logger = logging.getLogger(__name__)


async def _load_profile(db: AsyncSession, profile_id: str) -> Profile | None:
    return (
        await db.execute(
            select(Profile).where(Profile.id == profile_id).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def ensure_profile(db: AsyncSession, identity: Identity) -> Profile:
    """Find-or-create the profile for an authenticated identity.

    Safe to call from any number of sessions at once: the primary key makes the
    insert single-winner, and a losing insert re-reads the winner's row.
    """
    profile = await _load_profile(db, identity.id)
    if profile is not None:
        await db.commit()
        return profile

    try:
        async with db.begin_nested():
            db.add(
                Profile(
                    id=identity.id,
                    email=identity.email,
                    name=identity.display_name or (identity.email or "").split("@")[0] or None,
                    avatar_url=identity.avatar_url,
                    coins=settings.STARTING_COINS,
                    role=Role.admin if identity.is_admin else Role.user,
                )
            )
    except IntegrityError:
        # a concurrent bootstrap for the same identity got there first
        logger.info("Profile %s already created by a concurrent session", identity.id)
    else:
        logger.info("Profile %s created with %s coins", identity.id, settings.STARTING_COINS)

    profile = await _load_profile(db, identity.id)
    await db.commit()
    if profile is None:
        # the savepoint rolled back for a reason other than a duplicate key
        raise RuntimeError(f"profile {identity.id} could not be created")
    return profile


async def unlocked_prompt_ids(db: AsyncSession, user_id: str) -> list[int]:
    rows = (await db.execute(select(Grant.prompt_id).where(Grant.user_id == user_id))).scalars().all()
    return list(rows or [])


async def profile_snapshot(db: AsyncSession, identity: Identity) -> ProfileRead:
    """Bootstrap if needed and return the authoritative balance plus grant set.

    Balance and grants are read in one transaction under a share lock on the
    profile row, so an unlock committing meanwhile shows up in both or neither.
    """
    await ensure_profile(db, identity)
    profile = (
        await db.execute(
            select(Profile)
            .where(Profile.id == identity.id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    ids = await unlocked_prompt_ids(db, profile.id)
    await db.commit()
    return ProfileRead(
        id=profile.id,
        email=profile.email,
        name=profile.name,
        avatar_url=profile.avatar_url,
        coins=profile.coins,
        role=profile.role,
        unlocked_prompt_ids=ids,
    )
