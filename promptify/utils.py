from fastapi import Depends
from fastapi_users import models
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from .database import get_db
from .errors import Forbidden, NotAuthenticated
from .models import Profile, Role
from .schemas import Identity
from .services.profiles import ensure_profile
from .users import current_optional_user

logger = logging.getLogger(__name__)


# Dependency to get the caller's identity, if signed in
async def get_current_identity(
    user: models.UP = Depends(current_optional_user),
) -> Identity | None:
    if not user:
        return None
    return Identity.from_user(user)


# Dependency to enforce authentication
async def require_identity(
    identity: Identity | None = Depends(get_current_identity),
) -> Identity:
    if identity is None:
        raise NotAuthenticated()
    return identity


async def current_profile(
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Profile of the signed-in user, bootstrapped on first use."""
    return await ensure_profile(db, identity)


async def require_admin_profile(profile: Profile = Depends(current_profile)) -> Profile:
    if profile.role != Role.admin:
        logger.warning("Admin route refused for profile %s", profile.id)
        raise Forbidden("Admin access required")
    return profile
