import uuid
from datetime import datetime
from typing import Any, List, Optional

from fastapi_users import schemas
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Role

# Defaults applied once, when a row or payload becomes a record.
PROMPT_DEFAULTS = {
    "description": "",
    "image_url": "",
    "ai_model": "Midjourney",
    "category": "Art",
    "author": "Admin",
    "is_trending": False,
    "rating_avg": 0.0,
    "unlock_count": 0,
}
PROFILE_DEFAULTS = {
    "name": "User",
    "avatar_url": "",
    "role": Role.user,
}


# =========================
# USER SCHEMAS (fastapi-users)
# =========================
class UserRead(schemas.BaseUser[uuid.UUID]):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class UserCreate(schemas.BaseUserCreate):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class UserUpdate(schemas.BaseUserUpdate):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


# =========================
# IDENTITY / PROFILE
# =========================
class Identity(BaseModel):
    """What the core needs from an authenticated session."""
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: Any) -> "Identity":
        return cls(
            id=str(user.id),
            email=getattr(user, "email", None),
            display_name=getattr(user, "display_name", None),
            avatar_url=getattr(user, "avatar_url", None),
            is_admin=bool(getattr(user, "is_superuser", False)),
        )


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    name: str = PROFILE_DEFAULTS["name"]
    avatar_url: str = PROFILE_DEFAULTS["avatar_url"]
    coins: int = Field(ge=0)
    role: Role = PROFILE_DEFAULTS["role"]
    unlocked_prompt_ids: List[int] = []

    @field_validator("name", "avatar_url", "role", mode="before")
    @classmethod
    def _default_missing(cls, v, info):
        return PROFILE_DEFAULTS[info.field_name] if v is None else v


# =========================
# PROMPT SCHEMAS
# =========================
class PromptRead(BaseModel):
    """Public prompt metadata. Never carries the secret text."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str = PROMPT_DEFAULTS["description"]
    image_url: str = PROMPT_DEFAULTS["image_url"]
    ai_model: str = PROMPT_DEFAULTS["ai_model"]
    category: str = PROMPT_DEFAULTS["category"]
    author: str = PROMPT_DEFAULTS["author"]
    is_trending: bool = PROMPT_DEFAULTS["is_trending"]
    rating_avg: float = PROMPT_DEFAULTS["rating_avg"]
    unlock_count: int = PROMPT_DEFAULTS["unlock_count"]
    created_at: Optional[datetime] = None

    @field_validator(*PROMPT_DEFAULTS.keys(), mode="before")
    @classmethod
    def _default_missing(cls, v, info):
        return PROMPT_DEFAULTS[info.field_name] if v is None else v


class PromptSecretRead(BaseModel):
    prompt_id: int
    prompt_text: str


class UnlockResult(BaseModel):
    unlocked: bool
    coins_left: int = Field(ge=0)


class UnlockedPromptIds(BaseModel):
    prompt_ids: List[int] = []


# =========================
# ADMIN IMPORT
# =========================
class PromptImportItem(BaseModel):
    id: Optional[int] = None
    title: str
    prompt_text: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    ai_model: Optional[str] = None
    category: Optional[str] = None
    author: Optional[str] = None
    is_trending: Optional[bool] = None


class PromptImportPayload(BaseModel):
    prompts: List[PromptImportItem] = []
    # when true, items with a known id update that prompt instead of creating one
    patch: bool = True
