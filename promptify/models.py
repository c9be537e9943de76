from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime, func,
    UniqueConstraint, CheckConstraint, Float
)
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SAEnum
from fastapi_users_db_sqlalchemy import SQLAlchemyBaseUserTableUUID
import enum

from .database import Base


class Role(str, enum.Enum):
    user = "user"
    admin = "admin"


# ---------------------------
# USER MODEL (identity provider)
# ---------------------------
class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "user"

    display_name = Column(String(128), nullable=True)
    avatar_url = Column(String, nullable=True)


# ---------------------------
# PROFILE
# ---------------------------
class Profile(Base):
    __tablename__ = "profile"

    # opaque identity subject id; not a FK so the identity provider stays swappable
    id = Column(String(64), primary_key=True)
    email = Column(String, nullable=True)
    name = Column(String(128), nullable=True)
    avatar_url = Column(String, nullable=True)
    coins = Column(Integer, nullable=False, default=10)
    role = Column(SAEnum(Role, name="profile_role"), nullable=False, default=Role.user)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    grants = relationship(
        "Grant",
        back_populates="profile",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_profile_coins_non_negative"),
    )


# ---------------------------
# PROMPTS
# ---------------------------
class Prompt(Base):
    __tablename__ = "prompt"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    ai_model = Column(String(64), nullable=True)
    category = Column(String(64), nullable=True)
    author = Column(String(128), nullable=True)
    is_trending = Column(Boolean, default=False, nullable=False)
    rating_avg = Column(Float, default=0.0, nullable=True)  # derived from reviews
    unlock_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    secret = relationship(
        "PromptSecret",
        uselist=False,
        back_populates="prompt",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PromptSecret(Base):
    """The gated prompt text. Only ever read through the grant join."""
    __tablename__ = "prompt_secret"

    prompt_id = Column(Integer, ForeignKey("prompt.id", ondelete="CASCADE"), primary_key=True)
    secret_text = Column(Text, nullable=False)

    prompt = relationship("Prompt", back_populates="secret")


# ---------------------------
# GRANT LEDGER
# ---------------------------
class Grant(Base):
    __tablename__ = "unlocked_prompt"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("profile.id", ondelete="CASCADE"), index=True, nullable=False)
    prompt_id = Column(Integer, ForeignKey("prompt.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship("Profile", back_populates="grants")

    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id", name="uq_unlocked_prompt_user_prompt"),
    )
