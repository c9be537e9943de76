"""baseline schema: users, profiles, prompts, secrets, unlock ledger

Revision ID: 5c2e9a41d7b3
Revises:
Create Date: 2026-10-18 10:12:44.201733
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from fastapi_users_db_sqlalchemy.generics import GUID

# revision identifiers, used by Alembic.
revision: str = "5c2e9a41d7b3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(length=1024), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_superuser", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    op.create_table(
        "profile",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("role", sa.Enum("user", "admin", name="profile_role"), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.CheckConstraint("coins >= 0", name="ck_profile_coins_non_negative"),
    )

    op.create_table(
        "prompt",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("ai_model", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("author", sa.String(length=128), nullable=True),
        sa.Column("is_trending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rating_avg", sa.Float(), nullable=True, server_default="0"),
        sa.Column("unlock_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_prompt_id", "prompt", ["id"])

    op.create_table(
        "prompt_secret",
        sa.Column("prompt_id", sa.Integer(), sa.ForeignKey("prompt.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("secret_text", sa.Text(), nullable=False),
    )

    op.create_table(
        "unlocked_prompt",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), sa.ForeignKey("profile.id", ondelete="CASCADE"), nullable=False),
        sa.Column("prompt_id", sa.Integer(), sa.ForeignKey("prompt.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "prompt_id", name="uq_unlocked_prompt_user_prompt"),
    )
    op.create_index("ix_unlocked_prompt_user_id", "unlocked_prompt", ["user_id"])
    op.create_index("ix_unlocked_prompt_prompt_id", "unlocked_prompt", ["prompt_id"])


def downgrade() -> None:
    op.drop_index("ix_unlocked_prompt_prompt_id", table_name="unlocked_prompt")
    op.drop_index("ix_unlocked_prompt_user_id", table_name="unlocked_prompt")
    op.drop_table("unlocked_prompt")
    op.drop_table("prompt_secret")
    op.drop_index("ix_prompt_id", table_name="prompt")
    op.drop_table("prompt")
    op.drop_table("profile")
    sa.Enum(name="profile_role").drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
