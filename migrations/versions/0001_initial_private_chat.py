"""initial private chat schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create message, directory and account tables."""
    op.create_table(
        "users",
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("first_name", sa.String(length=64), nullable=False),
        sa.Column("last_name", sa.String(length=64), nullable=False),
        sa.Column("avatar", sa.Text(), nullable=False),
        sa.Column("lastseen", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_table(
        "app_sessions",
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("session_id"),
    )
    op.create_index("ix_app_sessions_user_id", "app_sessions", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("from_id", sa.BigInteger(), nullable=False),
        sa.Column("to_id", sa.BigInteger(), nullable=False),
        sa.Column("page_id", sa.BigInteger(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("text_ecb", sa.Text(), nullable=False),
        sa.Column("text_preview", sa.String(length=255), nullable=False),
        sa.Column("iv", sa.String(length=64), nullable=True),
        sa.Column("tag", sa.String(length=64), nullable=True),
        sa.Column("cipher_version", sa.Integer(), nullable=False),
        sa.Column("media", sa.Text(), nullable=False),
        sa.Column("mediaFileName", sa.String(length=255), nullable=False),
        sa.Column("stickers", sa.Text(), nullable=False),
        sa.Column("type_two", sa.String(length=32), nullable=False),
        sa.Column("lat", sa.String(length=32), nullable=False),
        sa.Column("lng", sa.String(length=32), nullable=False),
        sa.Column("reply_id", sa.Integer(), nullable=False),
        sa.Column("story_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("seen", sa.BigInteger(), nullable=False),
        sa.Column("deleted_one", sa.Boolean(), nullable=False),
        sa.Column("deleted_two", sa.Boolean(), nullable=False),
        sa.Column("forward", sa.Integer(), nullable=False),
        sa.Column("edited", sa.Integer(), nullable=False),
        sa.Column("time", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_pair", "messages", ["from_id", "to_id", "id"])
    op.create_index("ix_messages_unseen", "messages", ["to_id", "from_id", "seen"])

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("reaction", sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_reaction_user_message", "message_reactions", ["user_id", "message_id"], unique=True
    )
    op.create_index("ix_message_reactions_message_id", "message_reactions", ["message_id"])

    op.create_table(
        "message_marks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.Integer(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("pin", sa.Boolean(), nullable=False),
        sa.Column("fav", sa.Boolean(), nullable=False),
        sa.Column("time", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("uq_mark_user_message", "message_marks", ["user_id", "message_id"], unique=True)
    op.create_index("ix_mark_user_chat", "message_marks", ["user_id", "chat_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("counterpart_id", sa.BigInteger(), nullable=False),
        sa.Column("time", sa.BigInteger(), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("notify", sa.Boolean(), nullable=False),
        sa.Column("call_chat", sa.Boolean(), nullable=False),
        sa.Column("archive", sa.Boolean(), nullable=False),
        sa.Column("pin", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_conversation_pair", "conversations", ["owner_id", "counterpart_id"], unique=True
    )
    op.create_index("ix_conversation_owner_time", "conversations", ["owner_id", "time"])


def downgrade() -> None:
    """Drop every private chat table."""
    op.drop_index("ix_conversation_owner_time", table_name="conversations")
    op.drop_index("uq_conversation_pair", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_mark_user_chat", table_name="message_marks")
    op.drop_index("uq_mark_user_message", table_name="message_marks")
    op.drop_table("message_marks")
    op.drop_index("ix_message_reactions_message_id", table_name="message_reactions")
    op.drop_index("uq_reaction_user_message", table_name="message_reactions")
    op.drop_table("message_reactions")
    op.drop_index("ix_messages_unseen", table_name="messages")
    op.drop_index("ix_messages_pair", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_app_sessions_user_id", table_name="app_sessions")
    op.drop_table("app_sessions")
    op.drop_table("users")
