"""initial lesson engine tables

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "a1f0c2d3e4b5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("level_tag", sa.String(2), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("fingerprint", sa.String(8), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="incomplete"),
        sa.Column("is_fallback", sa.Boolean(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_lessons_user_id", "lessons", ["user_id"])
    op.create_index("ix_lessons_fingerprint", "lessons", ["fingerprint"])

    op.create_table(
        "lesson_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(10), nullable=False, server_default="sentence"),
        sa.Column("term", sa.Text(), nullable=False),
        sa.Column("translation", sa.Text(), nullable=True),
        sa.Column("sentence_type", sa.String(10), nullable=True),
        sa.Column("fingerprint", sa.String(8), nullable=True),
    )
    op.create_index("ix_lesson_items_lesson_id", "lesson_items", ["lesson_id"])
    op.create_index("ix_lesson_items_fingerprint", "lesson_items", ["fingerprint"])

    op.create_table(
        "known_fingerprints",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("fingerprint", sa.String(8), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "fingerprint", name="uq_known_fingerprint"),
    )
    op.create_index("ix_known_fingerprints_user_id", "known_fingerprints", ["user_id"])

    op.create_table(
        "vocab_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("term", sa.Text(), nullable=False),
        sa.Column("seen_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("correct_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mastery", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_seen_at", sa.DateTime(), nullable=True),
        sa.Column("next_review_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "term", name="uq_vocab_user_term"),
    )
    op.create_index("ix_vocab_entries_user_id", "vocab_entries", ["user_id"])
    op.create_index("ix_vocab_entries_next_review_at", "vocab_entries", ["next_review_at"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False, unique=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level_tag", sa.String(2), nullable=False, server_default="A1"),
        sa.Column("streak_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.String(10), nullable=True),
        sa.Column("lessons_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_lesson_index", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("active_lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=True),
    )

    op.create_table(
        "lesson_progress",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=False, unique=True),
        sa.Column("completed_indices", sa.JSON(), nullable=True),
        sa.Column("last_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "session_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id"), nullable=True),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_session_scores_user_id", "session_scores", ["user_id"])
    op.create_index("ix_session_scores_recorded_at", "session_scores", ["recorded_at"])


def downgrade() -> None:
    op.drop_table("session_scores")
    op.drop_table("lesson_progress")
    op.drop_table("profiles")
    op.drop_table("vocab_entries")
    op.drop_table("known_fingerprints")
    op.drop_table("lesson_items")
    op.drop_table("lessons")
