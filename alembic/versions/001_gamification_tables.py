"""Gamification tables.

Creates user_points, user_levels, login_streaks, badges, earned_badges and
leaderboard_entries.

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Points & levels ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_points (
            user_id BIGINT PRIMARY KEY,
            total_points BIGINT NOT NULL DEFAULT 0,
            current_level INTEGER NOT NULL DEFAULT 1,
            current_xp INTEGER NOT NULL DEFAULT 0,
            xp_to_next_level INTEGER NOT NULL,
            version INTEGER NOT NULL,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CHECK (current_xp >= 0 AND current_xp < xp_to_next_level)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_levels (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            level INTEGER NOT NULL,
            xp_earned INTEGER NOT NULL,
            achieved_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_levels_user
        ON user_levels(user_id)
    """)

    # --- Login streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS login_streaks (
            user_id BIGINT PRIMARY KEY,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_login_date DATE,
            version INTEGER NOT NULL,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(256),
            points INTEGER NOT NULL DEFAULT 0,
            criteria JSONB NOT NULL DEFAULT '{}',
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS earned_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            badge_id INTEGER NOT NULL REFERENCES badges(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            metadata JSONB NOT NULL DEFAULT '{}',
            CONSTRAINT earned_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_earned_badges_user
        ON earned_badges(user_id)
    """)

    # --- Leaderboards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            period VARCHAR(16) NOT NULL,
            course_id VARCHAR(64) NOT NULL DEFAULT '',
            points BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            rank INTEGER NOT NULL DEFAULT 0,
            period_start DATE NOT NULL,
            period_end DATE,
            version INTEGER NOT NULL,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT leaderboard_entries_user_period_key
                UNIQUE (user_id, period, period_start, course_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_window
        ON leaderboard_entries(period, period_start, course_id, points)
    """)


def downgrade() -> None:
    for table in [
        "leaderboard_entries",
        "earned_badges",
        "badges",
        "login_streaks",
        "user_levels",
        "user_points",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")  # noqa: S608
