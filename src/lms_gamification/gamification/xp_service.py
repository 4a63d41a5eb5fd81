"""Points ledger: running totals, multi-level level-up resolution and level history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_gamification.db.models import UserLevel, UserPoints
from lms_gamification.gamification.level_thresholds import DEFAULT_BASE_XP, DEFAULT_GROWTH, xp_threshold

logger = logging.getLogger(__name__)

# Default points (and XP) per learning activity
ACTIVITY_REWARDS: dict[str, int] = {
    "course_completed": 100,
    "quiz_passed": 50,
    "assignment_completed": 75,
    "daily_login": 10,
    "review_posted": 25,
    "forum_post": 15,
    "forum_reply": 10,
    "helpful_review": 5,
}


class ConcurrentAwardError(RuntimeError):
    """Raised when a per-user update keeps losing the optimistic-lock race."""


@dataclass
class AwardOutcome:
    """Result of applying one award to a user's running totals."""

    user_id: int
    total_points: int
    old_level: int
    current_level: int
    current_xp: int
    xp_to_next_level: int
    levels_reached: list[int] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.current_level > self.old_level


async def get_points(db: AsyncSession, user_id: int) -> UserPoints | None:
    """Fetch the user's points row without creating it."""
    result = await db.execute(select(UserPoints).where(UserPoints.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_points(
    db: AsyncSession,
    user_id: int,
    base: int = DEFAULT_BASE_XP,
    growth: float = DEFAULT_GROWTH,
    now: datetime | None = None,
) -> UserPoints:
    """Get or lazily create the user's points row (level 1, nothing earned)."""
    row = await get_points(db, user_id)
    if row is None:
        row = UserPoints(
            user_id=user_id,
            total_points=0,
            current_level=1,
            current_xp=0,
            xp_to_next_level=xp_threshold(2, base, growth),
            updated_at=now or datetime.now(timezone.utc),
        )
        db.add(row)
        await db.flush()
    return row


async def apply_award(
    db: AsyncSession,
    user_id: int,
    points: int,
    xp: int,
    now: datetime | None = None,
    base: int = DEFAULT_BASE_XP,
    growth: float = DEFAULT_GROWTH,
) -> AwardOutcome:
    """Add points/XP to the user's totals and resolve any level-ups.

    A single award can cross several level boundaries; one UserLevel row is
    appended per level reached. Flushes but does not commit. The flush raises
    StaleDataError if another transaction changed the row since it was read.
    """
    if points < 0 or xp < 0:
        msg = f"Awards must be non-negative (points={points}, xp={xp})"
        raise ValueError(msg)
    if now is None:
        now = datetime.now(timezone.utc)

    row = await get_or_create_points(db, user_id, base, growth, now)
    old_level = row.current_level

    new_total = row.total_points + points
    new_xp = row.current_xp + xp
    earned_xp = new_xp
    level = row.current_level
    to_next = row.xp_to_next_level
    reached: list[int] = []

    # xp_threshold() is always >= 1, so this terminates
    while new_xp >= to_next:
        new_xp -= to_next
        level += 1
        to_next = xp_threshold(level + 1, base, growth)
        db.add(UserLevel(user_id=user_id, level=level, xp_earned=earned_xp, achieved_at=now))
        reached.append(level)

    row.total_points = new_total
    row.current_level = level
    row.current_xp = new_xp
    row.xp_to_next_level = to_next
    row.updated_at = now

    await db.flush()

    if reached:
        logger.info("User %s reached level %d (from %d)", user_id, level, old_level)

    return AwardOutcome(
        user_id=user_id,
        total_points=new_total,
        old_level=old_level,
        current_level=level,
        current_xp=new_xp,
        xp_to_next_level=to_next,
        levels_reached=reached,
    )


async def get_level_history(db: AsyncSession, user_id: int) -> list[UserLevel]:
    """Level-up history, oldest first."""
    result = await db.execute(
        select(UserLevel)
        .where(UserLevel.user_id == user_id)
        .order_by(UserLevel.level.asc(), UserLevel.id.asc())
    )
    return list(result.scalars().all())
