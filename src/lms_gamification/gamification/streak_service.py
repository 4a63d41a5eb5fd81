"""Daily login streaks: same-day / consecutive-day / gap classification and bonus sizing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_gamification.db.models import LoginStreak

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LOGIN_POINTS = 10
DEFAULT_STREAK_BONUS_PER_DAY = 5

STREAK_STARTED = "streak_started"
STREAK_EXTENDED = "streak_extended"
STREAK_RESET = "streak_reset"
ALREADY_RECORDED = "already_recorded"


@dataclass
class StreakOutcome:
    """What a login did to the streak and how many points it earns."""

    streak: int
    longest_streak: int
    points: int
    event: str

    @property
    def awards_points(self) -> bool:
        return self.points > 0


def streak_bonus(
    streak: int,
    daily_login_points: int = DEFAULT_DAILY_LOGIN_POINTS,
    bonus_per_day: int = DEFAULT_STREAK_BONUS_PER_DAY,
) -> int:
    """Points for a consecutive-day login that brings the streak to ``streak``."""
    return daily_login_points + streak * bonus_per_day


async def get_streak(db: AsyncSession, user_id: int) -> LoginStreak | None:
    """Fetch the user's streak row, if they have ever logged in."""
    result = await db.execute(select(LoginStreak).where(LoginStreak.user_id == user_id))
    return result.scalar_one_or_none()


async def advance_streak(
    db: AsyncSession,
    user_id: int,
    today: date,
    daily_login_points: int = DEFAULT_DAILY_LOGIN_POINTS,
    bonus_per_day: int = DEFAULT_STREAK_BONUS_PER_DAY,
    now: datetime | None = None,
) -> StreakOutcome:
    """Record a login on ``today`` (a calendar date on the reference clock).

    - no row yet: create it with streak 1, earn the base daily points
    - already logged in today: no change, no points
    - last login yesterday: streak + 1, earn base + streak * bonus_per_day
    - older gap: streak resets to 1, earn the base daily points
    - row without a last login date: restart at 1, earn the base daily points

    ``now`` stamps ``updated_at`` and defaults to the current UTC time.
    Flushes but does not commit; the caller awards the returned points.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    streak = await get_streak(db, user_id)

    if streak is None:
        db.add(LoginStreak(
            user_id=user_id,
            current_streak=1,
            longest_streak=1,
            last_login_date=today,
            updated_at=now,
        ))
        await db.flush()
        return StreakOutcome(streak=1, longest_streak=1, points=daily_login_points, event=STREAK_STARTED)

    last_login = streak.last_login_date

    # A last login dated after today means the clock moved backwards; count it as today
    if last_login is not None and last_login >= today:
        return StreakOutcome(
            streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            points=0,
            event=ALREADY_RECORDED,
        )

    if last_login == today - timedelta(days=1):
        new_streak = streak.current_streak + 1
        points = streak_bonus(new_streak, daily_login_points, bonus_per_day)
        event = STREAK_EXTENDED
    else:
        if streak.current_streak > 1:
            logger.info("User %s lost a %d-day login streak", user_id, streak.current_streak)
        new_streak = 1
        points = daily_login_points
        event = STREAK_RESET

    streak.current_streak = new_streak
    streak.longest_streak = max(streak.longest_streak, new_streak)
    streak.last_login_date = today
    streak.updated_at = now
    await db.flush()

    return StreakOutcome(
        streak=new_streak,
        longest_streak=streak.longest_streak,
        points=points,
        event=event,
    )
