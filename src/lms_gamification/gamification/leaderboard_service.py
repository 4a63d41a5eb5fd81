"""Leaderboard service — per-period points snapshots with fully recomputed dense ranks.

Every point change upserts the user's entry in the current daily, weekly,
monthly and all-time windows, then re-sorts each window and rewrites ranks.
Reads never rank on the fly; they return the stored order. Re-sorting is
O(n log n) in the window size per award.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_gamification.db.models import LeaderboardEntry
from lms_gamification.gamification.periods import PERIODS, period_window

logger = logging.getLogger(__name__)

# course_id stored on entries of the platform-wide board
GLOBAL_SCOPE = ""


def _window_filter(period: str, period_start: date, course_id: str | None) -> list:
    return [
        LeaderboardEntry.period == period,
        LeaderboardEntry.period_start == period_start,
        LeaderboardEntry.course_id == (course_id or GLOBAL_SCOPE),
    ]


async def _get_entry(
    db: AsyncSession, user_id: int, period: str, period_start: date, course_id: str | None
) -> LeaderboardEntry | None:
    result = await db.execute(
        select(LeaderboardEntry).where(
            LeaderboardEntry.user_id == user_id,
            *_window_filter(period, period_start, course_id),
        )
    )
    return result.scalar_one_or_none()


async def upsert_entry(
    db: AsyncSession,
    user_id: int,
    period: str,
    period_start: date,
    period_end: date | None,
    points: int,
    level: int,
    course_id: str | None = None,
    accumulate: bool = False,
) -> LeaderboardEntry:
    """Create or update one window entry.

    Global entries store the user's current total (``accumulate=False``).
    Totals never decrease, so a write carrying an older, lower total than the
    stored one leaves the entry as it is. Course entries add the points
    earned in that course (``accumulate=True``).

    A concurrent insert of the same entry fails on the unique key with
    IntegrityError; the caller retries against the committed row.
    """
    entry = await _get_entry(db, user_id, period, period_start, course_id)
    if entry is None:
        entry = LeaderboardEntry(
            user_id=user_id,
            period=period,
            course_id=course_id or GLOBAL_SCOPE,
            points=points,
            level=level,
            rank=0,
            period_start=period_start,
            period_end=period_end,
        )
        db.add(entry)
    else:
        if accumulate:
            entry.points += points
        else:
            entry.points = max(entry.points, points)
        entry.level = max(entry.level, level)
        entry.period_end = period_end
    await db.flush()
    return entry


async def recompute_ranks(
    db: AsyncSession, period: str, period_start: date, course_id: str | None = None
) -> int:
    """Re-sort one window by points (ties keep entry order) and rewrite ranks 1..n.

    A window is one ``(period, period_start, course_id)`` partition: ranks are
    contiguous within the current daily, weekly or monthly window, and entries
    left over from earlier windows of the same period keep the ranks they had
    when that window closed. Returns the number of entries ranked.
    """
    result = await db.execute(
        select(LeaderboardEntry)
        .where(*_window_filter(period, period_start, course_id))
        .order_by(LeaderboardEntry.points.desc(), LeaderboardEntry.id.asc())
    )
    entries = result.scalars().all()

    for position, entry in enumerate(entries):
        if entry.rank != position + 1:
            entry.rank = position + 1

    await db.flush()
    return len(entries)


async def update_leaderboards(
    db: AsyncSession,
    user_id: int,
    points: int,
    level: int,
    now: datetime | None = None,
    course_points: dict[str, int] | None = None,
) -> None:
    """Upsert the user's entries in every current window and re-rank each one.

    ``course_points`` maps course id to the points just earned in that course.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    for period in PERIODS:
        start, end = period_window(period, now)

        await upsert_entry(db, user_id, period, start, end, points, level)
        await recompute_ranks(db, period, start)

        for course_id, earned in (course_points or {}).items():
            await upsert_entry(db, user_id, period, start, end, earned, level, course_id=course_id, accumulate=True)
            await recompute_ranks(db, period, start, course_id)


async def get_leaderboard(
    db: AsyncSession,
    period: str = "all_time",
    now: datetime | None = None,
    course_id: str | None = None,
    limit: int = 100,
) -> list[LeaderboardEntry]:
    """Current window's precomputed entries, highest points first."""
    start, _end = period_window(period, now)
    result = await db.execute(
        select(LeaderboardEntry)
        .where(*_window_filter(period, start, course_id))
        .order_by(LeaderboardEntry.points.desc(), LeaderboardEntry.rank.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_user_rank(
    db: AsyncSession,
    user_id: int,
    period: str = "all_time",
    now: datetime | None = None,
    course_id: str | None = None,
) -> LeaderboardEntry | None:
    """The user's entry in the current window, or None if they have none."""
    start, _end = period_window(period, now)
    return await _get_entry(db, user_id, period, start, course_id)
