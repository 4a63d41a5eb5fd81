"""Gamification service — the boundary the rest of the platform calls.

Each operation runs its per-user read-modify-write in its own short
transaction. ``user_points`` and ``login_streaks`` carry a version column, so
two concurrent updates for the same user cannot both commit; the loser is
retried from a fresh read.

Order of work for one award:

1. Ledger write (points, XP, level-ups). Errors here reach the caller.
2. Badge evaluation, driven by a FIFO queue of pending checks. Each newly
   earned badge has its reward applied in the same transaction as the badge
   row, and queues one follow-up check (reason ``badge_earned``). A badge is
   earned at most once, so the queue drains after at most one check per
   catalog badge.
3. One leaderboard update from the user's committed totals.
4. Event publishing.

Steps 2-4 are best-effort: failures are logged and the award still stands.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from lms_gamification.config import Settings, get_settings
from lms_gamification.db.models import Badge
from lms_gamification.gamification import badge_service, leaderboard_service, streak_service, xp_service
from lms_gamification.gamification.events import (
    EventPublisher,
    NullEventPublisher,
    emit_badge_earned,
    emit_level_up,
    emit_streak_update,
)
from lms_gamification.gamification.level_thresholds import level_progress, level_table
from lms_gamification.gamification.schemas import (
    EarnedBadgeResponse,
    LeaderboardRow,
    LevelEntry,
    LoginResult,
    UserGamificationSnapshot,
)
from lms_gamification.gamification.xp_service import ACTIVITY_REWARDS, AwardOutcome, ConcurrentAwardError
from lms_gamification.logging_config import award_log_context

logger = logging.getLogger(__name__)

T = TypeVar("T")

BADGE_EARNED_REASON = "badge_earned"
DAILY_LOGIN_REASON = "daily_login"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GamificationService:
    """Points ledger, login streaks, badges and leaderboards for one platform."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.publisher = publisher or NullEventPublisher()
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _run_in_transaction(
        self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        """Run ``work`` in a fresh session and commit, retrying lost races.

        StaleDataError (version mismatch) and IntegrityError (duplicate insert
        from a concurrent lazy-create) both mean another writer got there
        first; the whole unit of work is replayed against the new state.
        """
        attempts = self.settings.award_max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            async with self.session_factory() as db:
                try:
                    result = await work(db)
                    await db.commit()
                    return result
                except (StaleDataError, IntegrityError) as exc:
                    await db.rollback()
                    last_error = exc
                    logger.info(
                        "%s conflicted with a concurrent update (attempt %d/%d)",
                        operation, attempt, attempts,
                    )

        msg = f"{operation} still conflicting after {attempts} attempts"
        raise ConcurrentAwardError(msg) from last_error

    # ------------------------------------------------------------------
    # Points ledger
    # ------------------------------------------------------------------

    async def award_points(
        self,
        user_id: int,
        points: int,
        xp: int,
        reason: str,
        metadata: dict | None = None,
    ) -> UserGamificationSnapshot:
        """Add points and XP, then evaluate badges and refresh leaderboards.

        Returns the user's refreshed snapshot. Raises ValueError for negative
        amounts; store errors on the ledger write propagate.

        Metadata keys read by the default catalog and leaderboards:

        - ``course_id``: also credits the points to that course's leaderboards
        - ``quiz_count`` (or ``quizCount``) with reason ``quiz_passed``: quizzes
          passed so far, for Quiz Master
        - ``streak``: set by :meth:`record_login` for the streak badges
        """
        if points < 0 or xp < 0:
            msg = f"Awards must be non-negative (points={points}, xp={xp})"
            raise ValueError(msg)

        metadata = dict(metadata or {})
        now = self.clock()

        with award_log_context(user_id, reason):
            outcome = await self._run_in_transaction(
                "award_points",
                lambda db: xp_service.apply_award(
                    db, user_id, points, xp, now,
                    self.settings.level_base_xp, self.settings.level_growth,
                ),
            )
            await self._after_award(user_id, points, reason, metadata, outcome, now)

        return await self.get_user_gamification(user_id)

    async def award_activity(
        self, user_id: int, reason: str, metadata: dict | None = None
    ) -> UserGamificationSnapshot:
        """Award the standard points/XP for a learning activity (e.g. ``quiz_passed``)."""
        amount = ACTIVITY_REWARDS.get(reason)
        if amount is None:
            msg = f"Unknown activity: {reason}"
            raise ValueError(msg)
        return await self.award_points(user_id, amount, amount, reason, metadata)

    async def _after_award(
        self,
        user_id: int,
        points: int,
        reason: str,
        metadata: dict,
        outcome: AwardOutcome,
        now: datetime,
    ) -> None:
        """Badges, leaderboards and events for an award that has already committed."""
        starting_level = outcome.old_level
        earned: list[Badge] = []

        final = await self._process_badge_queue(user_id, reason, metadata, now, earned)
        if final is None:
            final = outcome

        course_points: dict[str, int] = {}
        course_id = metadata.get("course_id")
        if course_id is not None and str(course_id) and points > 0:
            course_points[str(course_id)] = points

        async def refresh_leaderboards(db: AsyncSession) -> None:
            # Rank on the committed totals; a concurrent award may have landed since ours
            row = await xp_service.get_points(db, user_id)
            if row is None:
                return
            await leaderboard_service.update_leaderboards(
                db, user_id, row.total_points, row.current_level, now, course_points,
            )

        try:
            await self._run_in_transaction("update_leaderboards", refresh_leaderboards)
        except Exception:
            logger.exception("Leaderboard update failed for user %s", user_id)

        if final.current_level > starting_level:
            await emit_level_up(self.publisher, user_id, starting_level, final.current_level)
        for badge in earned:
            await emit_badge_earned(
                self.publisher, user_id, badge.id, badge.slug, badge.name, badge.rarity, badge.points,
            )

    async def _process_badge_queue(
        self,
        user_id: int,
        reason: str,
        metadata: dict,
        now: datetime,
        earned: list[Badge],
    ) -> AwardOutcome | None:
        """Drain pending badge checks; returns the latest ledger outcome from badge rewards."""
        pending: deque[tuple[str, dict]] = deque([(reason, metadata)])
        latest: AwardOutcome | None = None

        while pending:
            check_reason, check_metadata = pending.popleft()
            try:
                rewarded = await self._run_in_transaction(
                    "evaluate_badges",
                    lambda db, r=check_reason, m=check_metadata: self._award_badges(db, user_id, r, m, now),
                )
            except Exception:
                logger.exception("Badge evaluation failed for user %s", user_id)
                continue

            for badge, reward in rewarded:
                earned.append(badge)
                if reward is not None:
                    latest = reward
                pending.append((BADGE_EARNED_REASON, {"badge_id": badge.id, "badge_slug": badge.slug}))

        return latest

    async def _award_badges(
        self, db: AsyncSession, user_id: int, reason: str, metadata: dict, now: datetime
    ) -> list[tuple[Badge, AwardOutcome | None]]:
        """Insert newly earned badges and apply their rewards in one transaction."""
        rewarded: list[tuple[Badge, AwardOutcome | None]] = []
        for badge in await badge_service.evaluate_badges(db, user_id, reason, metadata, now):
            reward = None
            if badge.points > 0:
                reward = await xp_service.apply_award(
                    db, user_id, badge.points, badge.points, now,
                    self.settings.level_base_xp, self.settings.level_growth,
                )
            rewarded.append((badge, reward))
        return rewarded

    # ------------------------------------------------------------------
    # Login streaks
    # ------------------------------------------------------------------

    async def record_login(self, user_id: int) -> LoginResult:
        """Record today's login, extending or resetting the streak, and award its points.

        Repeated calls on the same calendar day return the current streak and
        0 points.
        """
        now = self.clock()
        today = now.date()

        async def work(db: AsyncSession) -> tuple[streak_service.StreakOutcome, AwardOutcome | None]:
            streak = await streak_service.advance_streak(
                db, user_id, today,
                self.settings.daily_login_points, self.settings.streak_bonus_per_day, now,
            )
            award = None
            if streak.awards_points:
                award = await xp_service.apply_award(
                    db, user_id, streak.points, streak.points, now,
                    self.settings.level_base_xp, self.settings.level_growth,
                )
            return streak, award

        with award_log_context(user_id, DAILY_LOGIN_REASON):
            streak, award = await self._run_in_transaction("record_login", work)

            if award is not None:
                await self._after_award(
                    user_id, streak.points, DAILY_LOGIN_REASON, {"streak": streak.streak}, award, now,
                )
                await emit_streak_update(self.publisher, user_id, streak.event, streak.streak, streak.points)

        return LoginResult(streak=streak.streak, points_awarded=streak.points)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_gamification(self, user_id: int) -> UserGamificationSnapshot:
        """Points, level, streak and earned badges (newest first) for one user."""

        async def work(db: AsyncSession) -> UserGamificationSnapshot:
            points = await xp_service.get_or_create_points(
                db, user_id, self.settings.level_base_xp, self.settings.level_growth, self.clock(),
            )
            streak = await streak_service.get_streak(db, user_id)
            earned = await badge_service.list_earned_badges(db, user_id)

            return UserGamificationSnapshot(
                user_id=user_id,
                total_points=points.total_points,
                current_level=points.current_level,
                current_xp=points.current_xp,
                xp_to_next_level=points.xp_to_next_level,
                level_progress=level_progress(points.current_xp, points.xp_to_next_level),
                login_streak=streak.current_streak if streak else 0,
                longest_streak=streak.longest_streak if streak else 0,
                badges=[
                    EarnedBadgeResponse(
                        id=eb.badge.id,
                        slug=eb.badge.slug,
                        name=eb.badge.name,
                        description=eb.badge.description,
                        icon=eb.badge.icon,
                        category=eb.badge.category,
                        rarity=eb.badge.rarity,
                        earned_at=eb.earned_at,
                    )
                    for eb in earned
                ],
            )

        return await self._run_in_transaction("get_user_gamification", work)

    async def get_leaderboard(
        self,
        period: str = "all_time",
        course_id: str | None = None,
        limit: int | None = None,
    ) -> list[LeaderboardRow]:
        """Precomputed ranking for the current window of ``period``."""
        if limit is None:
            limit = self.settings.leaderboard_default_limit
        if limit < 1:
            msg = f"limit must be >= 1, got {limit}"
            raise ValueError(msg)
        limit = min(limit, self.settings.leaderboard_max_limit)

        async with self.session_factory() as db:
            entries = await leaderboard_service.get_leaderboard(
                db, period, self.clock(), course_id, limit,
            )
        return [
            LeaderboardRow(user_id=e.user_id, points=e.points, rank=e.rank, level=e.level)
            for e in entries
        ]

    async def get_user_rank(
        self, user_id: int, period: str = "all_time", course_id: str | None = None
    ) -> LeaderboardRow | None:
        """The user's row in the current window, or None if they have not scored in it."""
        async with self.session_factory() as db:
            entry = await leaderboard_service.get_user_rank(db, user_id, period, self.clock(), course_id)
        if entry is None:
            return None
        return LeaderboardRow(user_id=entry.user_id, points=entry.points, rank=entry.rank, level=entry.level)

    def get_level_table(self, max_level: int = 50) -> list[LevelEntry]:
        """XP required for each level under the configured curve."""
        return [
            LevelEntry(**row)
            for row in level_table(max_level, self.settings.level_base_xp, self.settings.level_growth)
        ]
