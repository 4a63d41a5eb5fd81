"""Badge evaluation against the seeded catalog."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from lms_gamification.db.models import Badge, EarnedBadge
from lms_gamification.gamification.badge_service import (
    evaluate_badges,
    get_badge_by_slug,
    has_badge,
    list_active_badges,
    list_earned_badges,
)
from lms_gamification.gamification.seed import BADGE_SEED_DATA, seed_badges
from lms_gamification.gamification.xp_service import apply_award, get_or_create_points

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


class TestSeed:

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, seeded_db):
        assert await seed_badges(seeded_db) == 0
        count = (await seeded_db.execute(select(func.count()).select_from(Badge))).scalar_one()
        assert count == len(BADGE_SEED_DATA)

    @pytest.mark.asyncio
    async def test_catalog_order(self, seeded_db):
        badges = await list_active_badges(seeded_db)
        assert [b.slug for b in badges] == [d["slug"] for d in BADGE_SEED_DATA]


class TestEvaluateBadges:

    @pytest.mark.asyncio
    async def test_user_without_points_row_earns_nothing(self, seeded_db):
        assert await evaluate_badges(seeded_db, 1, "course_completed", {}, NOW) == []

    @pytest.mark.asyncio
    async def test_event_badge_awarded(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        earned = await evaluate_badges(seeded_db, 1, "course_completed", {"course_id": "py101"}, NOW)
        assert [b.slug for b in earned] == ["first_course"]

        badge = await get_badge_by_slug(seeded_db, "first_course")
        assert await has_badge(seeded_db, 1, badge.id)

        row = (await seeded_db.execute(select(EarnedBadge))).unique().scalar_one()
        assert row.badge_metadata == {"reason": "course_completed", "course_id": "py101"}

    @pytest.mark.asyncio
    async def test_badge_earned_at_most_once(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        await evaluate_badges(seeded_db, 1, "course_completed", {}, NOW)
        again = await evaluate_badges(seeded_db, 1, "course_completed", {}, NOW)
        assert again == []

        count = (await seeded_db.execute(
            select(func.count()).select_from(EarnedBadge).where(EarnedBadge.user_id == 1)
        )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_counter_badge_needs_threshold(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        assert await evaluate_badges(seeded_db, 1, "quiz_passed", {"quiz_count": 9}, NOW) == []
        earned = await evaluate_badges(seeded_db, 1, "quiz_passed", {"quiz_count": 10}, NOW)
        assert [b.slug for b in earned] == ["quiz_master"]

    @pytest.mark.asyncio
    async def test_quiz_master_accepts_camel_case_counter(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        earned = await evaluate_badges(seeded_db, 1, "quiz_passed", {"quizCount": 12}, NOW)
        assert [b.slug for b in earned] == ["quiz_master"]

    @pytest.mark.asyncio
    async def test_streak_badges_both_awarded_at_thirty(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        earned = await evaluate_badges(seeded_db, 1, "daily_login", {"streak": 30}, NOW)
        assert {b.slug for b in earned} == {"week_warrior", "month_of_learning"}

    @pytest.mark.asyncio
    async def test_rules_see_current_totals(self, seeded_db):
        await apply_award(seeded_db, 1, 1000, 0, NOW)
        earned = await evaluate_badges(seeded_db, 1, "badge_earned", {}, NOW)
        assert [b.slug for b in earned] == ["point_collector"]

    @pytest.mark.asyncio
    async def test_unparseable_criteria_never_awarded(self, db_session):
        db_session.add(Badge(
            slug="mystery", name="Mystery", description="?", category="misc", rarity="common",
            points=10, criteria={"kind": "moon_phase"},
        ))
        db_session.add(Badge(
            slug="empty", name="Empty", description="?", category="misc", rarity="common",
            points=10, criteria={},
        ))
        await get_or_create_points(db_session, 1)

        assert await evaluate_badges(db_session, 1, "moon_phase", {"phase": "full"}, NOW) == []

    @pytest.mark.asyncio
    async def test_inactive_badges_skipped(self, seeded_db):
        badge = await get_badge_by_slug(seeded_db, "first_course")
        badge.is_active = False
        await get_or_create_points(seeded_db, 1)
        assert await evaluate_badges(seeded_db, 1, "course_completed", {}, NOW) == []


class TestListEarnedBadges:

    @pytest.mark.asyncio
    async def test_newest_first(self, seeded_db):
        await get_or_create_points(seeded_db, 1)
        await evaluate_badges(seeded_db, 1, "course_completed", {}, NOW)
        await evaluate_badges(seeded_db, 1, "forum_post", {}, NOW.replace(hour=13))
        await seeded_db.commit()

        earned = await list_earned_badges(seeded_db, 1)
        assert [eb.badge.slug for eb in earned] == ["social_butterfly", "first_course"]
