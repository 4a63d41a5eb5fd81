"""Default badge catalog."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_gamification.db.models import Badge

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Learning
    {
        "slug": "first_course",
        "name": "First Course",
        "description": "Complete your first course",
        "category": "learning",
        "rarity": "common",
        "points": 50,
        "criteria": {"kind": "event_equals", "reasons": ["course_completed"]},
        "sort_order": 1,
    },
    {
        "slug": "quiz_master",
        "name": "Quiz Master",
        "description": "Pass 10 quizzes",
        "category": "learning",
        "rarity": "rare",
        "points": 100,
        "criteria": {
            "kind": "counter_threshold",
            "reason": "quiz_passed",
            "counter": "quiz_count",
            "aliases": ["quizCount"],
            "threshold": 10,
        },
        "sort_order": 2,
    },
    {
        "slug": "dedicated_learner",
        "name": "Dedicated Learner",
        "description": "Reach level 10",
        "category": "learning",
        "rarity": "epic",
        "points": 200,
        "criteria": {"kind": "level_threshold", "level": 10},
        "sort_order": 3,
    },
    # Community
    {
        "slug": "social_butterfly",
        "name": "Social Butterfly",
        "description": "Post in the forums or review a course",
        "category": "community",
        "rarity": "common",
        "points": 25,
        "criteria": {
            "kind": "event_equals",
            "reasons": ["forum_post", "forum_reply", "review_posted"],
        },
        "sort_order": 4,
    },
    # Consistency
    {
        "slug": "week_warrior",
        "name": "Week Warrior",
        "description": "Log in 7 days in a row",
        "category": "streak",
        "rarity": "common",
        "points": 50,
        "criteria": {
            "kind": "counter_threshold",
            "reason": "daily_login",
            "counter": "streak",
            "threshold": 7,
        },
        "sort_order": 5,
    },
    {
        "slug": "month_of_learning",
        "name": "Month of Learning",
        "description": "Log in 30 days in a row",
        "category": "streak",
        "rarity": "epic",
        "points": 250,
        "criteria": {
            "kind": "counter_threshold",
            "reason": "daily_login",
            "counter": "streak",
            "threshold": 30,
        },
        "sort_order": 6,
    },
    # Milestones
    {
        "slug": "point_collector",
        "name": "Point Collector",
        "description": "Earn 1,000 points",
        "category": "milestone",
        "rarity": "rare",
        "points": 100,
        "criteria": {"kind": "points_threshold", "points": 1000},
        "sort_order": 7,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert catalog badges that are missing; existing rows are left untouched.

    Returns the number of badges inserted.
    """
    result = await db.execute(select(Badge.slug))
    existing = set(result.scalars().all())

    inserted = 0
    for data in BADGE_SEED_DATA:
        if data["slug"] in existing:
            continue
        db.add(Badge(**data, is_active=True))
        inserted += 1

    await db.commit()
    if inserted:
        logger.info("Seeded %d badge definitions", inserted)
    return inserted
