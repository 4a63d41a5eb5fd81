"""Badge evaluation and award with duplicate prevention."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_gamification.db.models import Badge, EarnedBadge
from lms_gamification.gamification.badge_criteria import criterion_matches, parse_criterion
from lms_gamification.gamification.xp_service import get_points

logger = logging.getLogger(__name__)


async def get_badge_by_slug(db: AsyncSession, slug: str) -> Badge | None:
    """Fetch a badge definition by slug."""
    result = await db.execute(select(Badge).where(Badge.slug == slug))
    return result.scalar_one_or_none()


async def list_active_badges(db: AsyncSession) -> list[Badge]:
    """All active badges in catalog order."""
    result = await db.execute(
        select(Badge)
        .where(Badge.is_active.is_(True))
        .order_by(Badge.sort_order, Badge.id)
    )
    return list(result.scalars().all())


async def earned_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    """IDs of every badge the user already holds."""
    result = await db.execute(select(EarnedBadge.badge_id).where(EarnedBadge.user_id == user_id))
    return set(result.scalars().all())


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(EarnedBadge.id).where(
            EarnedBadge.user_id == user_id,
            EarnedBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def list_earned_badges(db: AsyncSession, user_id: int) -> list[EarnedBadge]:
    """The user's earned badges with their definitions, newest first."""
    result = await db.execute(
        select(EarnedBadge)
        .where(EarnedBadge.user_id == user_id)
        .order_by(EarnedBadge.earned_at.desc(), EarnedBadge.id.desc())
    )
    return list(result.unique().scalars().all())


async def evaluate_badges(
    db: AsyncSession,
    user_id: int,
    reason: str,
    metadata: dict | None = None,
    now: datetime | None = None,
) -> list[Badge]:
    """Award every un-earned badge whose rule matches this event.

    Rules see the triggering reason and metadata plus the user's current
    (already updated) level and lifetime points. Inserts one EarnedBadge per
    match and returns the newly earned badges; their point rewards are the
    caller's to grant. Flushes but does not commit. A concurrent award of the
    same badge surfaces as IntegrityError from the UNIQUE(user_id, badge_id)
    constraint.
    """
    points = await get_points(db, user_id)
    if points is None:
        return []

    if now is None:
        now = datetime.now(timezone.utc)

    already_earned = await earned_badge_ids(db, user_id)
    awarded: list[Badge] = []

    for badge in await list_active_badges(db):
        if badge.id in already_earned:
            continue

        criterion = parse_criterion(badge.criteria)
        if not criterion_matches(criterion, reason, metadata, points.current_level, points.total_points):
            continue

        db.add(EarnedBadge(
            user_id=user_id,
            badge_id=badge.id,
            earned_at=now,
            badge_metadata={"reason": reason, **(metadata or {})},
        ))
        awarded.append(badge)

    if awarded:
        await db.flush()
        logger.info("User %s earned badges: %s", user_id, [b.slug for b in awarded])

    return awarded
