"""Process lifecycle for the gamification core.

The host web service (or the activity worker) enters
:func:`gamification_lifespan` once at startup and uses the yielded
:class:`GamificationService` for every request.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from lms_gamification.config import Settings, get_settings
from lms_gamification.database import close_db, get_session_factory, init_db
from lms_gamification.gamification.events import EventPublisher, NullEventPublisher, RedisEventPublisher
from lms_gamification.gamification.seed import seed_badges
from lms_gamification.gamification.service import GamificationService
from lms_gamification.logging_config import setup_logging
from lms_gamification.redis_client import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def gamification_lifespan(
    settings: Settings | None = None,
    use_redis: bool = True,
) -> AsyncIterator[GamificationService]:
    """Startup and shutdown lifecycle; yields a ready service."""
    settings = settings or get_settings()
    setup_logging(settings)

    await init_db(settings.database_url)

    publisher: EventPublisher = NullEventPublisher()
    if use_redis:
        redis = await init_redis(settings.redis_url)
        publisher = RedisEventPublisher(redis)

    session_factory = get_session_factory()

    # Seed badge definitions (idempotent)
    try:
        async with session_factory() as db:
            await seed_badges(db)
    except Exception:
        logger.warning("badge_seeding_failed", exc_info=True)

    logger.info("gamification_started", environment=settings.environment, version=settings.app_version)
    try:
        yield GamificationService(session_factory, publisher=publisher, settings=settings)
    finally:
        if use_redis:
            await close_redis()
        await close_db()
        logger.info("gamification_stopped")
