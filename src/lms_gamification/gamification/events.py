"""Gamification event publishing.

Components never reach for a global socket/pub-sub handle; the service is
handed an :class:`EventPublisher` and passes events through it. Publishing is
best-effort: failures are logged and never reach the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "gamification:level_up"
BADGE_EARNED_CHANNEL = "gamification:badge_earned"
STREAK_UPDATE_CHANNEL = "gamification:streak_update"


def user_channel(user_id: int) -> str:
    """Per-user channel routed to the user's live connections."""
    return f"ws:user:{user_id}"


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class NullEventPublisher:
    """Publisher that drops every event (no real-time delivery configured)."""

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        return None


class RedisEventPublisher:
    """JSON-encodes events onto Redis pub/sub channels."""

    def __init__(self, redis: Any) -> None:
        self.redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        await self.redis.publish(channel, json.dumps(payload, default=str))


async def _safe_publish(publisher: EventPublisher, channel: str, payload: dict[str, Any]) -> None:
    try:
        await publisher.publish(channel, payload)
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)


async def emit_level_up(publisher: EventPublisher, user_id: int, old_level: int, new_level: int) -> None:
    """Broadcast a level-up and push it to the user's channel."""
    payload = {"user_id": user_id, "old_level": old_level, "new_level": new_level}
    await _safe_publish(publisher, LEVEL_UP_CHANNEL, payload)
    await _safe_publish(publisher, user_channel(user_id), {"event": "level_up", "data": payload})


async def emit_badge_earned(
    publisher: EventPublisher,
    user_id: int,
    badge_id: int,
    slug: str,
    name: str,
    rarity: str,
    points: int,
) -> None:
    """Broadcast a badge award and push it to the user's channel."""
    payload = {
        "user_id": user_id,
        "badge_id": badge_id,
        "badge_slug": slug,
        "badge_name": name,
        "rarity": rarity,
        "points": points,
    }
    await _safe_publish(publisher, BADGE_EARNED_CHANNEL, payload)
    await _safe_publish(publisher, user_channel(user_id), {"event": "badge_earned", "data": payload})


async def emit_streak_update(
    publisher: EventPublisher, user_id: int, event: str, streak: int, points: int
) -> None:
    """Publish a streak change (``streak_extended``, ``streak_started`` or ``streak_reset``)."""
    await _safe_publish(
        publisher,
        STREAK_UPDATE_CHANNEL,
        {"user_id": user_id, "event": event, "streak_length": streak, "points": points},
    )
