"""Event publisher tests — Redis encoding and best-effort delivery."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from lms_gamification.gamification.events import (
    BADGE_EARNED_CHANNEL,
    LEVEL_UP_CHANNEL,
    STREAK_UPDATE_CHANNEL,
    NullEventPublisher,
    RedisEventPublisher,
    emit_badge_earned,
    emit_level_up,
    emit_streak_update,
    user_channel,
)


pytestmark = pytest.mark.asyncio


async def test_redis_publisher_json_encodes():
    redis = MagicMock()
    redis.publish = AsyncMock()
    publisher = RedisEventPublisher(redis)

    await publisher.publish("chan", {"user_id": 1, "level": 3})

    redis.publish.assert_awaited_once()
    channel, body = redis.publish.await_args.args
    assert channel == "chan"
    assert json.loads(body) == {"user_id": 1, "level": 3}


async def test_level_up_goes_to_broadcast_and_user_channel():
    redis = MagicMock()
    redis.publish = AsyncMock()

    await emit_level_up(RedisEventPublisher(redis), 7, 2, 4)

    channels = [call.args[0] for call in redis.publish.await_args_list]
    assert channels == [LEVEL_UP_CHANNEL, user_channel(7)]
    payload = json.loads(redis.publish.await_args_list[0].args[1])
    assert payload == {"user_id": 7, "old_level": 2, "new_level": 4}


async def test_badge_earned_payload():
    redis = MagicMock()
    redis.publish = AsyncMock()

    await emit_badge_earned(RedisEventPublisher(redis), 7, 3, "first_course", "First Course", "common", 50)

    channel, body = redis.publish.await_args_list[0].args
    assert channel == BADGE_EARNED_CHANNEL
    assert json.loads(body)["badge_slug"] == "first_course"


async def test_publish_failure_is_swallowed():
    redis = MagicMock()
    redis.publish = AsyncMock(side_effect=ConnectionError("redis down"))

    # Must not raise
    await emit_streak_update(RedisEventPublisher(redis), 7, "streak_extended", 4, 30)
    assert redis.publish.await_args.args[0] == STREAK_UPDATE_CHANNEL


async def test_null_publisher_accepts_events():
    await NullEventPublisher().publish("any", {"x": 1})
