"""Standalone runner for the learning-activity consumer.

Reads platform events from Redis Streams and turns them into point awards
and login-streak updates.

Usage: python -m lms_gamification.workers.activity_runner
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from typing import Any

import redis.asyncio as aioredis

from lms_gamification.app import gamification_lifespan
from lms_gamification.config import get_settings
from lms_gamification.gamification.service import GamificationService
from lms_gamification.redis_client import get_redis

logger = logging.getLogger(__name__)

CONSUMER_GROUP = "gamification-consumers"

ACTIVITY_STREAM = "learning:activity"
LOGIN_STREAM = "auth:login"

STREAMS = [ACTIVITY_STREAM, LOGIN_STREAM]


class MalformedEventError(ValueError):
    """Event payload cannot be interpreted; it is acknowledged and dropped."""


def decode_event(raw_data: dict[str, Any]) -> dict[str, Any]:
    """Unwrap the JSON ``data`` field if present, else use the flat fields."""
    data_str = raw_data.get("data")
    if isinstance(data_str, str):
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(f"Invalid JSON payload: {data_str[:100]!r}") from exc
        if not isinstance(data, dict):
            raise MalformedEventError("Payload is not an object")
        return data
    return dict(raw_data)


def _user_id(data: dict[str, Any]) -> int:
    try:
        return int(data["user_id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedEventError(f"Missing or invalid user_id: {data.get('user_id')!r}") from exc


class ActivityConsumer:
    """Maps activity and login events onto GamificationService calls."""

    def __init__(self, service: GamificationService, redis: Any, consumer_name: str) -> None:
        self.service = service
        self.redis = redis
        self.consumer_name = consumer_name
        self.running = True

    async def handle_message(self, stream: str, raw_data: dict[str, Any]) -> str:
        """Process one event. Returns what was done: ``login``, ``award``, ``activity``."""
        data = decode_event(raw_data)
        user_id = _user_id(data)

        if stream == LOGIN_STREAM:
            result = await self.service.record_login(user_id)
            logger.info("Login recorded for user %s: streak=%d points=%d",
                        user_id, result.streak, result.points_awarded)
            return "login"

        if stream != ACTIVITY_STREAM:
            raise MalformedEventError(f"Unexpected stream: {stream}")

        reason = data.get("reason")
        if not reason:
            raise MalformedEventError("Activity event has no reason")
        metadata = data.get("metadata") or {}

        if "points" in data or "xp" in data:
            try:
                points = int(data.get("points", 0))
                xp = int(data.get("xp", points))
            except (TypeError, ValueError) as exc:
                raise MalformedEventError("Invalid points/xp") from exc
            if points < 0 or xp < 0:
                raise MalformedEventError("Negative points/xp")
            await self.service.award_points(user_id, points, xp, reason, metadata)
            return "award"

        try:
            await self.service.award_activity(user_id, reason, metadata)
        except ValueError as exc:
            raise MalformedEventError(str(exc)) from exc
        return "activity"

    async def ensure_groups(self) -> None:
        """Create consumer groups (idempotent)."""
        for stream in STREAMS:
            try:
                await self.redis.xgroup_create(stream, CONSUMER_GROUP, id="0", mkstream=True)
                logger.info("Created consumer group %s for %s", CONSUMER_GROUP, stream)
            except aioredis.ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    async def process_batch(self, events: list) -> int:
        """Handle one XREADGROUP result. Returns the number of messages acknowledged."""
        acked = 0
        for stream_name, messages in events:
            stream = stream_name if isinstance(stream_name, str) else stream_name.decode()

            for msg_id, raw_data in messages:
                try:
                    await self.handle_message(stream, raw_data)
                except MalformedEventError as exc:
                    logger.warning("Dropping malformed event %s from %s: %s", msg_id, stream, exc)
                except Exception:
                    # Left pending for redelivery
                    logger.exception("Failed to process %s from %s", msg_id, stream)
                    continue

                await self.redis.xack(stream, CONSUMER_GROUP, msg_id)
                acked += 1
        return acked

    async def consume(self, batch_size: int, block_ms: int) -> None:
        """Main consumer loop."""
        streams = {s: ">" for s in STREAMS}

        while self.running:
            try:
                events = await self.redis.xreadgroup(
                    groupname=CONSUMER_GROUP,
                    consumername=self.consumer_name,
                    streams=streams,
                    count=batch_size,
                    block=block_ms,
                )
            except aioredis.ResponseError as e:
                logger.error("XREADGROUP error: %s", e)
                await asyncio.sleep(1)
                continue

            if events:
                await self.process_batch(events)

    def stop(self) -> None:
        self.running = False


async def main() -> None:
    """Run the activity consumer until SIGINT/SIGTERM."""
    settings = get_settings()

    async with gamification_lifespan(settings) as service:
        consumer = ActivityConsumer(service, get_redis(), settings.activity_stream_consumer_name)
        await consumer.ensure_groups()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, consumer.stop)

        logger.info("Starting activity consumer (consumer=%s)", consumer.consumer_name)
        await consumer.consume(settings.activity_stream_batch_size, settings.activity_stream_block_ms)
        logger.info("Activity consumer stopped")


if __name__ == "__main__":
    asyncio.run(main())
