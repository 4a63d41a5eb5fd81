"""Declarative badge award rules.

A badge's ``criteria`` column holds one rule, tagged by ``kind``:

``{"kind": "event_equals", "reasons": ["course_completed"]}``
    the triggering reason is one of ``reasons``.
``{"kind": "counter_threshold", "reason": "quiz_passed", "counter": "quiz_count", "threshold": 10}``
    the event metadata carries ``counter >= threshold`` (and, if ``reason`` is
    set, the triggering reason matches). Optional ``aliases`` name other
    metadata keys read when ``counter`` is absent.
``{"kind": "level_threshold", "level": 10}``
    the user's current level is at least ``level``.
``{"kind": "points_threshold", "points": 1000}``
    the user's lifetime points are at least ``points``.

Rules that fail to parse, including unknown kinds, never match.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class EventEquals(BaseModel):
    kind: Literal["event_equals"]
    reasons: list[str] = Field(min_length=1)


class CounterThreshold(BaseModel):
    kind: Literal["counter_threshold"]
    counter: str
    threshold: int
    reason: str | None = None
    aliases: list[str] = Field(default_factory=list)


class LevelThreshold(BaseModel):
    kind: Literal["level_threshold"]
    level: int = Field(ge=1)


class PointsThreshold(BaseModel):
    kind: Literal["points_threshold"]
    points: int = Field(ge=0)


BadgeCriterion = Annotated[
    Union[EventEquals, CounterThreshold, LevelThreshold, PointsThreshold],
    Field(discriminator="kind"),
]

_criterion_adapter: TypeAdapter[BadgeCriterion] = TypeAdapter(BadgeCriterion)


def parse_criterion(raw: Any) -> BadgeCriterion | None:
    """Parse a stored rule, returning None if it is missing or not understood."""
    if not raw:
        return None
    try:
        return _criterion_adapter.validate_python(raw)
    except ValidationError:
        logger.debug("Ignoring unrecognized badge criteria: %r", raw)
        return None


def _counter_value(metadata: dict, keys: list[str]) -> float | None:
    value = next((metadata[key] for key in keys if key in metadata), None)
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def criterion_matches(
    criterion: BadgeCriterion | None,
    reason: str,
    metadata: dict | None,
    current_level: int,
    total_points: int,
) -> bool:
    """Evaluate one rule against the triggering event and the user's current totals."""
    metadata = metadata or {}

    if isinstance(criterion, EventEquals):
        return reason in criterion.reasons

    if isinstance(criterion, CounterThreshold):
        if criterion.reason is not None and reason != criterion.reason:
            return False
        value = _counter_value(metadata, [criterion.counter, *criterion.aliases])
        return value is not None and value >= criterion.threshold

    if isinstance(criterion, LevelThreshold):
        return current_level >= criterion.level

    if isinstance(criterion, PointsThreshold):
        return total_points >= criterion.points

    return False
