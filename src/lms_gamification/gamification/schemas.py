"""Pydantic models returned by the gamification boundary operations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# --- Badges ---


class EarnedBadgeResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str
    icon: str | None = None
    category: str
    rarity: str
    earned_at: datetime


# --- Snapshot ---


class UserGamificationSnapshot(BaseModel):
    user_id: int
    total_points: int
    current_level: int
    current_xp: int
    xp_to_next_level: int
    level_progress: float = 0.0
    login_streak: int = 0
    longest_streak: int = 0
    badges: list[EarnedBadgeResponse] = []


# --- Streak ---


class LoginResult(BaseModel):
    streak: int
    points_awarded: int


# --- Leaderboard ---


class LeaderboardRow(BaseModel):
    user_id: int
    points: int
    rank: int
    level: int = 1


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    cumulative: int
