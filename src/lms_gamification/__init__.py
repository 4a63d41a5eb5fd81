"""Gamification core for the learning platform: points, levels, streaks, badges, leaderboards."""

__version__ = "0.1.0"
