"""Settings and logging configuration."""

import logging

import structlog

from lms_gamification.config import Settings
from lms_gamification.logging_config import award_log_context, setup_logging


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.level_base_xp == 100
        assert settings.level_growth == 1.5
        assert settings.daily_login_points == 10
        assert settings.streak_bonus_per_day == 5
        assert settings.award_max_retries == 3

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LMSG_DAILY_LOGIN_POINTS", "15")
        monkeypatch.setenv("LMSG_LEADERBOARD_MAX_LIMIT", "50")
        settings = Settings(_env_file=None)
        assert settings.daily_login_points == 15
        assert settings.leaderboard_max_limit == 50


class TestLogging:

    def test_setup_sets_root_level(self):
        setup_logging(Settings(_env_file=None, log_level="warning", log_format="console"))
        assert logging.getLogger().level == logging.WARNING

    def test_award_context_is_scoped(self):
        with award_log_context(7, "quiz_passed"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["user_id"] == 7
            assert bound["reason"] == "quiz_passed"
        assert "user_id" not in structlog.contextvars.get_contextvars()
