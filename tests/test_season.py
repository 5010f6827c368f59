"""Unit tests for season length, nightly pool, difficulty and the season service"""
from datetime import date, timedelta

import pytest

from sleeper_rewards.economy.season import difficulty_by_week, nightly_pool, season_weeks, week_index_for
from sleeper_rewards.errors import ValidationError
from sleeper_rewards.models.db import SeasonState
from sleeper_rewards.services.season import ACTIVE, COMPLETED, PAUSED, SeasonService

START = date(2026, 3, 1)


class TestSeasonWeeks:

    @pytest.mark.parametrize("count,weeks", [
        (0, 16),
        (500, 16),
        (1_000, 16),
        (1_001, 15),
        (3_000, 15),
        (10_000, 14),
        (25_000, 12),
        (50_000, 10),
        (50_001, 8),
        (100_000, 8),
    ])
    def test_threshold_steps(self, count, weeks):
        assert season_weeks(count) == weeks

    def test_never_below_one_week(self):
        assert season_weeks(10 ** 9) >= 1


class TestNightlyPool:

    def test_pool_floor_division(self):
        assert nightly_pool(500) == 5_000_000 // (16 * 7)
        assert nightly_pool(100_000) == 5_000_000 // (8 * 7)

    def test_custom_season_pool(self):
        assert nightly_pool(10, season_pool=1_120) == 10


class TestDifficulty:

    def test_first_and_last_week(self):
        assert difficulty_by_week(1, 16) == 1.0
        assert difficulty_by_week(16, 16) == pytest.approx(0.2)

    def test_linear_midpoint(self):
        assert difficulty_by_week(6, 11) == pytest.approx(0.6)

    def test_beyond_season_stays_at_floor(self):
        assert difficulty_by_week(40, 16) == pytest.approx(0.2)

    def test_single_week_season(self):
        assert difficulty_by_week(1, 1) == 1.0

    def test_bounds_for_all_weeks(self):
        for max_weeks in (1, 8, 10, 12, 14, 15, 16):
            for week in range(1, 30):
                value = difficulty_by_week(week, max_weeks)
                assert 0.2 <= value <= 1.0


class TestWeekIndex:

    def test_week_boundaries(self):
        assert week_index_for(START, START) == 1
        assert week_index_for(START, START + timedelta(days=6)) == 1
        assert week_index_for(START, START + timedelta(days=7)) == 2

    def test_day_before_start_is_week_one(self):
        assert week_index_for(START, START - timedelta(days=3)) == 1


class TestSeasonService:

    def test_first_use_starts_season_one(self, database, settings):
        service = SeasonService(database, settings)
        season = service.ensure_active(START)
        assert season.season_number == 1
        assert season.total_weeks == 16
        assert season.status == ACTIVE

        # Second call reuses the running season
        assert service.ensure_active(START + timedelta(days=3)).season_number == 1

    def test_record_distribution_accumulates(self, database, settings):
        with database.session() as session:
            season = SeasonService.get_or_start_active(session, START)
            SeasonService.record_distribution(session, season, START, 1_000.0, 44_000, 10)
            SeasonService.record_distribution(session, season, START + timedelta(days=8), 500.0, 22_000, 12)

        with database.session() as session:
            season = session.get(SeasonState, 1)
            assert season.total_points == 1_500.0
            assert season.total_tokens_distributed == 66_000
            assert season.total_nights_processed == 2
            assert season.active_devices == 12
            assert season.current_week == 2
            assert season.status == ACTIVE

    def test_last_night_completes_season(self, database, settings):
        last_night = START + timedelta(days=16 * 7 - 1)
        with database.session() as session:
            season = SeasonService.get_or_start_active(session, START)
            SeasonService.record_distribution(session, season, last_night, 10.0, 100, 1)

        with database.session() as session:
            season = session.get(SeasonState, 1)
            assert season.status == COMPLETED
            assert season.end_date == last_night
            assert season.current_week == 16

        # Next use starts season two
        service = SeasonService(database, settings)
        assert service.ensure_active(last_night + timedelta(days=1)).season_number == 2

    def test_pause_and_resume(self, database, settings):
        service = SeasonService(database, settings)
        service.ensure_active(START)

        assert service.pause(1).status == PAUSED
        with pytest.raises(ValidationError):
            service.pause(1)
        assert service.resume(1).status == ACTIVE

    def test_unknown_season_status_change(self, database, settings):
        with pytest.raises(ValidationError):
            SeasonService(database, settings).pause(42)

    def test_season_info(self, database, settings):
        service = SeasonService(database, settings)
        assert service.season_info(START) is None

        service.ensure_active(START)
        info = service.season_info(START + timedelta(days=14))
        assert info.current_week == 3
        assert info.weeks_remaining == 13
        assert info.nights_remaining == 91
        assert info.pool_per_night == nightly_pool(0)
