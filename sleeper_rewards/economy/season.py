"""Season length, nightly pool and difficulty curve"""
from datetime import date

from sleeper_rewards.config import DEFAULT_ECONOMY

# (max participants, season weeks); above the last threshold the season lasts FLOOR_WEEKS
SEASON_THRESHOLDS = [
    (1_000, 16),
    (5_000, 15),
    (10_000, 14),
    (25_000, 12),
    (50_000, 10),
]
FLOOR_WEEKS = 8

MIN_DIFFICULTY = 0.2
MAX_DIFFICULTY = 1.0


def season_weeks(active_count: int) -> int:
    """Season length in weeks; more participants means a shorter season"""
    for limit, weeks in SEASON_THRESHOLDS:
        if active_count <= limit:
            return weeks
    return FLOOR_WEEKS


def nightly_pool(active_count: int, season_pool: int = DEFAULT_ECONOMY.season_pool) -> int:
    """Tokens available for one night of the season"""
    nights = season_weeks(active_count) * 7
    return season_pool // nights


def difficulty_by_week(week_index: int, max_weeks: int) -> float:
    """Linear decay from 1.0 in week 1 to 0.2 in the final week, flat afterwards"""
    week = min(week_index, max_weeks)
    progress = (week - 1) / max(max_weeks - 1, 1)
    difficulty = MAX_DIFFICULTY - progress * (MAX_DIFFICULTY - MIN_DIFFICULTY)
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, difficulty))


def week_index_for(start_date: date, day: date) -> int:
    """1-based week of the season that a calendar day falls in"""
    days = (day - start_date).days
    return max(1, days // 7 + 1)
