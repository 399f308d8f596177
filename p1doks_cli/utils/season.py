"""
iRacing calendar arithmetic: race weeks start on Tuesday and seasons have
12 weeks.
"""

from datetime import date, timedelta

from p1doks_cli.models.config import SEASON_REFERENCE_START

WEEKS_PER_SEASON = 12

# Approximate (month, day) season starts; they shift slightly every year
SEASON_STARTS = ((1, 1, 7), (2, 4, 1), (3, 7, 1), (4, 9, 10))


def most_recent_tuesday(today: date) -> date:
    """Returns today if it is a Tuesday, otherwise the Tuesday before."""
    days_since_tuesday = (today.weekday() - 1) % 7
    return today - timedelta(days=days_since_tuesday)


def current_week(
    today: date | None = None,
    reference_start: date = SEASON_REFERENCE_START,
    weeks_per_season: int = WEEKS_PER_SEASON,
) -> int:
    """Returns the race week (1-based) that today falls in."""
    today = today or date.today()
    elapsed_days = (most_recent_tuesday(today) - reference_start).days
    return (elapsed_days // 7) % weeks_per_season + 1


def current_season(today: date | None = None) -> int:
    """Returns the season (1-4) whose start date has most recently passed."""
    today = today or date.today()
    for season, month, day in reversed(SEASON_STARTS):
        if today >= date(today.year, month, day):
            return season
    return SEASON_STARTS[-1][0]


def next_week(week: int, weeks_per_season: int = WEEKS_PER_SEASON) -> int:
    return 1 if week >= weeks_per_season else week + 1
