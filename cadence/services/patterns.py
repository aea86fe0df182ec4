"""Static hiring-pattern reference data and US holiday arithmetic."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from types import MappingProxyType
from typing import Final, Literal, Mapping, Optional

DEFAULT_KEY: Final[str] = "default"
QUARTER_END_WINDOW_DAYS: Final[int] = 14

HiringSeason = Literal["high", "low", "normal"]


@dataclass(frozen=True, slots=True)
class IndustryPattern:
    """Hiring-cycle preferences for one industry."""

    best_days: tuple[str, ...]
    best_hours: tuple[int, ...]
    avoid_days: tuple[str, ...]
    quarter_end_months: tuple[int, ...]
    high_season: tuple[int, ...]
    low_season: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CompanySizePattern:
    response_time_hours: int
    preferred_times: tuple[int, ...]


_QUARTER_ENDS = (3, 6, 9, 12)

INDUSTRY_PATTERNS: Final[Mapping[str, IndustryPattern]] = MappingProxyType(
    {
        "Technology": IndustryPattern(
            best_days=("Tuesday", "Wednesday", "Thursday"),
            best_hours=(10, 11, 14, 15, 9),
            avoid_days=("Friday", "Sunday"),
            quarter_end_months=_QUARTER_ENDS,
            high_season=(1, 2, 9, 10),
            low_season=(7, 8, 12),
        ),
        "Finance": IndustryPattern(
            best_days=("Tuesday", "Wednesday", "Thursday"),
            best_hours=(8, 9, 10, 14),
            avoid_days=("Monday", "Friday", "Sunday"),
            quarter_end_months=_QUARTER_ENDS,
            high_season=(1, 2, 9),
            low_season=(7, 12),
        ),
        "Consulting": IndustryPattern(
            best_days=("Monday", "Tuesday", "Wednesday"),
            best_hours=(11, 14, 10, 15),
            avoid_days=("Friday", "Sunday"),
            quarter_end_months=_QUARTER_ENDS,
            high_season=(1, 2, 9),
            low_season=(7, 12),
        ),
        "Healthcare": IndustryPattern(
            best_days=("Tuesday", "Wednesday", "Thursday"),
            best_hours=(9, 10, 11, 13, 14),
            avoid_days=("Sunday",),
            quarter_end_months=(),
            high_season=(1, 2, 3, 9, 10),
            low_season=(12,),
        ),
        "Retail": IndustryPattern(
            best_days=("Monday", "Tuesday", "Wednesday"),
            best_hours=(14, 15, 10, 11),
            avoid_days=("Saturday", "Sunday"),
            quarter_end_months=(),
            high_season=(8, 9, 10),
            low_season=(1, 2),
        ),
        "Education": IndustryPattern(
            best_days=("Tuesday", "Wednesday", "Thursday"),
            best_hours=(9, 10, 11, 13),
            avoid_days=("Friday", "Saturday", "Sunday"),
            quarter_end_months=(),
            high_season=(3, 4, 5, 6, 7),
            low_season=(11, 12),
        ),
        DEFAULT_KEY: IndustryPattern(
            best_days=("Tuesday", "Wednesday", "Thursday"),
            best_hours=(9, 10, 11, 14, 15),
            avoid_days=("Sunday",),
            quarter_end_months=_QUARTER_ENDS,
            high_season=(1, 2, 9, 10),
            low_season=(7, 12),
        ),
    }
)

COMPANY_SIZE_PATTERNS: Final[Mapping[str, CompanySizePattern]] = MappingProxyType(
    {
        "1-10": CompanySizePattern(48, (10, 11, 14, 15, 16)),
        "11-50": CompanySizePattern(72, (9, 10, 11, 14, 15)),
        "51-200": CompanySizePattern(120, (9, 10, 11, 14)),
        "201-500": CompanySizePattern(168, (9, 10, 11)),
        "501-1000": CompanySizePattern(240, (9, 10, 14)),
        "1001-5000": CompanySizePattern(336, (9, 10)),
        "5001-10000": CompanySizePattern(480, (9, 10)),
        "10000+": CompanySizePattern(480, (9, 10)),
        DEFAULT_KEY: CompanySizePattern(168, (9, 10, 11, 14, 15)),
    }
)

# (month, day) -> name
FIXED_HOLIDAYS: Final[Mapping[tuple[int, int], str]] = MappingProxyType(
    {
        (1, 1): "New Year's Day",
        (7, 4): "Independence Day",
        (11, 11): "Veterans Day",
        (12, 25): "Christmas",
        (12, 31): "New Year's Eve",
    }
)

_MONDAY, _THURSDAY = 0, 3


def get_industry_pattern(industry: Optional[str]) -> IndustryPattern:
    """Return the pattern for ``industry``, falling back to ``default``."""
    return INDUSTRY_PATTERNS.get(industry or DEFAULT_KEY, INDUSTRY_PATTERNS[DEFAULT_KEY])


def get_company_size_pattern(company_size: Optional[str]) -> CompanySizePattern:
    """Return the pattern for a company-size bucket, falling back to ``default``."""
    return COMPANY_SIZE_PATTERNS.get(company_size or DEFAULT_KEY, COMPANY_SIZE_PATTERNS[DEFAULT_KEY])


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> date:
    """Return the ``n``-th (1-based) ``weekday`` (Monday=0) of a month."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    last = date(year, month, calendar.monthrange(year, month)[1])
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def thanksgiving(year: int) -> date:
    return nth_weekday_of_month(year, 11, _THURSDAY, 4)


def black_friday(year: int) -> date:
    return thanksgiving(year) + timedelta(days=1)


def memorial_day(year: int) -> date:
    return last_weekday_of_month(year, 5, _MONDAY)


def labor_day(year: int) -> date:
    return nth_weekday_of_month(year, 9, _MONDAY, 1)


def holiday_name(day: date) -> Optional[str]:
    """Return the US holiday falling on ``day``, if any."""
    fixed = FIXED_HOLIDAYS.get((day.month, day.day))
    if fixed:
        return fixed
    if day.month == 11:
        if day == thanksgiving(day.year):
            return "Thanksgiving"
        if day == black_friday(day.year):
            return "Black Friday"
    if day.month == 5 and day == memorial_day(day.year):
        return "Memorial Day"
    if day.month == 9 and day == labor_day(day.year):
        return "Labor Day"
    return None


def is_holiday(day: date) -> bool:
    return holiday_name(day) is not None


def days_until_quarter_end(day: date, quarter_end_months: tuple[int, ...]) -> Optional[int]:
    """Days left in the month when ``day`` falls in the final 14 days of a quarter-end month."""
    if day.month not in quarter_end_months:
        return None
    remaining = calendar.monthrange(day.year, day.month)[1] - day.day
    if remaining < QUARTER_END_WINDOW_DAYS:
        return remaining
    return None


def hiring_season(industry: Optional[str], month: int) -> HiringSeason:
    pattern = get_industry_pattern(industry)
    if month in pattern.high_season:
        return "high"
    if month in pattern.low_season:
        return "low"
    return "normal"
