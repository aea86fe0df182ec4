"""Tests for the hiring-pattern catalog and holiday arithmetic."""

from __future__ import annotations

from datetime import date

import pytest

from cadence.services.patterns import (
    INDUSTRY_PATTERNS,
    black_friday,
    days_until_quarter_end,
    get_company_size_pattern,
    get_industry_pattern,
    hiring_season,
    holiday_name,
    is_holiday,
    labor_day,
    memorial_day,
    thanksgiving,
)


def test_unknown_industry_falls_back_to_default():
    assert get_industry_pattern("Aerospace") is INDUSTRY_PATTERNS["default"]
    assert get_industry_pattern(None) is INDUSTRY_PATTERNS["default"]


def test_finance_pattern_values():
    finance = get_industry_pattern("Finance")
    assert finance.best_days == ("Tuesday", "Wednesday", "Thursday")
    assert finance.avoid_days == ("Monday", "Friday", "Sunday")
    assert finance.best_hours[0] == 8


def test_company_size_fallback_and_values():
    assert get_company_size_pattern("51-200").response_time_hours == 120
    assert get_company_size_pattern("huge") == get_company_size_pattern("default")


def test_catalog_is_read_only():
    with pytest.raises(TypeError):
        INDUSTRY_PATTERNS["Finance"] = INDUSTRY_PATTERNS["default"]  # type: ignore[index]


@pytest.mark.parametrize(
    ("year", "expected"),
    [(2024, date(2024, 11, 28)), (2025, date(2025, 11, 27)), (2030, date(2030, 11, 28))],
)
def test_thanksgiving_is_fourth_thursday(year, expected):
    assert thanksgiving(year) == expected
    assert thanksgiving(year).weekday() == 3


def test_floating_holidays_2025():
    assert black_friday(2025) == date(2025, 11, 28)
    assert memorial_day(2025) == date(2025, 5, 26)
    assert labor_day(2025) == date(2025, 9, 1)


def test_memorial_day_when_month_ends_on_monday():
    # 31 May 2027 is a Monday
    assert memorial_day(2027) == date(2027, 5, 31)


def test_holiday_names():
    assert holiday_name(date(2025, 12, 25)) == "Christmas"
    assert holiday_name(date(2025, 11, 27)) == "Thanksgiving"
    assert holiday_name(date(2025, 9, 1)) == "Labor Day"
    assert holiday_name(date(2025, 11, 20)) is None
    assert is_holiday(date(2026, 1, 1))
    assert not is_holiday(date(2026, 1, 2))


def test_quarter_end_window():
    months = (3, 6, 9, 12)
    # 31 - 17 = 14 days left: outside the final 14 days
    assert days_until_quarter_end(date(2025, 12, 17), months) is None
    assert days_until_quarter_end(date(2025, 12, 18), months) == 13
    assert days_until_quarter_end(date(2025, 12, 31), months) == 0
    assert days_until_quarter_end(date(2025, 11, 28), months) is None
    assert days_until_quarter_end(date(2025, 12, 28), ()) is None


def test_hiring_season():
    assert hiring_season("Retail", 9) == "high"
    assert hiring_season("Retail", 1) == "low"
    assert hiring_season("Retail", 5) == "normal"
