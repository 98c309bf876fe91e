"""Unit Tests for the Trading Calendar

Tests:
1. Rule-based holidays (floating Mondays, Good Friday, Thanksgiving)
2. Observed shifts for weekend holidays
3. Juneteenth only from 2022
4. Previous/next trading day arithmetic across weekends and holidays
5. Day keys in the exchange timezone
"""
import pytest
from datetime import date, datetime, timezone

from traderpro.managers.data_manager.trading_calendar import (
    TradingCalendar,
    day_key_from_timestamp,
    easter_sunday,
    is_holiday,
    is_trading_day,
    is_weekend,
    nyse_holidays,
    parse_day_key,
)


class TestHolidayRules:
    """Holiday set per year."""

    def test_easter_sunday(self):
        assert easter_sunday(2024) == date(2024, 3, 31)
        assert easter_sunday(2025) == date(2025, 4, 20)

    def test_good_friday_is_two_days_before_easter(self):
        assert date(2024, 3, 29) in nyse_holidays(2024)
        assert date(2025, 4, 18) in nyse_holidays(2025)

    def test_thanksgiving_is_fourth_thursday(self):
        assert nyse_holidays(2024)[date(2024, 11, 28)] == "Thanksgiving Day"
        assert nyse_holidays(2025)[date(2025, 11, 27)] == "Thanksgiving Day"

    def test_floating_monday_holidays(self):
        holidays = nyse_holidays(2024)
        assert holidays[date(2024, 1, 15)] == "Martin Luther King Jr. Day"
        assert holidays[date(2024, 2, 19)] == "Presidents' Day"
        assert holidays[date(2024, 5, 27)] == "Memorial Day"
        assert holidays[date(2024, 9, 2)] == "Labor Day"

    def test_full_year_count(self):
        assert len(nyse_holidays(2024)) == 10

    def test_saturday_holiday_observed_on_friday(self):
        # July 4th 2026 is a Saturday
        assert is_holiday("2026-07-03")
        assert not is_holiday("2026-07-04")

    def test_sunday_holiday_observed_on_monday(self):
        # Christmas 2022 is a Sunday
        assert is_holiday("2022-12-26")
        assert not is_trading_day("2022-12-26")

    def test_saturday_new_year_not_observed_in_previous_year(self):
        # Jan 1 2022 is a Saturday; Dec 31 2021 stays a trading day
        assert is_trading_day("2021-12-31")
        assert date(2021, 12, 31) not in nyse_holidays(2022)

    def test_juneteenth_only_from_2022(self):
        assert not is_holiday("2021-06-18")
        assert not is_holiday("2021-06-21")
        # June 19 2022 is a Sunday
        assert is_holiday("2022-06-20")
        assert is_holiday("2023-06-19")


class TestDayKeys:
    """Weekend detection and day-key parsing."""

    def test_weekend(self):
        assert is_weekend("2024-07-06")
        assert is_weekend("2024-07-07")
        assert not is_weekend("2024-07-08")

    def test_unparseable_keys(self):
        assert parse_day_key("garbage") is None
        assert parse_day_key(None) is None
        assert not is_trading_day("garbage")
        assert not is_holiday("2024-13-01")

    def test_parse_accepts_timestamps_and_dates(self):
        assert parse_day_key("2024-07-09T13:30:00Z") == date(2024, 7, 9)
        assert parse_day_key(date(2024, 7, 9)) == date(2024, 7, 9)
        assert parse_day_key(datetime(2024, 7, 9, 23, 0)) == date(2024, 7, 9)

    def test_day_key_uses_exchange_timezone(self):
        # 03:00 UTC is still the previous evening in New York
        ms = int(datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc).timestamp() * 1000)
        assert day_key_from_timestamp(ms) == "2024-03-14"
        assert day_key_from_timestamp(ms, "UTC") == "2024-03-15"


class TestTradingCalendar:
    """Trading day arithmetic on the calendar object."""

    def test_previous_trading_day_skips_holiday(self, calendar):
        # July 4th 2024 is a Thursday
        assert calendar.get_previous_trading_day("2024-07-05") == date(2024, 7, 3)

    def test_previous_trading_day_skips_weekend(self, calendar):
        assert calendar.get_previous_trading_day("2024-07-08") == date(2024, 7, 5)
        assert calendar.get_previous_trading_day("2024-07-08", days_back=3) == date(2024, 7, 2)

    def test_next_trading_day_skips_christmas(self, calendar):
        assert calendar.get_next_trading_day("2024-12-24") == date(2024, 12, 26)

    def test_latest_trading_day(self, calendar):
        assert calendar.latest_trading_day("2024-07-09") == date(2024, 7, 9)
        assert calendar.latest_trading_day("2024-07-07") == date(2024, 7, 5)

    def test_trading_days_in_range(self, calendar):
        days = calendar.get_trading_days_in_range("2024-07-01", "2024-07-07")
        assert days == [date(2024, 7, 1), date(2024, 7, 2), date(2024, 7, 3), date(2024, 7, 5)]
        assert calendar.get_trading_days_in_range("2024-07-07", "2024-07-01") == []

    def test_invalid_step_arguments(self, calendar):
        with pytest.raises(ValueError):
            calendar.get_previous_trading_day("2024-07-08", days_back=0)
        with pytest.raises(ValueError):
            calendar.get_next_trading_day("not-a-day")

    def test_special_closure(self, calendar):
        assert calendar.is_trading_day("2025-01-09")
        calendar.add_closure(date(2025, 1, 9))
        assert not calendar.is_trading_day("2025-01-09")
        assert calendar.holidays(2025)[date(2025, 1, 9)] == "Special closure"
