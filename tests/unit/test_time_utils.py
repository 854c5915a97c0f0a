"""Test clock-face and timezone helpers."""

from datetime import date, datetime, timezone

import pytest

from app.utils.time import (
    as_utc,
    combine_local,
    current_minutes_in_timezone,
    date_range,
    get_zone,
    is_valid_time,
    local_day_bounds,
    minutes_of_day,
    minutes_to_time,
    parse_date,
    time_to_minutes,
    today_in_timezone,
    weekday_sunday_first,
)


class TestClockFace:
    """Test HH:MM conversion."""

    @pytest.mark.parametrize(
        "value,minutes",
        [("00:00", 0), ("09:00", 540), ("12:30", 750), ("23:59", 1439)],
    )
    def test_time_to_minutes(self, value, minutes):
        assert time_to_minutes(value) == minutes

    def test_round_trip_over_whole_day(self):
        for minutes in range(0, 1440):
            assert time_to_minutes(minutes_to_time(minutes)) == minutes

    def test_midnight_end_renders_as_24_00(self):
        assert minutes_to_time(1440) == "24:00"

    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "noon", "", None])
    def test_invalid_time_rejected(self, value):
        with pytest.raises(ValueError):
            time_to_minutes(value)
        assert not is_valid_time(value)

    @pytest.mark.parametrize("minutes", [-1, 1441])
    def test_minutes_out_of_range(self, minutes):
        with pytest.raises(ValueError):
            minutes_to_time(minutes)


class TestTimezones:
    """Test business-timezone arithmetic."""

    def test_invalid_zone(self):
        with pytest.raises(ValueError, match="Invalid timezone"):
            get_zone("Mars/Olympus_Mons")

    def test_naive_values_are_treated_as_utc(self):
        naive = datetime(2024, 1, 15, 10, 0)
        assert as_utc(naive) == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_today_follows_business_timezone(self):
        # 23:30 UTC is already the next day in Tokyo
        now = datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)
        assert today_in_timezone("UTC", now) == date(2024, 1, 15)
        assert today_in_timezone("Asia/Tokyo", now) == date(2024, 1, 16)

    def test_current_minutes_in_summer_time(self):
        now = datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)
        assert current_minutes_in_timezone("Europe/London", now) == 600

    def test_combine_local_returns_utc_instant(self):
        instant = combine_local(date(2024, 7, 1), "10:00", "Europe/London")
        assert instant == datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)
        assert minutes_of_day(instant, "Europe/London") == 600

    def test_local_day_bounds_on_dst_change(self):
        # Clocks go forward on 2024-03-31, so the day is 23 hours long
        start, end = local_day_bounds(date(2024, 3, 31), "Europe/London")
        assert (end - start).total_seconds() == 23 * 3600


class TestCalendar:
    """Test calendar helpers."""

    def test_weekday_sunday_first(self):
        assert weekday_sunday_first(date(2024, 1, 14)) == 0  # Sunday
        assert weekday_sunday_first(date(2024, 1, 15)) == 1  # Monday
        assert weekday_sunday_first(date(2024, 1, 20)) == 6  # Saturday

    def test_date_range_is_inclusive(self):
        days = date_range(date(2024, 1, 30), date(2024, 2, 2))
        assert days == [
            date(2024, 1, 30),
            date(2024, 1, 31),
            date(2024, 2, 1),
            date(2024, 2, 2),
        ]

    def test_parse_date(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        with pytest.raises(ValueError):
            parse_date("2023-02-29")
