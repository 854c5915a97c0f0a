"""Test recurrence pattern validation and expansion."""

from datetime import date

import pytest
from pydantic import ValidationError

from app.schemas.multi_day import ConsecutivePattern, CustomPattern, WeeklyPattern
from app.services.multi_day import expand_pattern_dates, pattern_adapter, series_end_time

TUESDAY = date(2024, 1, 16)


class TestPatternValidation:
    def test_discriminated_by_type(self):
        pattern = pattern_adapter.validate_python({"type": "weekly", "weekdays": [3, 1]})
        assert isinstance(pattern, WeeklyPattern)
        assert pattern.weekdays == [1, 3]
        assert pattern.weeks == 1

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            pattern_adapter.validate_python({"type": "monthly"})

    @pytest.mark.parametrize("days", [1, 15])
    def test_consecutive_bounds(self, days):
        with pytest.raises(ValidationError):
            ConsecutivePattern(days=days)

    def test_weekday_range(self):
        with pytest.raises(ValidationError):
            WeeklyPattern(weekdays=[7])

    def test_weeks_bounds(self):
        with pytest.raises(ValidationError):
            WeeklyPattern(weekdays=[1], weeks=13)

    def test_custom_needs_dates(self):
        with pytest.raises(ValidationError):
            CustomPattern(dates=[])


class TestExpandPatternDates:
    """Test turning patterns into concrete dates."""

    def test_consecutive(self):
        dates = expand_pattern_dates(TUESDAY, ConsecutivePattern(days=3))
        assert dates == [date(2024, 1, 16), date(2024, 1, 17), date(2024, 1, 18)]

    def test_weekly_skips_days_before_start(self):
        # Monday and Wednesday for two weeks, starting on a Tuesday
        dates = expand_pattern_dates(TUESDAY, WeeklyPattern(weekdays=[1, 3], weeks=2))
        assert dates == [date(2024, 1, 17), date(2024, 1, 22), date(2024, 1, 24)]

    def test_weekly_from_sunday(self):
        dates = expand_pattern_dates(
            date(2024, 1, 14), WeeklyPattern(weekdays=[0, 6], weeks=1)
        )
        assert dates == [date(2024, 1, 14), date(2024, 1, 20)]

    def test_weekly_can_be_empty(self):
        # Only Sunday, but the single week's Sunday is before the start
        assert expand_pattern_dates(TUESDAY, WeeklyPattern(weekdays=[0], weeks=1)) == []

    def test_custom_dates_sorted_and_distinct(self):
        pattern = CustomPattern(
            dates=[date(2024, 2, 1), date(2024, 1, 20), date(2024, 2, 1)]
        )
        assert expand_pattern_dates(TUESDAY, pattern) == [
            date(2024, 1, 20),
            date(2024, 2, 1),
        ]

    def test_series_end_time(self):
        assert series_end_time("10:00", 90) == "11:30"
        assert series_end_time("23:30", 60) == "24:00"
