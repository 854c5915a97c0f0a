"""Test the availability engine with hand-built calendars."""

from datetime import date, datetime, timezone

import pytest

from app.models.appointment import Appointment, AppointmentStatus
from app.models.business_hours import BusinessHours
from app.models.special_date import SpecialDate
from app.schemas.scheduling import (
    BookingErrorCode,
    DayClosedReason,
    SlotGenerationConfig,
    SlotReason,
)
from app.services.availability import (
    availability_heatmap,
    evaluate_slot,
    find_next_available_slot,
    find_special_date,
    generate_availability_range,
    generate_day_availability,
    get_booking_window,
    peak_hours,
    resolve_day_hours,
    slots_around_time,
    summarize_availability,
    validate_booking_date,
    validate_date_range,
)

TZ = "Europe/London"

# Monday 2024-01-15 10:00 local (London is on UTC in January)
NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)
WEDNESDAY = date(2024, 1, 17)
SATURDAY = date(2024, 1, 20)
SUNDAY = date(2024, 1, 21)


@pytest.fixture
def weekly_hours():
    """Monday to Friday 09:00-17:00, Saturday closed, no Sunday row."""
    hours = [
        BusinessHours(day_of_week=day, open_time="09:00", close_time="17:00", is_closed=False)
        for day in range(1, 6)
    ]
    hours.append(
        BusinessHours(day_of_week=6, open_time="09:00", close_time="13:00", is_closed=True)
    )
    return hours


@pytest.fixture
def config():
    return SlotGenerationConfig(
        service_duration=60,
        buffer_time=15,
        slot_interval=30,
        advance_booking_days=30,
        same_day_booking=True,
        same_day_lead_time=60,
    )


def appointment_at(day: date, start: str, end: str, appointment_id: int = 1, status=None):
    start_h, start_m = map(int, start.split(":"))
    end_h, end_m = map(int, end.split(":"))
    return Appointment(
        id=appointment_id,
        start_time=datetime(day.year, day.month, day.day, start_h, start_m, tzinfo=timezone.utc),
        end_time=datetime(day.year, day.month, day.day, end_h, end_m, tzinfo=timezone.utc),
        status=(status or AppointmentStatus.CONFIRMED).value,
        customer_name="Jane Doe",
    )


def slot_map(day_availability):
    return {slot.start_time: slot for slot in day_availability.slots}


class TestResolveDayHours:
    """Test weekly hours and special-date resolution."""

    def test_open_weekday(self, weekly_hours):
        day = resolve_day_hours(TUESDAY, weekly_hours, [])
        assert day.is_open
        assert day.day_of_week == 2
        assert day.business_hours.open_time == "09:00"
        assert day.business_hours.close_time == "17:00"

    def test_closed_weekday(self, weekly_hours):
        day = resolve_day_hours(SATURDAY, weekly_hours, [])
        assert not day.is_open
        assert day.reason == DayClosedReason.REGULAR_CLOSED

    def test_missing_weekday(self, weekly_hours):
        day = resolve_day_hours(SUNDAY, weekly_hours, [])
        assert not day.is_open
        assert day.reason == DayClosedReason.NO_HOURS_CONFIGURED

    def test_closed_special_date_beats_weekly_hours(self, weekly_hours):
        special = SpecialDate(date=WEDNESDAY, name="Staff Training", is_closed=True)

        day = resolve_day_hours(WEDNESDAY, weekly_hours, [special])

        assert not day.is_open
        assert day.reason == DayClosedReason.SPECIAL_DATE
        assert day.special_date.name == "Staff Training"

    def test_special_hours_replace_weekly_hours(self, weekly_hours):
        special = SpecialDate(
            date=SATURDAY,
            name="Late Opening",
            is_closed=False,
            open_time="10:00",
            close_time="20:00",
        )

        day = resolve_day_hours(SATURDAY, weekly_hours, [special])

        assert day.is_open
        assert day.business_hours.open_time == "10:00"
        assert day.business_hours.close_time == "20:00"
        assert not day.special_date.is_closed

    def test_recurring_special_date_matches_other_years(self):
        christmas = SpecialDate(
            date=date(2020, 12, 25), name="Christmas", is_closed=True, is_recurring=True
        )
        one_off = SpecialDate(date=date(2020, 12, 24), name="Eve", is_closed=True)

        assert find_special_date(date(2024, 12, 25), [christmas]) is christmas
        assert find_special_date(date(2024, 12, 24), [one_off]) is None

    def test_exact_special_date_wins_over_recurring(self):
        recurring = SpecialDate(
            date=date(2020, 12, 24), name="Eve", is_closed=True, is_recurring=True
        )
        exact = SpecialDate(
            date=date(2024, 12, 24),
            name="Eve Opening",
            is_closed=False,
            open_time="09:00",
            close_time="12:00",
        )

        assert find_special_date(date(2024, 12, 24), [recurring, exact]) is exact


class TestDaySlots:
    """Test slot generation for a single day."""

    def test_clean_day_slot_count(self):
        hours = [BusinessHours(day_of_week=2, open_time="09:00", close_time="17:00", is_closed=False)]
        config = SlotGenerationConfig(service_duration=60, slot_interval=60, buffer_time=0)

        day = generate_day_availability(TUESDAY, hours, [], [], config, TZ, now=NOW)

        assert len(day.slots) == 8
        assert len(day.available_slots) == 8
        assert day.slots[0].start_time == "09:00"
        assert day.slots[-1].end_time == "17:00"

    def test_last_slot_must_fit_before_close(self, weekly_hours, config):
        day = generate_day_availability(TUESDAY, weekly_hours, [], [], config, TZ, now=NOW)

        assert len(day.slots) == 15
        assert day.slots[-1].start_time == "16:00"

    def test_booked_and_buffer_slots(self, weekly_hours, config):
        appointments = [appointment_at(TUESDAY, "10:00", "11:00")]

        day = generate_day_availability(
            TUESDAY, weekly_hours, [], appointments, config, TZ, now=NOW
        )
        slots = slot_map(day)

        assert slots["09:00"].reason == SlotReason.BUFFER
        assert slots["09:30"].reason == SlotReason.BOOKED
        assert slots["10:00"].reason == SlotReason.BOOKED
        assert slots["10:30"].reason == SlotReason.BOOKED
        assert slots["11:00"].reason == SlotReason.BUFFER
        assert slots["11:30"].available
        assert slots["11:30"].reason is None

    def test_cancelled_appointments_do_not_block(self, weekly_hours, config):
        appointments = [
            appointment_at(TUESDAY, "10:00", "11:00", status=AppointmentStatus.CANCELLED)
        ]

        day = generate_day_availability(
            TUESDAY, weekly_hours, [], appointments, config, TZ, now=NOW
        )

        assert all(slot.available for slot in day.slots)

    def test_same_day_lead_time(self, weekly_hours, config):
        day = generate_day_availability(MONDAY, weekly_hours, [], [], config, TZ, now=NOW)
        slots = slot_map(day)

        assert slots["10:30"].reason == SlotReason.PAST
        assert not slots["10:30"].available
        assert slots["11:00"].available
        assert slots["11:30"].available

    def test_same_day_booking_disabled(self, weekly_hours, config):
        config = config.model_copy(update={"same_day_booking": False})

        day = generate_day_availability(MONDAY, weekly_hours, [], [], config, TZ, now=NOW)

        assert all(slot.reason == SlotReason.PAST for slot in day.slots)

    def test_past_day_is_all_past(self, weekly_hours, config):
        day = generate_day_availability(
            date(2024, 1, 12), weekly_hours, [], [], config, TZ, now=NOW
        )

        assert day.is_open
        assert day.slots
        assert not day.available_slots

    def test_closed_day_has_no_slots(self, weekly_hours, config):
        day = generate_day_availability(SATURDAY, weekly_hours, [], [], config, TZ, now=NOW)

        assert not day.is_open
        assert day.slots == []


class TestRangeAndAggregates:
    """Test range generation and summary figures."""

    def test_range_limit(self):
        validate_date_range(date(2024, 1, 1), date(2024, 3, 31))  # 90 days apart
        with pytest.raises(ValueError, match="cannot exceed 90 days"):
            validate_date_range(date(2024, 1, 1), date(2024, 4, 1))

    def test_range_end_before_start(self):
        with pytest.raises(ValueError):
            validate_date_range(TUESDAY, MONDAY)

    def test_range_summary(self, weekly_hours, config):
        appointments = [appointment_at(TUESDAY, "10:00", "11:00")]

        days = generate_availability_range(
            TUESDAY, SUNDAY, weekly_hours, [], appointments, config, TZ, now=NOW
        )
        summary = summarize_availability(days)

        assert [d.date for d in days][0] == TUESDAY
        assert summary.total_days == 6
        assert summary.open_days == 4
        assert summary.closed_days == 2
        assert summary.total_slots == 60
        assert summary.booked_slots == 3
        assert summary.available_slots == 55
        assert summary.percentage_available == 92
        assert summary.overall_utilization == 5
        assert summary.busiest_day == TUESDAY
        assert summary.quietest_day == WEDNESDAY

    def test_heatmap_counts_booked_slots(self, weekly_hours, config):
        appointments = [appointment_at(TUESDAY, "10:00", "11:00")]
        days = generate_availability_range(
            TUESDAY, WEDNESDAY, weekly_hours, [], appointments, config, TZ, now=NOW
        )

        assert availability_heatmap(days) == {TUESDAY: 3, WEDNESDAY: 0}

    def test_peak_hours(self):
        appointments = [
            appointment_at(TUESDAY, "10:00", "11:00", 1),
            appointment_at(WEDNESDAY, "10:30", "11:30", 2),
            appointment_at(TUESDAY, "14:00", "15:00", 3),
            appointment_at(
                TUESDAY, "09:00", "10:00", 4, status=AppointmentStatus.CANCELLED
            ),
        ]

        ranked = peak_hours(appointments, TZ)

        assert [(p.hour, p.count) for p in ranked] == [(10, 2), (14, 1)]
        assert len(peak_hours(appointments, TZ, limit=1)) == 1

    def test_next_available_prefers_time(self, weekly_hours, config):
        days = generate_availability_range(
            SATURDAY, date(2024, 1, 22), weekly_hours, [], [], config, TZ, now=NOW
        )

        assert find_next_available_slot(days).start_time == "09:00"
        nxt = find_next_available_slot(days, preferred_time="14:15")
        assert nxt.date == date(2024, 1, 22)
        assert nxt.start_time == "14:30"

    def test_next_available_falls_back_to_first_slot(self, weekly_hours, config):
        days = generate_availability_range(
            TUESDAY, TUESDAY, weekly_hours, [], [], config, TZ, now=NOW
        )

        assert find_next_available_slot(days, preferred_time="18:00").start_time == "09:00"

    def test_next_available_none(self, weekly_hours, config):
        days = generate_availability_range(
            SATURDAY, SUNDAY, weekly_hours, [], [], config, TZ, now=NOW
        )

        assert find_next_available_slot(days) is None

    def test_slots_around_time(self, weekly_hours, config):
        day = generate_day_availability(TUESDAY, weekly_hours, [], [], config, TZ, now=NOW)

        around = slots_around_time(day, "12:00", range_minutes=60)

        assert [s.start_time for s in around] == ["11:00", "11:30", "12:00", "12:30", "13:00"]

    def test_booking_window(self, config):
        window = get_booking_window(config, TZ, NOW)
        assert window.earliest_date == MONDAY
        assert window.latest_date == date(2024, 2, 14)

        no_same_day = config.model_copy(update={"same_day_booking": False})
        assert get_booking_window(no_same_day, TZ, NOW).earliest_date == TUESDAY


class TestBookingDatePolicy:
    """Test date-level booking policy."""

    def test_past_date(self, config):
        result = validate_booking_date(date(2024, 1, 14), config, TZ, NOW)
        assert result.error_code == BookingErrorCode.PAST_TIME
        assert result.reason == "Cannot book in the past"

    def test_advance_window(self, config):
        assert validate_booking_date(date(2024, 2, 14), config, TZ, NOW) is None
        result = validate_booking_date(date(2024, 2, 15), config, TZ, NOW)
        assert result.error_code == BookingErrorCode.ADVANCE_WINDOW_EXCEEDED

    def test_same_day_disabled(self, config):
        config = config.model_copy(update={"same_day_booking": False})
        result = validate_booking_date(MONDAY, config, TZ, NOW)
        assert result.error_code == BookingErrorCode.PAST_TIME
        assert result.reason == "Same-day booking is not available"


class TestEvaluateSlot:
    """Test targeted slot checks."""

    def _evaluate(self, weekly_hours, config, day, start, appointments=(), special=(), **kwargs):
        return evaluate_slot(
            day,
            start,
            config.service_duration,
            weekly_hours,
            list(special),
            list(appointments),
            config,
            TZ,
            now=NOW,
            **kwargs,
        )

    def test_available(self, weekly_hours, config):
        result = self._evaluate(weekly_hours, config, TUESDAY, "10:00")
        assert result.available
        assert result.end_time == "11:00"
        assert result.error_code is None

    def test_unaligned_start_is_accepted(self, weekly_hours, config):
        assert self._evaluate(weekly_hours, config, TUESDAY, "10:10").available

    def test_closed_day(self, weekly_hours, config):
        result = self._evaluate(weekly_hours, config, SATURDAY, "10:00")
        assert result.error_code == BookingErrorCode.CLOSED_DAY
        assert result.reason == "Business is closed"

        result = self._evaluate(weekly_hours, config, SUNDAY, "10:00")
        assert result.reason == "No business hours configured for this day"

    def test_closed_special_date(self, weekly_hours, config):
        special = SpecialDate(date=WEDNESDAY, name="Staff Training", is_closed=True)
        result = self._evaluate(weekly_hours, config, WEDNESDAY, "10:00", special=[special])
        assert result.error_code == BookingErrorCode.CLOSED_DAY
        assert result.reason == "Closed: Staff Training"

    def test_out_of_hours(self, weekly_hours, config):
        result = self._evaluate(weekly_hours, config, TUESDAY, "16:30")
        assert result.error_code == BookingErrorCode.OUT_OF_HOURS
        assert result.reason == "Outside business hours (09:00 - 17:00)"

        result = self._evaluate(weekly_hours, config, TUESDAY, "08:30")
        assert result.error_code == BookingErrorCode.OUT_OF_HOURS

    def test_same_day_lead_time(self, weekly_hours, config):
        past = self._evaluate(weekly_hours, config, MONDAY, "09:30")
        assert past.error_code == BookingErrorCode.PAST_TIME
        assert past.reason == "Cannot book in the past"

        short_notice = self._evaluate(weekly_hours, config, MONDAY, "10:30")
        assert short_notice.error_code == BookingErrorCode.PAST_TIME
        assert "60 minutes notice" in short_notice.reason

        assert self._evaluate(weekly_hours, config, MONDAY, "11:30").available

    def test_conflict_carries_detail(self, weekly_hours, config):
        existing = [appointment_at(TUESDAY, "10:00", "11:00", 7)]

        result = self._evaluate(weekly_hours, config, TUESDAY, "10:30", existing)

        assert result.error_code == BookingErrorCode.CONFLICT
        assert result.reason == "Conflicts with appointment at 10:00"
        assert result.conflicts[0].appointment_id == 7
        assert result.conflicts[0].reason == SlotReason.BOOKED

    def test_buffer_conflict(self, weekly_hours, config):
        existing = [appointment_at(TUESDAY, "10:00", "11:00", 7)]

        result = self._evaluate(weekly_hours, config, TUESDAY, "11:00", existing)

        assert result.error_code == BookingErrorCode.CONFLICT
        assert result.conflicts[0].reason == SlotReason.BUFFER

    def test_excluded_appointment_does_not_conflict(self, weekly_hours, config):
        existing = [appointment_at(TUESDAY, "10:00", "11:00", 7)]

        result = self._evaluate(
            weekly_hours, config, TUESDAY, "10:30", existing, exclude_appointment_id=7
        )

        assert result.available
