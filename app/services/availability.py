"""Availability computation for a single business calendar.

Everything here is pure: callers load hours, special dates and appointments
and pass them in, together with an optional ``now`` for deterministic "today"
and lead-time decisions.
"""

from collections import Counter
from datetime import date as date_type, datetime, timedelta
from typing import Iterable, List, Optional, Sequence
import logging
import math

from app.models.appointment import Appointment
from app.models.business_hours import BusinessHours
from app.models.special_date import SpecialDate
from app.schemas.scheduling import (
    AvailabilitySummary,
    BookedInterval,
    BookingErrorCode,
    BookingWindow,
    BusinessHoursWindow,
    DayAvailability,
    DayClosedReason,
    NextAvailableSlot,
    PeakHour,
    SlotCheckResult,
    SlotGenerationConfig,
    SlotReason,
    SpecialDateInfo,
    TimeSlot,
)
from app.services.conflicts import (
    describe_conflicts,
    detect_conflict,
    find_conflicts,
    intervals_for_date,
)
from app.utils.time import (
    current_minutes_in_timezone,
    date_range,
    minutes_to_time,
    time_to_minutes,
    to_local,
    today_in_timezone,
    weekday_sunday_first,
)


logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 90


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def find_special_date(
    day: date_type, special_dates: Iterable[SpecialDate]
) -> Optional[SpecialDate]:
    """Exact-date overrides win over yearly-recurring ones."""
    special_dates = list(special_dates)
    for special in special_dates:
        if special.date == day:
            return special
    for special in special_dates:
        if special.matches(day):
            return special
    return None


def resolve_day_hours(
    day: date_type,
    business_hours: Iterable[BusinessHours],
    special_dates: Iterable[SpecialDate],
) -> DayAvailability:
    """Resolve the effective opening hours of ``day`` (without slots)."""
    weekday = weekday_sunday_first(day)
    special = find_special_date(day, special_dates)
    special_info = None

    if special is not None:
        special_info = SpecialDateInfo(
            name=special.name, is_closed=bool(special.is_closed)
        )
        if special.is_closed:
            return DayAvailability(
                date=day,
                day_of_week=weekday,
                is_open=False,
                reason=DayClosedReason.SPECIAL_DATE,
                special_date=special_info,
            )
        if special.open_time and special.close_time:
            return DayAvailability(
                date=day,
                day_of_week=weekday,
                is_open=True,
                special_date=special_info,
                business_hours=BusinessHoursWindow(
                    open_time=special.open_time, close_time=special.close_time
                ),
            )

    hours = next((h for h in business_hours if h.day_of_week == weekday), None)
    if hours is None:
        return DayAvailability(
            date=day,
            day_of_week=weekday,
            is_open=False,
            reason=DayClosedReason.NO_HOURS_CONFIGURED,
            special_date=special_info,
        )
    if hours.is_closed:
        return DayAvailability(
            date=day,
            day_of_week=weekday,
            is_open=False,
            reason=DayClosedReason.REGULAR_CLOSED,
            special_date=special_info,
        )

    return DayAvailability(
        date=day,
        day_of_week=weekday,
        is_open=True,
        special_date=special_info,
        business_hours=BusinessHoursWindow(
            open_time=hours.open_time, close_time=hours.close_time
        ),
    )


def generate_day_slots(
    day: date_type,
    open_minutes: int,
    close_minutes: int,
    intervals: Sequence[BookedInterval],
    config: SlotGenerationConfig,
    tz_name: str,
    now: Optional[datetime] = None,
) -> List[TimeSlot]:
    """Walk the opening hours in ``slot_interval`` steps and classify each slot."""
    today = today_in_timezone(tz_name, now)
    is_past_day = day < today
    is_today = day == today
    earliest_start = None
    if is_today:
        earliest_start = (
            current_minutes_in_timezone(tz_name, now) + config.same_day_lead_time
        )

    slots = []
    start = open_minutes
    while start + config.service_duration <= close_minutes:
        end = start + config.service_duration
        reason = None

        if is_past_day or (
            is_today and (not config.same_day_booking or start < earliest_start)
        ):
            reason = SlotReason.PAST
        else:
            conflict = detect_conflict(start, end, intervals, config.buffer_time)
            if conflict.has_conflict:
                reason = conflict.reason

        slots.append(
            TimeSlot(
                start_time=minutes_to_time(start),
                end_time=minutes_to_time(end),
                available=reason is None,
                reason=reason,
            )
        )
        start += config.slot_interval

    return slots


def generate_day_availability(
    day: date_type,
    business_hours: Iterable[BusinessHours],
    special_dates: Iterable[SpecialDate],
    appointments: Iterable[Appointment],
    config: SlotGenerationConfig,
    tz_name: str,
    now: Optional[datetime] = None,
) -> DayAvailability:
    availability = resolve_day_hours(day, business_hours, special_dates)
    if not availability.is_open:
        logger.debug(f"{day} is closed ({availability.reason.value})")
        return availability

    intervals = intervals_for_date(appointments, day, tz_name)
    availability.slots = generate_day_slots(
        day,
        time_to_minutes(availability.business_hours.open_time),
        time_to_minutes(availability.business_hours.close_time),
        intervals,
        config,
        tz_name,
        now,
    )
    logger.debug(
        f"{day}: {len(availability.available_slots)}/{len(availability.slots)} "
        f"slots available"
    )
    return availability


def validate_date_range(
    start_date: date_type, end_date: date_type, max_days: int = MAX_RANGE_DAYS
) -> None:
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    if (end_date - start_date).days > max_days:
        raise ValueError(f"Date range cannot exceed {max_days} days")


def generate_availability_range(
    start_date: date_type,
    end_date: date_type,
    business_hours: Sequence[BusinessHours],
    special_dates: Sequence[SpecialDate],
    appointments: Sequence[Appointment],
    config: SlotGenerationConfig,
    tz_name: str,
    now: Optional[datetime] = None,
    max_days: int = MAX_RANGE_DAYS,
) -> List[DayAvailability]:
    validate_date_range(start_date, end_date, max_days)
    return [
        generate_day_availability(
            day, business_hours, special_dates, appointments, config, tz_name, now
        )
        for day in date_range(start_date, end_date)
    ]


def summarize_availability(days: Sequence[DayAvailability]) -> AvailabilitySummary:
    total_slots = available_slots = booked_slots = 0
    open_days = closed_days = 0
    busiest = quietest = None

    for day in days:
        if not day.is_open:
            closed_days += 1
            continue

        open_days += 1
        day_booked = sum(1 for s in day.slots if s.reason == SlotReason.BOOKED)
        total_slots += len(day.slots)
        available_slots += len(day.available_slots)
        booked_slots += day_booked

        if busiest is None or day_booked > busiest[1]:
            busiest = (day.date, day_booked)
        if quietest is None or day_booked < quietest[1]:
            quietest = (day.date, day_booked)

    return AvailabilitySummary(
        total_days=len(days),
        total_slots=total_slots,
        available_slots=available_slots,
        booked_slots=booked_slots,
        percentage_available=_percent(available_slots, total_slots),
        overall_utilization=_percent(booked_slots, total_slots),
        open_days=open_days,
        closed_days=closed_days,
        busiest_day=busiest[0] if busiest else None,
        quietest_day=quietest[0] if quietest else None,
    )


def availability_heatmap(days: Sequence[DayAvailability]) -> dict[date_type, int]:
    """Booked slot count per date."""
    return {
        day.date: sum(1 for s in day.slots if s.reason == SlotReason.BOOKED)
        for day in days
    }


def peak_hours(
    appointments: Iterable[Appointment], tz_name: str, limit: Optional[int] = None
) -> List[PeakHour]:
    """Histogram of local start hours over appointments still on the calendar."""
    counts = Counter(
        to_local(appointment.start_time, tz_name).hour
        for appointment in appointments
        if appointment.is_blocking
    )
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return [PeakHour(hour=hour, count=count) for hour, count in ranked]


def find_next_available_slot(
    days: Sequence[DayAvailability], preferred_time: Optional[str] = None
) -> Optional[NextAvailableSlot]:
    """
    Earliest open day with an available slot.

    Within that day the first available slot at or after ``preferred_time``
    is returned, falling back to the day's first available slot.
    """
    preferred = time_to_minutes(preferred_time) if preferred_time else None

    for day in sorted(days, key=lambda d: d.date):
        if not day.is_open:
            continue
        available = day.available_slots
        if not available:
            continue

        chosen = available[0]
        if preferred is not None:
            chosen = next(
                (s for s in available if time_to_minutes(s.start_time) >= preferred),
                available[0],
            )
        return NextAvailableSlot(
            date=day.date, start_time=chosen.start_time, end_time=chosen.end_time
        )

    return None


def slots_around_time(
    day: DayAvailability, target_time: str, range_minutes: int = 60
) -> List[TimeSlot]:
    target = time_to_minutes(target_time)
    return [
        slot
        for slot in day.slots
        if abs(time_to_minutes(slot.start_time) - target) <= range_minutes
    ]


def get_booking_window(
    config: SlotGenerationConfig, tz_name: str, now: Optional[datetime] = None
) -> BookingWindow:
    today = today_in_timezone(tz_name, now)
    earliest = today if config.same_day_booking else today + timedelta(days=1)
    return BookingWindow(
        earliest_date=earliest,
        latest_date=today + timedelta(days=config.advance_booking_days),
    )


def validate_booking_date(
    day: date_type,
    config: SlotGenerationConfig,
    tz_name: str,
    now: Optional[datetime] = None,
) -> Optional[SlotCheckResult]:
    """Date-level policy: not past, inside the advance window, same-day rule."""
    today = today_in_timezone(tz_name, now)

    if day < today:
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.PAST_TIME,
            reason="Cannot book in the past",
        )
    if (day - today).days > config.advance_booking_days:
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.ADVANCE_WINDOW_EXCEEDED,
            reason=(
                f"Cannot book more than {config.advance_booking_days} days in advance"
            ),
        )
    if day == today and not config.same_day_booking:
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.PAST_TIME,
            reason="Same-day booking is not available",
        )
    return None


def evaluate_slot(
    day: date_type,
    start_time: str,
    duration: int,
    business_hours: Iterable[BusinessHours],
    special_dates: Iterable[SpecialDate],
    appointments: Iterable[Appointment],
    config: SlotGenerationConfig,
    tz_name: str,
    now: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
) -> SlotCheckResult:
    """
    Targeted check of one interval on one date.

    Unlike the slot grid this does not require ``start_time`` to be aligned
    to ``slot_interval``.
    """
    start = time_to_minutes(start_time)
    end = start + duration
    result = {"start_time": start_time, "end_time": minutes_to_time(min(end, 1440))}

    day_hours = resolve_day_hours(day, business_hours, special_dates)
    if not day_hours.is_open:
        if day_hours.reason == DayClosedReason.SPECIAL_DATE:
            reason = f"Closed: {day_hours.special_date.name}"
        elif day_hours.reason == DayClosedReason.NO_HOURS_CONFIGURED:
            reason = "No business hours configured for this day"
        else:
            reason = "Business is closed"
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.CLOSED_DAY,
            reason=reason,
            **result,
        )

    window = day_hours.business_hours
    if start < time_to_minutes(window.open_time) or end > time_to_minutes(
        window.close_time
    ):
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.OUT_OF_HOURS,
            reason=f"Outside business hours ({window.open_time} - {window.close_time})",
            business_hours=window,
            **result,
        )

    today = today_in_timezone(tz_name, now)
    if day < today:
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.PAST_TIME,
            reason="Cannot book in the past",
            **result,
        )
    if day == today:
        now_minutes = current_minutes_in_timezone(tz_name, now)
        if not config.same_day_booking:
            reason = "Same-day booking is not available"
        elif start < now_minutes:
            reason = "Cannot book in the past"
        elif start < now_minutes + config.same_day_lead_time:
            reason = (
                f"Same-day bookings require {config.same_day_lead_time} minutes notice"
            )
        else:
            reason = None
        if reason:
            return SlotCheckResult(
                available=False,
                error_code=BookingErrorCode.PAST_TIME,
                reason=reason,
                **result,
            )

    intervals = intervals_for_date(
        appointments, day, tz_name, exclude_appointment_id=exclude_appointment_id
    )
    conflicts = find_conflicts(start, end, intervals, config.buffer_time)
    if conflicts:
        return SlotCheckResult(
            available=False,
            error_code=BookingErrorCode.CONFLICT,
            reason=describe_conflicts(conflicts),
            conflicts=conflicts,
            **result,
        )

    return SlotCheckResult(available=True, business_hours=window, **result)
