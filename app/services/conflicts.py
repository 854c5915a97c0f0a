from datetime import date as date_type
from typing import Iterable, List, Optional
import logging

from app.models.appointment import Appointment
from app.schemas.scheduling import (
    BookedInterval,
    ConflictDetail,
    ConflictResult,
    SlotReason,
)
from app.utils.time import (
    MINUTES_PER_DAY,
    local_day_bounds,
    minutes_of_day,
    minutes_to_time,
    as_utc,
)


logger = logging.getLogger(__name__)


def intervals_for_date(
    appointments: Iterable[Appointment],
    day: date_type,
    tz_name: str,
    exclude_appointment_id: Optional[int] = None,
) -> List[BookedInterval]:
    """
    Map stored appointments onto one local calendar day.

    Cancelled and no-show appointments are skipped, as is the excluded id
    (the appointment being rescheduled). An appointment that crosses midnight
    is clamped to the part that falls on ``day``.
    """
    day_start, day_end = local_day_bounds(day, tz_name)
    intervals = []

    for appointment in appointments:
        if not appointment.is_blocking:
            continue
        if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
            continue

        start = as_utc(appointment.start_time)
        end = as_utc(appointment.end_time)
        if start >= day_end or end <= day_start:
            continue

        start_minutes = 0 if start < day_start else minutes_of_day(start, tz_name)
        end_minutes = (
            MINUTES_PER_DAY if end >= day_end else minutes_of_day(end, tz_name)
        )
        intervals.append(
            BookedInterval(
                start=start_minutes,
                end=end_minutes,
                appointment_id=appointment.id,
                customer_name=appointment.customer_name,
            )
        )

    intervals.sort(key=lambda interval: interval.start)
    return intervals


def _conflict_reason(
    start: int, end: int, interval: BookedInterval, buffer_time: int
) -> Optional[SlotReason]:
    if start < interval.end and end > interval.start:
        return SlotReason.BOOKED

    if buffer_time > 0:
        # Buffer extends outward from the existing appointment only
        before = end <= interval.start and end + buffer_time > interval.start
        after = interval.end <= start and interval.end + buffer_time > start
        if before or after:
            return SlotReason.BUFFER

    return None


def detect_conflict(
    start: int, end: int, intervals: Iterable[BookedInterval], buffer_time: int = 0
) -> ConflictResult:
    """Return the first direct or buffer conflict for ``[start, end)``."""
    for interval in intervals:
        reason = _conflict_reason(start, end, interval, buffer_time)
        if reason is not None:
            return ConflictResult(has_conflict=True, reason=reason, interval=interval)
    return ConflictResult(has_conflict=False)


def find_conflicts(
    start: int, end: int, intervals: Iterable[BookedInterval], buffer_time: int = 0
) -> List[ConflictDetail]:
    """Collect every conflicting interval, for rejection detail."""
    conflicts = []
    for interval in intervals:
        reason = _conflict_reason(start, end, interval, buffer_time)
        if reason is None:
            continue
        conflicts.append(
            ConflictDetail(
                appointment_id=interval.appointment_id,
                start_time=minutes_to_time(interval.start),
                end_time=minutes_to_time(interval.end),
                reason=reason,
                customer_name=interval.customer_name,
            )
        )

    if conflicts:
        logger.debug(
            f"Candidate {minutes_to_time(start)}-{minutes_to_time(end)} "
            f"conflicts with {len(conflicts)} appointment(s)"
        )
    return conflicts


def describe_conflicts(conflicts: List[ConflictDetail]) -> str:
    if len(conflicts) == 1:
        return f"Conflicts with appointment at {conflicts[0].start_time}"
    return f"Conflicts with {len(conflicts)} existing appointments"
