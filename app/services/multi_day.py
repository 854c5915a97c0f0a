from datetime import date as date_type, datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

import structlog
from pydantic import TypeAdapter
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import (
    Appointment,
    AppointmentStatus,
    CANCEL_TERMINAL_STATUSES,
)
from app.models.business import Business
from app.schemas.multi_day import (
    ConsecutivePattern,
    MultiDayBookingCreate,
    RecurrencePattern,
    SeriesAppointmentSummary,
    SeriesAvailabilityResult,
    SeriesBookingResult,
    SeriesCancelRequest,
    SeriesCancelResult,
    SeriesDateCheck,
    SeriesDetail,
    WeeklyPattern,
)
from app.schemas.appointment import AppointmentResponse
from app.schemas.scheduling import BookingErrorCode, BookingRules
from app.services.availability import evaluate_slot, validate_booking_date
from app.services.booking_rules import resolve_booking_rules
from app.services.customer import CustomerService
from app.services.scheduling import SchedulingEngineService
from app.utils.time import (
    combine_local,
    minutes_to_time,
    time_to_minutes,
    weekday_sunday_first,
)

logger = structlog.get_logger(__name__)

pattern_adapter = TypeAdapter(RecurrencePattern)


def expand_pattern_dates(start_date: date_type, pattern) -> List[date_type]:
    """
    Turn a recurrence pattern into concrete, sorted, distinct dates.

    Weekly patterns walk calendar weeks (Sunday first) starting with the week
    that contains ``start_date``; occurrences before ``start_date`` are dropped.
    """
    if isinstance(pattern, ConsecutivePattern):
        return [start_date + timedelta(days=i) for i in range(pattern.days)]

    if isinstance(pattern, WeeklyPattern):
        week_start = start_date - timedelta(days=weekday_sunday_first(start_date))
        dates = {
            week_start + timedelta(days=7 * week + weekday)
            for week in range(pattern.weeks)
            for weekday in pattern.weekdays
        }
        return sorted(d for d in dates if d >= start_date)

    return sorted(set(pattern.dates))


def series_end_time(start_time: str, duration: int) -> str:
    return minutes_to_time(min(time_to_minutes(start_time) + duration, 1440))


class MultiDayBookingService:
    """All-or-nothing booking of a recurring series of appointments."""

    def __init__(
        self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.scheduling_engine = SchedulingEngineService(db, clock)
        self.customer_service = CustomerService()

    async def _check_dates(
        self,
        business: Business,
        rules: BookingRules,
        dates: List[date_type],
        start_time: str,
    ) -> SeriesAvailabilityResult:
        appointments = await self.scheduling_engine.get_appointments_for_dates(
            business, dates[0], dates[-1]
        )
        config = rules.to_slot_config()
        now = self.scheduling_engine.now()

        checks = []
        for day in dates:
            result = validate_booking_date(day, config, business.timezone, now)
            if result is None:
                result = evaluate_slot(
                    day,
                    start_time,
                    rules.service_duration,
                    business.business_hours,
                    business.special_dates,
                    appointments,
                    config,
                    business.timezone,
                    now=now,
                )
            checks.append(
                SeriesDateCheck(
                    date=day,
                    start_time=start_time,
                    end_time=series_end_time(start_time, rules.service_duration),
                    available=result.available,
                    error_code=result.error_code,
                    reason=result.reason,
                    conflicts=result.conflicts,
                )
            )

        return SeriesAvailabilityResult(
            available=all(check.available for check in checks), dates=checks
        )

    async def check_series_availability(
        self, booking_data: MultiDayBookingCreate
    ) -> SeriesAvailabilityResult:
        """Check every date of a pattern without booking anything."""
        business = await self.scheduling_engine.get_active_business(
            booking_data.business_id
        )
        rules, _ = await self.scheduling_engine.resolve_rules(
            business, booking_data.service_id
        )
        dates = expand_pattern_dates(booking_data.start_date, booking_data.pattern)
        if not dates:
            return SeriesAvailabilityResult(available=False, dates=[])
        return await self._check_dates(business, rules, dates, booking_data.start_time)

    async def create_series(self, booking_data: MultiDayBookingCreate) -> SeriesBookingResult:
        """Create every appointment of the series in one transaction, or none."""
        try:
            result = await self._create_series(booking_data)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Failed to create appointment series",
                business_id=booking_data.business_id,
                error=str(e),
            )
            raise

        if result.success:
            await self.db.commit()
            logger.info(
                "Appointment series created",
                business_id=booking_data.business_id,
                series_id=str(result.series_id),
                sessions=len(result.appointments),
            )
        else:
            await self.db.rollback()
            logger.info(
                "Appointment series rejected",
                business_id=booking_data.business_id,
                error_code=result.error_code.value if result.error_code else None,
                unavailable=len(result.unavailable_dates),
            )
        return result

    async def _create_series(self, data: MultiDayBookingCreate) -> SeriesBookingResult:
        business = await self.scheduling_engine.get_business(data.business_id, lock=True)
        if business is None or not business.is_active:
            return SeriesBookingResult(
                success=False,
                error="Business not found",
                error_code=BookingErrorCode.NOT_FOUND,
            )

        service = await self.scheduling_engine.get_service(data.service_id, business.id)
        if service is None:
            return SeriesBookingResult(
                success=False,
                error="Service not found",
                error_code=BookingErrorCode.NOT_FOUND,
            )
        if not service.is_active:
            return SeriesBookingResult(
                success=False,
                error="This service is not currently available",
                error_code=BookingErrorCode.VALIDATION_ERROR,
            )

        dates = expand_pattern_dates(data.start_date, data.pattern)
        if not dates:
            return SeriesBookingResult(
                success=False,
                error="Pattern produces no dates on or after the start date",
                error_code=BookingErrorCode.VALIDATION_ERROR,
            )

        rules = resolve_booking_rules(business, service)
        availability = await self._check_dates(business, rules, dates, data.start_time)
        if not availability.available:
            unavailable = availability.unavailable
            return SeriesBookingResult(
                success=False,
                error=(
                    f"{len(unavailable)} of {len(dates)} dates are unavailable; "
                    "no appointments were created"
                ),
                error_code=BookingErrorCode.SERIES_PARTIALLY_UNAVAILABLE,
                unavailable_dates=unavailable,
            )

        now = self.scheduling_engine.now()
        customer = await self.customer_service.upsert_for_booking(
            self.db,
            business.id,
            data.customer_name,
            data.customer_email,
            data.customer_phone,
            booked_at=now,
            bookings=len(dates),
        )

        status = (
            AppointmentStatus.PENDING
            if rules.requires_approval
            else AppointmentStatus.CONFIRMED
        )
        series_id = uuid4()
        appointments = []
        for day in dates:
            appointment = Appointment(
                business_id=business.id,
                service_id=service.id,
                customer_id=customer.id,
                timezone=business.timezone,
                status=status.value,
                status_changed_at=now,
                confirmed_at=now if status == AppointmentStatus.CONFIRMED else None,
                customer_name=data.customer_name,
                customer_email=data.customer_email,
                customer_phone=data.customer_phone,
                customer_notes=data.customer_notes,
                business_notes=data.business_notes,
                booking_source=data.booking_source.value,
                total_amount=service.price,
                requires_deposit=rules.requires_deposit,
                deposit_amount=rules.deposit_amount if rules.requires_deposit else None,
                reschedule_count=0,
                series_id=series_id,
            )
            appointment.set_interval(
                combine_local(day, data.start_time, business.timezone),
                rules.service_duration,
            )
            appointments.append(appointment)

        parent = appointments[0]
        parent.recurrence_pattern = data.pattern.model_dump(mode="json")
        parent.series_end_time = appointments[-1].end_time
        self.db.add(parent)
        await self.db.flush()

        for appointment in appointments[1:]:
            appointment.parent_id = parent.id
            self.db.add(appointment)
        await self.db.flush()

        return SeriesBookingResult(
            success=True,
            series_id=series_id,
            parent_id=parent.id,
            appointments=[
                SeriesAppointmentSummary(
                    appointment_id=appointment.id,
                    date=day,
                    start_time=data.start_time,
                    end_time=series_end_time(data.start_time, rules.service_duration),
                    status=status,
                )
                for appointment, day in zip(appointments, dates)
            ],
        )

    async def _get_series_members(self, series_id) -> List[Appointment]:
        result = await self.db.execute(
            select(Appointment)
            .where(Appointment.series_id == series_id)
            .order_by(Appointment.start_time)
        )
        return list(result.scalars().all())

    async def get_series(self, appointment_id: int) -> Optional[SeriesDetail]:
        """Resolve the series of any member appointment."""
        appointment = await self.db.get(Appointment, appointment_id)
        if appointment is None or appointment.series_id is None:
            return None

        members = await self._get_series_members(appointment.series_id)
        parent = next((m for m in members if m.parent_id is None), members[0])
        pattern = (
            pattern_adapter.validate_python(parent.recurrence_pattern)
            if parent.recurrence_pattern
            else None
        )
        return SeriesDetail(
            series_id=appointment.series_id,
            parent_id=parent.id,
            total_sessions=len(members),
            pattern=pattern,
            series_end_time=parent.series_end_time,
            appointments=[AppointmentResponse.model_validate(m) for m in members],
        )

    async def cancel_series(
        self, appointment_id: int, cancel_data: SeriesCancelRequest
    ) -> SeriesCancelResult:
        """Cancel every non-terminal member of the series in one statement."""
        try:
            result = await self._cancel_series(appointment_id, cancel_data)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Failed to cancel appointment series",
                appointment_id=appointment_id,
                error=str(e),
            )
            raise

        if result.success:
            await self.db.commit()
        else:
            await self.db.rollback()
        logger.info(
            "Appointment series cancel processed",
            appointment_id=appointment_id,
            cancelled=result.cancelled_count,
            error_code=result.error_code.value if result.error_code else None,
        )
        return result

    async def _cancel_series(
        self, appointment_id: int, data: SeriesCancelRequest
    ) -> SeriesCancelResult:
        appointment = await self.db.get(Appointment, appointment_id)
        if appointment is None:
            return SeriesCancelResult(
                success=False,
                error="Appointment not found",
                error_code=BookingErrorCode.NOT_FOUND,
            )
        if appointment.series_id is None:
            return SeriesCancelResult(
                success=False,
                error="Appointment is not part of a series",
                error_code=BookingErrorCode.VALIDATION_ERROR,
            )

        series_id = appointment.series_id
        active = await self.db.execute(
            select(Appointment.id)
            .where(
                and_(
                    Appointment.series_id == series_id,
                    Appointment.status.notin_(CANCEL_TERMINAL_STATUSES),
                )
            )
            .with_for_update()
        )
        active_ids = list(active.scalars().all())
        if not active_ids:
            return SeriesCancelResult(
                success=True,
                cancelled_count=0,
                series_id=series_id,
                message="No active appointments left in this series",
            )

        now = self.scheduling_engine.now()
        await self.db.execute(
            update(Appointment)
            .where(Appointment.id.in_(active_ids))
            .values(
                previous_status=Appointment.status,
                status=AppointmentStatus.CANCELLED.value,
                status_changed_at=now,
                cancelled_at=now,
                cancellation_source=data.source.value,
                cancellation_reason=data.reason,
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.customer_service.record_cancellation(
            self.db, appointment.customer_id, count=len(active_ids)
        )
        await self.db.flush()

        return SeriesCancelResult(
            success=True,
            cancelled_count=len(active_ids),
            series_id=series_id,
            message=f"Cancelled {len(active_ids)} appointment(s)",
        )
