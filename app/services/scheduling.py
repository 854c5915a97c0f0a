from datetime import date as date_type, datetime, timedelta
from typing import Callable, Optional
import logging

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import settings
from app.models.appointment import Appointment, NON_BLOCKING_STATUSES
from app.models.business import Business
from app.models.service import Service
from app.schemas.scheduling import (
    AvailabilityQuery,
    AvailabilityResponse,
    BookingRules,
    SlotCheckRequest,
    SlotCheckResult,
)
from app.services.availability import (
    availability_heatmap,
    evaluate_slot,
    find_next_available_slot,
    generate_availability_range,
    get_booking_window,
    peak_hours,
    summarize_availability,
    validate_date_range,
)
from app.services.booking_rules import resolve_booking_rules
from app.utils.time import local_day_bounds, today_in_timezone, utc_now


logger = logging.getLogger(__name__)


class SchedulingNotFoundError(LookupError):
    """A business, service or appointment referenced by a request is missing."""

    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class SchedulingEngineService:
    """Loads a business calendar and runs the availability engine over it."""

    def __init__(
        self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.clock = clock or utc_now

    def now(self) -> datetime:
        return self.clock()

    async def get_business(
        self,
        business_id: Optional[int] = None,
        slug: Optional[str] = None,
        lock: bool = False,
    ) -> Optional[Business]:
        """
        Load a business with its weekly hours and special dates.

        With ``lock`` the business row is selected FOR UPDATE, which serialises
        concurrent writers to the same calendar until the transaction ends.
        """
        query = select(Business).options(
            selectinload(Business.business_hours),
            selectinload(Business.special_dates),
        )
        if business_id is not None:
            query = query.where(Business.id == business_id)
        elif slug:
            query = query.where(Business.slug == slug)
        else:
            return None

        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_active_business(
        self, business_id: Optional[int] = None, slug: Optional[str] = None, lock=False
    ) -> Business:
        business = await self.get_business(business_id, slug, lock=lock)
        if business is None or not business.is_active:
            logger.warning(f"Business not found or inactive: {business_id or slug}")
            raise SchedulingNotFoundError("Business", business_id or slug)
        return business

    async def get_service(self, service_id: int, business_id: int) -> Optional[Service]:
        result = await self.db.execute(
            select(Service).where(
                and_(Service.id == service_id, Service.business_id == business_id)
            )
        )
        return result.scalar_one_or_none()

    async def get_appointments_between(
        self,
        business_id: int,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Blocking appointments overlapping ``[start, end)``."""
        conditions = [
            Appointment.business_id == business_id,
            Appointment.start_time < end,
            Appointment.end_time > start,
            Appointment.status.notin_(NON_BLOCKING_STATUSES),
        ]
        if exclude_appointment_id is not None:
            conditions.append(Appointment.id != exclude_appointment_id)

        result = await self.db.execute(
            select(Appointment).where(and_(*conditions)).order_by(Appointment.start_time)
        )
        return list(result.scalars().all())

    async def get_appointments_for_dates(
        self,
        business: Business,
        start_date: date_type,
        end_date: date_type,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[Appointment]:
        window_start, _ = local_day_bounds(start_date, business.timezone)
        _, window_end = local_day_bounds(end_date, business.timezone)
        return await self.get_appointments_between(
            business.id, window_start, window_end, exclude_appointment_id
        )

    async def resolve_rules(
        self,
        business: Business,
        service_id: Optional[int] = None,
        duration: Optional[int] = None,
    ) -> tuple[BookingRules, Optional[Service]]:
        service = None
        if service_id is not None:
            service = await self.get_service(service_id, business.id)
            if service is None:
                logger.warning(f"Service not found: {service_id}")
                raise SchedulingNotFoundError("Service", service_id)
        return resolve_booking_rules(business, service, duration), service

    def _resolve_dates(
        self, query: AvailabilityQuery, business: Business
    ) -> tuple[date_type, date_type]:
        today = today_in_timezone(business.timezone, self.now())
        if query.date is not None:
            return query.date, query.date
        if query.start_date is not None:
            return query.start_date, query.end_date or query.start_date
        days = query.days or settings.DEFAULT_AVAILABILITY_DAYS
        return today, today + timedelta(days=days - 1)

    async def get_availability(self, query: AvailabilityQuery) -> AvailabilityResponse:
        """
        Compute day availability for a date, a range or a day count.

        Raises SchedulingNotFoundError for a missing business or service and
        ValueError for an invalid range.
        """
        business = await self.get_active_business(query.business_id, query.slug)
        rules, _ = await self.resolve_rules(business, query.service_id, query.duration)
        config = rules.to_slot_config()
        tz_name = business.timezone
        now = self.now()

        start_date, end_date = self._resolve_dates(query, business)
        validate_date_range(start_date, end_date, settings.MAX_AVAILABILITY_RANGE_DAYS)
        logger.info(
            f"Computing availability for business {business.id} "
            f"from {start_date} to {end_date}"
        )

        appointments = await self.get_appointments_for_dates(
            business, start_date, end_date
        )
        days = generate_availability_range(
            start_date,
            end_date,
            business.business_hours,
            business.special_dates,
            appointments,
            config,
            tz_name,
            now=now,
            max_days=settings.MAX_AVAILABILITY_RANGE_DAYS,
        )

        response = AvailabilityResponse(
            business_id=business.id,
            timezone=tz_name,
            booking_window=get_booking_window(config, tz_name, now),
        )
        if query.include_summary:
            response.summary = summarize_availability(days)
        if query.include_rules:
            response.rules = rules
        if query.include_heatmap:
            response.heatmap = availability_heatmap(days)
        if query.include_peak_hours:
            response.peak_hours = peak_hours(
                appointments, tz_name, limit=query.peak_hours_limit
            )
        if query.find_next:
            response.next_available = find_next_available_slot(
                days, query.preferred_time
            )

        if not query.include_slots:
            days = [day.model_copy(update={"slots": []}) for day in days]
        response.days = days

        logger.info(
            f"Availability computed for business {business.id}: {len(days)} day(s)"
        )
        return response

    async def check_slot(self, request: SlotCheckRequest) -> SlotCheckResult:
        """Targeted availability check of a single start time."""
        business = await self.get_active_business(request.business_id)
        rules, _ = await self.resolve_rules(
            business, request.service_id, request.duration
        )
        return await self.evaluate(
            business,
            rules,
            request.date,
            request.start_time,
            exclude_appointment_id=request.exclude_appointment_id,
        )

    async def evaluate(
        self,
        business: Business,
        rules: BookingRules,
        day: date_type,
        start_time: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotCheckResult:
        appointments = await self.get_appointments_for_dates(
            business, day, day, exclude_appointment_id
        )
        result = evaluate_slot(
            day,
            start_time,
            rules.service_duration,
            business.business_hours,
            business.special_dates,
            appointments,
            rules.to_slot_config(),
            business.timezone,
            now=self.now(),
            exclude_appointment_id=exclude_appointment_id,
        )
        logger.debug(
            f"Slot {day} {start_time} for business {business.id}: "
            f"{'available' if result.available else result.reason}"
        )
        return result
