from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import (
    Appointment,
    AppointmentStatus,
    CANCEL_TERMINAL_STATUSES,
    CancellationSource,
    RESCHEDULE_TERMINAL_STATUSES,
)
from app.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusTransition,
    BookingResult,
)
from app.schemas.scheduling import BookingErrorCode, SlotCheckResult
from app.services.availability import validate_booking_date
from app.services.booking_rules import resolve_booking_rules
from app.services.customer import CustomerService
from app.services.scheduling import SchedulingEngineService
from app.utils.time import combine_local

logger = structlog.get_logger(__name__)


def rejection(check: SlotCheckResult) -> BookingResult:
    return BookingResult.failure(
        check.error_code or BookingErrorCode.VALIDATION_ERROR,
        check.reason or "Requested time is not available",
        check.conflicts,
    )


class AppointmentService:
    """Appointment lifecycle: create, reschedule, cancel and status transitions.

    Every write that depends on a conflict read runs under a row lock on the
    owning business, so two overlapping requests for one calendar cannot both
    succeed. Business-rule failures come back as ``BookingResult`` values;
    only infrastructure errors raise.
    """

    def __init__(
        self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None
    ):
        self.db = db
        self.scheduling_engine = SchedulingEngineService(db, clock)
        self.customer_service = CustomerService()

    async def _run(self, operation: str, action, **context) -> BookingResult:
        """Commit on success, roll back on a rejection or an error."""
        try:
            result = await action()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to {operation}", error=str(e), **context)
            raise

        if result.success:
            log_fields = {**context}
            if result.appointment is not None:
                log_fields["appointment_id"] = result.appointment.id
            await self.db.commit()
            logger.info(f"{operation.capitalize()} succeeded", **log_fields)
        else:
            await self.db.rollback()
            logger.info(
                f"{operation.capitalize()} rejected",
                error_code=result.error_code.value if result.error_code else None,
                error=result.error,
                **context,
            )
        return result

    async def create_appointment(self, appointment_data: AppointmentCreate) -> BookingResult:
        """Create a new appointment with validation and conflict checking."""
        return await self._run(
            "create appointment",
            lambda: self._create(appointment_data),
            business_id=appointment_data.business_id,
            service_id=appointment_data.service_id,
        )

    async def _create(self, data: AppointmentCreate) -> BookingResult:
        business = await self.scheduling_engine.get_business(data.business_id, lock=True)
        if business is None or not business.is_active:
            return BookingResult.failure(BookingErrorCode.NOT_FOUND, "Business not found")

        service = await self.scheduling_engine.get_service(data.service_id, business.id)
        if service is None:
            return BookingResult.failure(BookingErrorCode.NOT_FOUND, "Service not found")
        if not service.is_active:
            return BookingResult.failure(
                BookingErrorCode.VALIDATION_ERROR,
                "This service is not currently available",
            )

        rules = resolve_booking_rules(business, service)
        now = self.scheduling_engine.now()

        date_check = validate_booking_date(
            data.date, rules.to_slot_config(), business.timezone, now
        )
        if date_check is not None:
            return rejection(date_check)

        slot_check = await self.scheduling_engine.evaluate(
            business, rules, data.date, data.start_time
        )
        if not slot_check.available:
            return rejection(slot_check)

        customer = await self.customer_service.upsert_for_booking(
            self.db,
            business.id,
            data.customer_name,
            data.customer_email,
            data.customer_phone,
            booked_at=now,
        )

        status = (
            AppointmentStatus.PENDING
            if rules.requires_approval
            else AppointmentStatus.CONFIRMED
        )
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
        )
        appointment.set_interval(
            combine_local(data.date, data.start_time, business.timezone),
            rules.service_duration,
        )
        self.db.add(appointment)
        await self.db.flush()

        return BookingResult(
            success=True, appointment=AppointmentResponse.model_validate(appointment)
        )

    async def get_appointment(
        self, appointment_id: int, lock: bool = False
    ) -> Optional[Appointment]:
        query = select(Appointment).where(Appointment.id == appointment_id)
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def reschedule_appointment(
        self, appointment_id: int, reschedule_data: AppointmentReschedule
    ) -> BookingResult:
        """Move an appointment to a new slot, keeping its duration."""
        return await self._run(
            "reschedule appointment",
            lambda: self._reschedule(appointment_id, reschedule_data),
            appointment_id=appointment_id,
        )

    async def _reschedule(
        self, appointment_id: int, data: AppointmentReschedule
    ) -> BookingResult:
        appointment = await self.get_appointment(appointment_id)
        if appointment is None:
            return BookingResult.failure(
                BookingErrorCode.NOT_FOUND, "Appointment not found"
            )

        business = await self.scheduling_engine.get_business(
            appointment.business_id, lock=True
        )
        if business is None or not business.is_active:
            return BookingResult.failure(BookingErrorCode.NOT_FOUND, "Business not found")

        # Cancel and status changes lock only the appointment row
        await self.db.refresh(appointment, with_for_update=True)

        if appointment.status in RESCHEDULE_TERMINAL_STATUSES:
            return BookingResult.failure(
                BookingErrorCode.INVALID_STATE_TRANSITION,
                f"Cannot reschedule an appointment that is {appointment.status}",
            )

        service = await self.scheduling_engine.get_service(
            appointment.service_id, business.id
        )
        rules = resolve_booking_rules(
            business, service, duration_override=appointment.duration_minutes
        )
        now = self.scheduling_engine.now()

        date_check = validate_booking_date(
            data.date, rules.to_slot_config(), business.timezone, now
        )
        if date_check is not None:
            return rejection(date_check)

        slot_check = await self.scheduling_engine.evaluate(
            business,
            rules,
            data.date,
            data.start_time,
            exclude_appointment_id=appointment.id,
        )
        if not slot_check.available:
            return rejection(slot_check)

        original_start = appointment.start_time
        appointment.set_interval(
            combine_local(data.date, data.start_time, business.timezone),
            appointment.duration_minutes,
        )
        appointment.mark_status(AppointmentStatus.CONFIRMED, now)
        appointment.rescheduled_from = original_start
        appointment.rescheduled_at = now
        appointment.reschedule_reason = data.reason
        appointment.reschedule_count = (appointment.reschedule_count or 0) + 1
        await self.db.flush()

        return BookingResult(
            success=True, appointment=AppointmentResponse.model_validate(appointment)
        )

    async def cancel_appointment(
        self, appointment_id: int, cancel_data: AppointmentCancel
    ) -> BookingResult:
        """Cancel a single appointment and record who cancelled it and why."""
        return await self._run(
            "cancel appointment",
            lambda: self._cancel(appointment_id, cancel_data),
            appointment_id=appointment_id,
        )

    async def _cancel(self, appointment_id: int, data: AppointmentCancel) -> BookingResult:
        appointment = await self.get_appointment(appointment_id, lock=True)
        if appointment is None:
            return BookingResult.failure(
                BookingErrorCode.NOT_FOUND, "Appointment not found"
            )

        if appointment.status in CANCEL_TERMINAL_STATUSES:
            return BookingResult.failure(
                BookingErrorCode.INVALID_STATE_TRANSITION,
                "Appointment is already completed or cancelled",
            )

        appointment.mark_status(
            AppointmentStatus.CANCELLED, self.scheduling_engine.now()
        )
        appointment.cancellation_source = data.source.value
        appointment.cancellation_reason = data.reason
        await self.customer_service.record_cancellation(
            self.db, appointment.customer_id
        )
        await self.db.flush()

        return BookingResult(
            success=True, appointment=AppointmentResponse.model_validate(appointment)
        )

    async def transition_appointment_status(
        self, appointment_id: int, transition_data: AppointmentStatusTransition
    ) -> BookingResult:
        """Transition appointment status following the workflow table."""
        if transition_data.new_status == AppointmentStatus.CANCELLED:
            return await self.cancel_appointment(
                appointment_id,
                AppointmentCancel(
                    source=CancellationSource.BUSINESS, reason=transition_data.notes
                ),
            )

        return await self._run(
            "transition appointment status",
            lambda: self._transition(appointment_id, transition_data),
            appointment_id=appointment_id,
            new_status=transition_data.new_status.value,
        )

    async def _transition(
        self, appointment_id: int, data: AppointmentStatusTransition
    ) -> BookingResult:
        appointment = await self.get_appointment(appointment_id, lock=True)
        if appointment is None:
            return BookingResult.failure(
                BookingErrorCode.NOT_FOUND, "Appointment not found"
            )

        if not appointment.transition_to(
            data.new_status, self.scheduling_engine.now()
        ):
            return BookingResult.failure(
                BookingErrorCode.INVALID_STATE_TRANSITION,
                f"Cannot transition from {appointment.status} to "
                f"{data.new_status.value}",
            )

        if data.new_status == AppointmentStatus.NO_SHOW:
            await self.customer_service.record_no_show(self.db, appointment.customer_id)
        if data.notes:
            appointment.business_notes = data.notes
        await self.db.flush()

        return BookingResult(
            success=True, appointment=AppointmentResponse.model_validate(appointment)
        )

