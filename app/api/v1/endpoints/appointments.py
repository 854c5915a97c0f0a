import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import booking_http_error
from app.core.database import get_db
from app.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusTransition,
    BookingResult,
)
from app.services.appointment import AppointmentService

router = APIRouter()
logger = structlog.get_logger(__name__)


def _unwrap(result: BookingResult) -> AppointmentResponse:
    if not result.success:
        raise booking_http_error(
            result.error_code, result.error, conflicts=result.conflicts
        )
    return result.appointment


def _internal_error(action: str, e: Exception, **context) -> HTTPException:
    logger.error(f"Failed to {action}", error=str(e), **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment_data: AppointmentCreate, db: AsyncSession = Depends(get_db)
):
    """Book a single appointment after rule and conflict checks."""
    try:
        result = await AppointmentService(db).create_appointment(appointment_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise _internal_error(
            "create appointment", e, business_id=appointment_data.business_id
        )
    return _unwrap(result)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(appointment_id: int, db: AsyncSession = Depends(get_db)):
    appointment = await AppointmentService(db).get_appointment(appointment_id)

    if not appointment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found"
        )
    return appointment


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    reschedule_data: AppointmentReschedule,
    db: AsyncSession = Depends(get_db),
):
    """Move an appointment to a new date and time."""
    try:
        result = await AppointmentService(db).reschedule_appointment(
            appointment_id, reschedule_data
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        raise _internal_error(
            "reschedule appointment", e, appointment_id=appointment_id
        )
    return _unwrap(result)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    cancel_data: AppointmentCancel,
    db: AsyncSession = Depends(get_db),
):
    """Cancel an appointment that is not yet completed or cancelled."""
    try:
        result = await AppointmentService(db).cancel_appointment(
            appointment_id, cancel_data
        )
    except Exception as e:
        raise _internal_error("cancel appointment", e, appointment_id=appointment_id)
    return _unwrap(result)


@router.post("/{appointment_id}/status", response_model=AppointmentResponse)
async def transition_appointment_status(
    appointment_id: int,
    transition_data: AppointmentStatusTransition,
    db: AsyncSession = Depends(get_db),
):
    """Confirm, complete or mark an appointment as a no-show."""
    try:
        result = await AppointmentService(db).transition_appointment_status(
            appointment_id, transition_data
        )
    except Exception as e:
        raise _internal_error(
            "transition appointment status", e, appointment_id=appointment_id
        )
    return _unwrap(result)
