import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import booking_http_error
from app.core.database import get_db
from app.schemas.multi_day import (
    MultiDayBookingCreate,
    SeriesAvailabilityResult,
    SeriesBookingResult,
    SeriesCancelRequest,
    SeriesCancelResult,
    SeriesDetail,
)
from app.services.multi_day import MultiDayBookingService
from app.services.scheduling import SchedulingNotFoundError

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post(
    "/multi-day",
    response_model=SeriesBookingResult,
    status_code=status.HTTP_201_CREATED,
)
async def create_multi_day_booking(
    booking_data: MultiDayBookingCreate, db: AsyncSession = Depends(get_db)
):
    """
    Book a recurring series of appointments.

    Every generated date is checked first; if any date is unavailable nothing
    is booked and the per-date reasons are returned.
    """
    try:
        result = await MultiDayBookingService(db).create_series(booking_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(
            "Failed to create multi-day booking",
            business_id=booking_data.business_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create multi-day booking",
        )

    if not result.success:
        raise booking_http_error(
            result.error_code,
            result.error,
            unavailable_dates=result.unavailable_dates,
        )
    return result


@router.post("/multi-day/check", response_model=SeriesAvailabilityResult)
async def check_multi_day_availability(
    booking_data: MultiDayBookingCreate, db: AsyncSession = Depends(get_db)
):
    """Report per-date availability of a pattern without booking."""
    try:
        return await MultiDayBookingService(db).check_series_availability(booking_data)
    except SchedulingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{appointment_id}/series", response_model=SeriesDetail)
async def get_appointment_series(
    appointment_id: int, db: AsyncSession = Depends(get_db)
):
    series = await MultiDayBookingService(db).get_series(appointment_id)
    if series is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment series not found",
        )
    return series


@router.post("/{appointment_id}/series/cancel", response_model=SeriesCancelResult)
async def cancel_appointment_series(
    appointment_id: int,
    cancel_data: SeriesCancelRequest,
    db: AsyncSession = Depends(get_db),
):
    """Cancel every remaining appointment of the series a member belongs to."""
    try:
        result = await MultiDayBookingService(db).cancel_series(
            appointment_id, cancel_data
        )
    except Exception as e:
        logger.error(
            "Failed to cancel appointment series",
            appointment_id=appointment_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel appointment series",
        )

    if not result.success:
        raise booking_http_error(result.error_code, result.error)
    return result
