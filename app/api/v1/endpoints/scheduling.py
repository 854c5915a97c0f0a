from datetime import date as date_type
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.business import BusinessContext, get_business_context
from app.core.database import get_db
from app.schemas.scheduling import (
    AvailabilityQuery,
    AvailabilityResponse,
    SlotCheckRequest,
    SlotCheckResult,
)
from app.services.scheduling import SchedulingEngineService, SchedulingNotFoundError
from app.utils.time import TIME_PATTERN

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    context: BusinessContext = Depends(get_business_context),
    date: Optional[date_type] = Query(None, description="Single date (YYYY-MM-DD)"),
    start_date: Optional[date_type] = Query(None, description="Range start, inclusive"),
    end_date: Optional[date_type] = Query(None, description="Range end, inclusive"),
    days: Optional[int] = Query(None, ge=1, description="Days from today"),
    service_id: Optional[int] = Query(None, description="Service supplying duration"),
    duration: Optional[int] = Query(
        None, ge=5, le=480, description="Fallback duration in minutes"
    ),
    include_slots: bool = Query(True),
    include_summary: bool = Query(False),
    include_rules: bool = Query(False),
    include_heatmap: bool = Query(False),
    include_peak_hours: bool = Query(False),
    peak_hours_limit: int = Query(5, ge=1, le=24),
    find_next: bool = Query(False, description="Search for the next free slot"),
    preferred_time: Optional[str] = Query(
        None, pattern=TIME_PATTERN.pattern, description="Preferred HH:MM"
    ),
    db: AsyncSession = Depends(get_db),
):
    """
    Get bookable slots for a business over a date or date range.

    Considers:
    - Weekly business hours and special-date overrides
    - Existing appointments and buffer time
    - Same-day lead time and the advance booking window
    """
    try:
        query = AvailabilityQuery(
            business_id=context.business_id,
            date=date,
            start_date=start_date,
            end_date=end_date,
            days=days,
            service_id=service_id,
            duration=duration,
            include_slots=include_slots,
            include_summary=include_summary,
            include_rules=include_rules,
            include_heatmap=include_heatmap,
            include_peak_hours=include_peak_hours,
            peak_hours_limit=peak_hours_limit,
            find_next=find_next,
            preferred_time=preferred_time,
        )
        return await SchedulingEngineService(db).get_availability(query)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.errors(include_url=False, include_context=False),
        )
    except SchedulingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(
            "Failed to compute availability",
            business_id=context.business_id,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get availability",
        )


@router.post("/check", response_model=SlotCheckResult)
async def check_slot(request: SlotCheckRequest, db: AsyncSession = Depends(get_db)):
    """
    Check whether one start time can be booked.

    Unavailable results carry an error code, a readable reason and, for
    conflicts, the overlapping appointments.
    """
    try:
        return await SchedulingEngineService(db).check_slot(request)
    except SchedulingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(
            "Failed to check slot", business_id=request.business_id, error=str(e)
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check slot",
        )
