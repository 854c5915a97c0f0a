from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.business import Business
from app.services.scheduling import SchedulingEngineService

logger = structlog.get_logger(__name__)


class BusinessContext:
    """Business whose calendar a request operates on."""

    def __init__(self, business: Business):
        self.business = business
        self.business_id = business.id
        self.slug = business.slug
        self.timezone = business.timezone
        self.is_active = business.is_active


async def get_business_context(
    business_id: Optional[int] = Query(None, description="Business ID"),
    slug: Optional[str] = Query(None, description="Business slug"),
    db: AsyncSession = Depends(get_db),
) -> BusinessContext:
    """
    Resolve the business addressed by id or slug.

    This dependency ensures that:
    1. One identifier was supplied
    2. The business exists
    3. The business is active
    """
    if business_id is None and not slug:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either business_id or slug is required",
        )

    try:
        business = await SchedulingEngineService(db).get_business(business_id, slug)

        if not business:
            logger.warning(
                "Business not found for context", business_id=business_id, slug=slug
            )
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
            )

        if not business.is_active:
            logger.warning(
                "Inactive business access attempted", business_id=business.id
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Business is inactive"
            )

        return BusinessContext(business)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(
            "Failed to establish business context",
            business_id=business_id,
            slug=slug,
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to establish business context",
        )
