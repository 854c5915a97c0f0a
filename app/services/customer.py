from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer

logger = structlog.get_logger(__name__)


class CustomerService:
    """Customer records kept in step with booking activity."""

    async def get_by_email(
        self, db: AsyncSession, business_id: int, email: str
    ) -> Optional[Customer]:
        result = await db.execute(
            select(Customer).where(
                and_(
                    Customer.business_id == business_id,
                    func.lower(Customer.email) == email.lower(),
                )
            )
        )
        return result.scalar_one_or_none()

    async def upsert_for_booking(
        self,
        db: AsyncSession,
        business_id: int,
        name: str,
        email: str,
        phone: Optional[str],
        booked_at: datetime,
        bookings: int = 1,
    ) -> Customer:
        """Match by (business, email), refresh contact details and bump counters."""
        customer = await self.get_by_email(db, business_id, email)

        if customer is None:
            customer = Customer(
                business_id=business_id,
                name=name,
                email=email.lower(),
                phone=phone,
                total_bookings=bookings,
                cancelled_bookings=0,
                no_show_count=0,
                first_booking_at=booked_at,
                last_booking_at=booked_at,
            )
            db.add(customer)
            await db.flush()
            logger.info(
                "Customer created from booking",
                business_id=business_id,
                customer_id=customer.id,
            )
            return customer

        customer.name = name
        if phone:
            customer.phone = phone
        customer.total_bookings = (customer.total_bookings or 0) + bookings
        customer.last_booking_at = booked_at
        if customer.first_booking_at is None:
            customer.first_booking_at = booked_at
        await db.flush()
        return customer

    async def record_cancellation(
        self, db: AsyncSession, customer_id: Optional[int], count: int = 1
    ) -> None:
        if customer_id is None or count <= 0:
            return
        customer = await db.get(Customer, customer_id)
        if customer is None:
            logger.warning("Customer missing for cancellation", customer_id=customer_id)
            return
        customer.cancelled_bookings = (customer.cancelled_bookings or 0) + count

    async def record_no_show(self, db: AsyncSession, customer_id: Optional[int]) -> None:
        if customer_id is None:
            return
        customer = await db.get(Customer, customer_id)
        if customer is not None:
            customer.no_show_count = (customer.no_show_count or 0) + 1
