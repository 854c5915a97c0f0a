import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func

from app.core.database import Base


class Customer(Base):
    """Customer record matched by business and email at booking time."""

    __tablename__ = "customers"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(
        Integer, ForeignKey("businesses.id"), nullable=False, index=True
    )

    # Contact information
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(20), nullable=True)

    # Booking counters
    total_bookings = Column(Integer, default=0, nullable=False)
    cancelled_bookings = Column(Integer, default=0, nullable=False)
    no_show_count = Column(Integer, default=0, nullable=False)
    first_booking_at = Column(DateTime(timezone=True), nullable=True)
    last_booking_at = Column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("business_id", "email", name="uq_customer_business_email"),
    )

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}', bookings={self.total_bookings})>"
