from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Boolean,
    ForeignKey,
    Numeric,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
import uuid

# Sentinel for "no per-service advance cap", treated as one year
UNLIMITED_ADVANCE_DAYS = -1


class Service(Base):
    """Service model with duration, pricing, and booking overrides."""

    __tablename__ = "services"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Service details
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    # NULL inherits the business buffer
    buffer_time_minutes = Column(Integer, nullable=True)

    # Service behavior
    is_active = Column(Boolean, default=True, nullable=False)
    requires_approval = Column(Boolean, default=False, nullable=False)
    requires_deposit = Column(Boolean, default=False, nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=True)
    max_advance_booking_days = Column(
        Integer, nullable=True
    )  # Override business default, -1 for a year

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    business = relationship("Business", back_populates="services")

    __table_args__ = (
        CheckConstraint(
            "duration_minutes >= 5 AND duration_minutes <= 480",
            name="check_service_duration_range",
        ),
        CheckConstraint(
            "buffer_time_minutes IS NULL OR buffer_time_minutes >= 0",
            name="check_non_negative_buffer",
        ),
    )

    def __repr__(self):
        return (
            f"<Service(id={self.id}, name='{self.name}', "
            f"duration={self.duration_minutes}min, price={self.price})>"
        )
