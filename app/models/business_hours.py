import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class WeekDay(enum.Enum):
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6


class BusinessHours(Base):
    """Recurring weekly opening hours, one row per weekday.

    A missing row means the weekday has no hours configured, which is reported
    differently from a row marked closed.
    """

    __tablename__ = "business_hours"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)

    # 0=Sunday .. 6=Saturday
    day_of_week = Column(Integer, nullable=False)
    open_time = Column(String(5), nullable=False, default="09:00")  # HH:MM
    close_time = Column(String(5), nullable=False, default="17:00")  # HH:MM
    is_closed = Column(Boolean, default=False, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    business = relationship("Business", back_populates="business_hours")

    __table_args__ = (
        UniqueConstraint("business_id", "day_of_week", name="uq_business_hours_day"),
        CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="check_day_of_week_range"
        ),
    )

    def __repr__(self):
        state = "closed" if self.is_closed else f"{self.open_time}-{self.close_time}"
        return f"<BusinessHours(business_id={self.business_id}, day={self.day_of_week}, {state})>"
