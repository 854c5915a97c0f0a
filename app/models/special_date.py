import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class SpecialDate(Base):
    """Date-specific override of the weekly business hours.

    Holidays, closures and extended-hours days. Recurring rows match the same
    month and day in every year.
    """

    __tablename__ = "special_dates"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)

    date = Column(Date, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    is_closed = Column(Boolean, default=True, nullable=False)
    open_time = Column(String(5), nullable=True)  # HH:MM
    close_time = Column(String(5), nullable=True)  # HH:MM
    is_recurring = Column(Boolean, default=False, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    business = relationship("Business", back_populates="special_dates")

    __table_args__ = (Index("ix_special_dates_business_date", "business_id", "date"),)

    def matches(self, day) -> bool:
        if self.date == day:
            return True
        return bool(self.is_recurring) and (self.date.month, self.date.day) == (
            day.month,
            day.day,
        )

    def __repr__(self):
        return f"<SpecialDate(business_id={self.business_id}, date={self.date}, name='{self.name}')>"
