import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.config import settings as app_settings
from app.core.database import Base


class Business(Base):
    """Business model with timezone and booking settings."""

    __tablename__ = "businesses"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Business profile
    description = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)

    # Timezone is authoritative for every "today"/"now" decision
    timezone = Column(String(50), nullable=False, default=app_settings.DEFAULT_TIMEZONE)
    currency = Column(String(10), nullable=False, default="GBP")

    # Booking settings, parsed through BookingSettings
    settings = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    business_hours = relationship(
        "BusinessHours",
        back_populates="business",
        order_by="BusinessHours.day_of_week",
        cascade="all, delete-orphan",
    )
    special_dates = relationship(
        "SpecialDate", back_populates="business", cascade="all, delete-orphan"
    )
    services = relationship("Service", back_populates="business")

    def __repr__(self):
        return f"<Business(id={self.id}, slug='{self.slug}', timezone='{self.timezone}')>"
