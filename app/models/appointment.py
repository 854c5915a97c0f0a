from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Boolean,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
import enum
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


class CancellationSource(enum.Enum):
    CUSTOMER = "customer"
    BUSINESS = "business"
    SYSTEM = "system"


class BookingSource(enum.Enum):
    WEBSITE = "website"
    ADMIN = "admin"
    API = "api"
    PHONE = "phone"
    WALK_IN = "walk_in"


ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    ],
    AppointmentStatus.COMPLETED: [],  # Final state
    AppointmentStatus.CANCELLED: [],  # Final state
    AppointmentStatus.NO_SHOW: [],  # Final state
    AppointmentStatus.RESCHEDULED: [],  # Final state
}

# Statuses that no longer occupy the calendar
NON_BLOCKING_STATUSES = (
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.NO_SHOW.value,
)

# Statuses that refuse cancel / reschedule
CANCEL_TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.CANCELLED.value,
)
RESCHEDULE_TERMINAL_STATUSES = CANCEL_TERMINAL_STATUSES + (
    AppointmentStatus.NO_SHOW.value,
)


class Appointment(Base):
    """Booked interval on a business calendar with lifecycle and audit trail."""

    __tablename__ = "appointments"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)

    # Scheduling details
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(50), nullable=False)

    # Status management
    status = Column(
        String(20), nullable=False, default=AppointmentStatus.CONFIRMED.value, index=True
    )
    previous_status = Column(String(20), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Customer snapshot at booking time
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(20), nullable=True)
    customer_notes = Column(Text, nullable=True)
    business_notes = Column(Text, nullable=True)

    # Booking details
    booking_source = Column(String(20), default=BookingSource.WEBSITE.value)
    total_amount = Column(Numeric(10, 2), nullable=True)
    requires_deposit = Column(Boolean, default=False, nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=True)

    # Multi-day series; the parent alone carries the pattern and series end
    series_id = Column(Uuid, nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    recurrence_pattern = Column(JSON, nullable=True)
    series_end_time = Column(DateTime(timezone=True), nullable=True)

    # Cancellation audit
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_source = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Reschedule audit
    rescheduled_from = Column(DateTime(timezone=True), nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    reschedule_reason = Column(Text, nullable=True)
    reschedule_count = Column(Integer, default=0, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_end_after_start"),
        CheckConstraint("duration_minutes > 0", name="check_positive_duration"),
        CheckConstraint(
            "reschedule_count >= 0", name="check_non_negative_reschedule_count"
        ),
        Index("ix_appointments_business_start", "business_id", "start_time"),
    )

    # Relationships
    business = relationship("Business")
    service = relationship("Service")
    customer = relationship("Customer")
    parent = relationship("Appointment", remote_side=[id])

    def set_interval(self, start_time: datetime, duration_minutes: int) -> None:
        """Set start, end and duration together so they never drift."""
        self.start_time = start_time
        self.duration_minutes = duration_minutes
        self.end_time = start_time + timedelta(minutes=duration_minutes)

    def can_transition_to(self, new_status: AppointmentStatus) -> bool:
        """Check if appointment can transition to the new status."""
        current = AppointmentStatus(self.status)
        return new_status in ALLOWED_TRANSITIONS.get(current, [])

    def transition_to(
        self, new_status: AppointmentStatus, at: Optional[datetime] = None
    ) -> bool:
        """Transition appointment to new status with validation."""
        if not self.can_transition_to(new_status):
            return False

        self.mark_status(new_status, at)
        return True

    def mark_status(
        self, new_status: AppointmentStatus, at: Optional[datetime] = None
    ) -> None:
        """Record a status change and its timestamp without workflow checks."""
        at = at or datetime.now(timezone.utc)
        self.previous_status = self.status
        self.status = new_status.value
        self.status_changed_at = at

        if new_status == AppointmentStatus.CONFIRMED and self.confirmed_at is None:
            self.confirmed_at = at
        elif new_status == AppointmentStatus.COMPLETED:
            self.completed_at = at
        elif new_status == AppointmentStatus.CANCELLED:
            self.cancelled_at = at

    @property
    def is_blocking(self) -> bool:
        """Whether the appointment still occupies its calendar interval."""
        return self.status not in NON_BLOCKING_STATUSES

    @property
    def is_series_member(self) -> bool:
        return self.series_id is not None

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, status='{self.status}', "
            f"start='{self.start_time}', business_id={self.business_id})>"
        )
