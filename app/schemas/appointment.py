from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field, field_validator

# Import enums from the model to avoid duplication
from app.models.appointment import AppointmentStatus, BookingSource, CancellationSource
from app.schemas.scheduling import BookingErrorCode, ConflictDetail, validate_hhmm
from app.utils.time import as_utc


class CustomerContact(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_notes: Optional[str] = None
    business_notes: Optional[str] = None


class AppointmentCreate(CustomerContact):
    business_id: int
    service_id: int
    date: date_type
    start_time: str
    booking_source: BookingSource = BookingSource.WEBSITE

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return validate_hhmm(v)


class AppointmentReschedule(BaseModel):
    date: date_type
    start_time: str
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return validate_hhmm(v)


class AppointmentCancel(BaseModel):
    source: CancellationSource = CancellationSource.CUSTOMER
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentStatusTransition(BaseModel):
    new_status: AppointmentStatus
    notes: Optional[str] = None


# Response schemas
class AppointmentResponse(BaseModel):
    id: int
    uuid: UUID
    business_id: int
    service_id: int
    customer_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    timezone: str
    status: AppointmentStatus
    previous_status: Optional[AppointmentStatus] = None

    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    customer_notes: Optional[str] = None
    business_notes: Optional[str] = None

    booking_source: Optional[BookingSource] = None
    total_amount: Optional[Decimal] = None
    requires_deposit: bool = False
    deposit_amount: Optional[Decimal] = None
    confirmed_at: Optional[datetime] = None

    # Series
    series_id: Optional[UUID] = None
    parent_id: Optional[int] = None

    # Cancellation / reschedule audit
    cancelled_at: Optional[datetime] = None
    cancellation_source: Optional[CancellationSource] = None
    cancellation_reason: Optional[str] = None
    rescheduled_from: Optional[datetime] = None
    rescheduled_at: Optional[datetime] = None
    reschedule_reason: Optional[str] = None
    reschedule_count: int = 0

    model_config = {"from_attributes": True}

    @field_validator(
        "start_time",
        "end_time",
        "confirmed_at",
        "cancelled_at",
        "rescheduled_from",
        "rescheduled_at",
    )
    @classmethod
    def normalise_utc(cls, v):
        return as_utc(v) if v is not None else v


class BookingResult(BaseModel):
    """Outcome of a lifecycle operation; rule violations are values, not errors."""

    success: bool
    appointment: Optional[AppointmentResponse] = None
    error: Optional[str] = None
    error_code: Optional[BookingErrorCode] = None
    conflicts: List[ConflictDetail] = Field(default_factory=list)

    @classmethod
    def failure(
        cls,
        error_code: BookingErrorCode,
        error: str,
        conflicts: Optional[List[ConflictDetail]] = None,
    ) -> "BookingResult":
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            conflicts=conflicts or [],
        )
