from datetime import date as date_type, datetime
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID
from pydantic import BaseModel, Field, field_validator

from app.models.appointment import AppointmentStatus, BookingSource, CancellationSource
from app.schemas.appointment import AppointmentResponse, CustomerContact
from app.schemas.scheduling import BookingErrorCode, ConflictDetail, validate_hhmm


class ConsecutivePattern(BaseModel):
    type: Literal["consecutive"] = "consecutive"
    days: int = Field(2, ge=2, le=14)


class WeeklyPattern(BaseModel):
    """Weekdays use 0=Sunday .. 6=Saturday."""

    type: Literal["weekly"] = "weekly"
    weekdays: List[int] = Field(..., min_length=1, max_length=7)
    weeks: int = Field(1, ge=1, le=12)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v))


class CustomPattern(BaseModel):
    type: Literal["custom"] = "custom"
    dates: List[date_type] = Field(..., min_length=1, max_length=90)


RecurrencePattern = Annotated[
    Union[ConsecutivePattern, WeeklyPattern, CustomPattern],
    Field(discriminator="type"),
]


class MultiDayBookingCreate(CustomerContact):
    business_id: int
    service_id: int
    start_date: date_type
    start_time: str
    pattern: RecurrencePattern
    booking_source: BookingSource = BookingSource.WEBSITE

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return validate_hhmm(v)


class SeriesDateCheck(BaseModel):
    date: date_type
    start_time: str
    end_time: str
    available: bool
    error_code: Optional[BookingErrorCode] = None
    reason: Optional[str] = None
    conflicts: List[ConflictDetail] = Field(default_factory=list)


class SeriesAvailabilityResult(BaseModel):
    available: bool
    dates: List[SeriesDateCheck] = Field(default_factory=list)

    @property
    def unavailable(self) -> List[SeriesDateCheck]:
        return [check for check in self.dates if not check.available]


class SeriesAppointmentSummary(BaseModel):
    appointment_id: int
    date: date_type
    start_time: str
    end_time: str
    status: AppointmentStatus


class SeriesBookingResult(BaseModel):
    success: bool
    series_id: Optional[UUID] = None
    parent_id: Optional[int] = None
    appointments: List[SeriesAppointmentSummary] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[BookingErrorCode] = None
    unavailable_dates: List[SeriesDateCheck] = Field(default_factory=list)


class SeriesDetail(BaseModel):
    series_id: UUID
    parent_id: int
    total_sessions: int
    pattern: Optional[RecurrencePattern] = None
    series_end_time: Optional[datetime] = None
    appointments: List[AppointmentResponse] = Field(default_factory=list)


class SeriesCancelRequest(BaseModel):
    source: CancellationSource = CancellationSource.CUSTOMER
    reason: Optional[str] = Field(None, max_length=500)


class SeriesCancelResult(BaseModel):
    success: bool
    cancelled_count: int = 0
    message: Optional[str] = None
    series_id: Optional[UUID] = None
    error: Optional[str] = None
    error_code: Optional[BookingErrorCode] = None
