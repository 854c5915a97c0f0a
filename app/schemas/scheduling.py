from datetime import date as date_type
from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum

from app.utils.time import is_valid_time


def validate_hhmm(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_time(value):
        raise ValueError(f"Invalid time of day: {value} (expected HH:MM)")
    return value


class SlotReason(str, Enum):
    CLOSED = "closed"
    SPECIAL_DATE = "special_date"
    BOOKED = "booked"
    BUFFER = "buffer"
    PAST = "past"
    BREAK = "break"


class DayClosedReason(str, Enum):
    SPECIAL_DATE = "special_date"
    NO_HOURS_CONFIGURED = "no_hours_configured"
    REGULAR_CLOSED = "regular_closed"


class BookingErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    CLOSED_DAY = "closed_day"
    OUT_OF_HOURS = "out_of_hours"
    CONFLICT = "conflict"
    PAST_TIME = "past_time"
    ADVANCE_WINDOW_EXCEEDED = "advance_window_exceeded"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    SERIES_PARTIALLY_UNAVAILABLE = "series_partially_unavailable"


# Conflict detection


class BookedInterval(BaseModel):
    """An existing appointment mapped onto one local day, in minutes."""

    start: int
    end: int
    appointment_id: Optional[int] = None
    customer_name: Optional[str] = None


class ConflictResult(BaseModel):
    has_conflict: bool
    reason: Optional[SlotReason] = None
    interval: Optional[BookedInterval] = None


class ConflictDetail(BaseModel):
    appointment_id: Optional[int] = None
    start_time: str
    end_time: str
    reason: SlotReason
    customer_name: Optional[str] = None


# Day availability


class TimeSlot(BaseModel):
    start_time: str
    end_time: str
    available: bool
    reason: Optional[SlotReason] = None


class SpecialDateInfo(BaseModel):
    name: str
    is_closed: bool


class BusinessHoursWindow(BaseModel):
    open_time: str
    close_time: str


class DayAvailability(BaseModel):
    date: date_type
    day_of_week: int = Field(..., ge=0, le=6)
    is_open: bool
    reason: Optional[DayClosedReason] = None
    special_date: Optional[SpecialDateInfo] = None
    business_hours: Optional[BusinessHoursWindow] = None
    slots: List[TimeSlot] = Field(default_factory=list)

    @property
    def available_slots(self) -> List[TimeSlot]:
        return [slot for slot in self.slots if slot.available]


class SlotGenerationConfig(BaseModel):
    service_duration: int = Field(60, ge=5, le=480)
    buffer_time: int = Field(15, ge=0)
    slot_interval: int = Field(15, ge=5, le=240)
    advance_booking_days: int = Field(30, ge=0)
    same_day_booking: bool = True
    same_day_lead_time: int = Field(60, ge=0)


# Booking rules


class BookingSettings(BaseModel):
    """Business-level booking settings; unset fields fall back to defaults."""

    buffer_time: Optional[int] = Field(None, ge=0)
    slot_interval: Optional[int] = Field(None, ge=5, le=240)
    advance_booking_days: Optional[int] = Field(None, ge=0)
    same_day_booking: Optional[bool] = None
    same_day_lead_time: Optional[int] = Field(None, ge=0)
    default_duration: Optional[int] = Field(None, ge=5, le=480)
    require_approval: Optional[bool] = None
    require_deposit: Optional[bool] = None

    model_config = {"extra": "ignore"}


class BookingRules(BaseModel):
    """Effective rules for one (business, service) pair."""

    service_duration: int
    buffer_time: int
    slot_interval: int
    advance_booking_days: int
    same_day_booking: bool
    same_day_lead_time: int
    requires_approval: bool
    requires_deposit: bool
    deposit_amount: Decimal = Decimal("0")

    def to_slot_config(self) -> SlotGenerationConfig:
        return SlotGenerationConfig(
            service_duration=self.service_duration,
            buffer_time=self.buffer_time,
            slot_interval=self.slot_interval,
            advance_booking_days=self.advance_booking_days,
            same_day_booking=self.same_day_booking,
            same_day_lead_time=self.same_day_lead_time,
        )


# Aggregates


class BookingWindow(BaseModel):
    earliest_date: date_type
    latest_date: date_type


class AvailabilitySummary(BaseModel):
    total_days: int
    total_slots: int
    available_slots: int
    booked_slots: int
    percentage_available: int
    overall_utilization: int
    open_days: int
    closed_days: int
    busiest_day: Optional[date_type] = None
    quietest_day: Optional[date_type] = None


class PeakHour(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    count: int


class NextAvailableSlot(BaseModel):
    date: date_type
    start_time: str
    end_time: str


# Availability query / slot check


class AvailabilityQuery(BaseModel):
    business_id: Optional[int] = None
    slug: Optional[str] = None
    date: Optional[date_type] = None
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    days: Optional[int] = Field(None, ge=1)
    service_id: Optional[int] = None
    duration: Optional[int] = Field(None, ge=5, le=480)
    include_slots: bool = True
    include_summary: bool = False
    include_rules: bool = False
    include_heatmap: bool = False
    include_peak_hours: bool = False
    peak_hours_limit: int = Field(5, ge=1, le=24)
    find_next: bool = False
    preferred_time: Optional[str] = None

    @field_validator("preferred_time")
    @classmethod
    def validate_preferred_time(cls, v):
        return validate_hhmm(v)

    @model_validator(mode="after")
    def validate_identifiers(self):
        if self.business_id is None and not self.slug:
            raise ValueError("Either business_id or slug is required")
        if self.end_date is not None and self.start_date is None:
            raise ValueError("start_date is required when end_date is given")
        return self


class AvailabilityResponse(BaseModel):
    business_id: int
    timezone: str
    booking_window: BookingWindow
    days: List[DayAvailability] = Field(default_factory=list)
    summary: Optional[AvailabilitySummary] = None
    rules: Optional[BookingRules] = None
    heatmap: Optional[Dict[date_type, int]] = None
    peak_hours: Optional[List[PeakHour]] = None
    next_available: Optional[NextAvailableSlot] = None


class SlotCheckRequest(BaseModel):
    business_id: int
    service_id: Optional[int] = None
    date: date_type
    start_time: str
    duration: Optional[int] = Field(None, ge=5, le=480)
    exclude_appointment_id: Optional[int] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return validate_hhmm(v)


class SlotCheckResult(BaseModel):
    available: bool
    error_code: Optional[BookingErrorCode] = None
    reason: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    conflicts: List[ConflictDetail] = Field(default_factory=list)
    business_hours: Optional[BusinessHoursWindow] = None
