from decimal import Decimal
from typing import Any, Optional
import logging

from pydantic import ValidationError

from app.models.business import Business
from app.models.service import UNLIMITED_ADVANCE_DAYS, Service
from app.schemas.scheduling import BookingRules, BookingSettings


logger = logging.getLogger(__name__)

DEFAULT_BOOKING_RULES = BookingRules(
    service_duration=60,
    buffer_time=15,
    slot_interval=15,
    advance_booking_days=30,
    same_day_booking=True,
    same_day_lead_time=60,
    requires_approval=False,
    requires_deposit=False,
    deposit_amount=Decimal("0"),
)

UNLIMITED_ADVANCE_WINDOW_DAYS = 365


def parse_booking_settings(raw: Optional[dict[str, Any]]) -> BookingSettings:
    """Validate a business settings blob, ignoring unknown keys."""
    if not raw:
        return BookingSettings()
    try:
        return BookingSettings.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid booking settings: {e.errors()[0]['msg']}")


def _pick(override, fallback):
    return fallback if override is None else override


def resolve_booking_rules(
    business: Optional[Business] = None,
    service: Optional[Service] = None,
    duration_override: Optional[int] = None,
    defaults: BookingRules = DEFAULT_BOOKING_RULES,
) -> BookingRules:
    """
    Merge defaults, business settings and service overrides.

    Priority is defaults < business < service < explicit duration. Every field
    is resolved here so downstream code never sees a missing value.
    """
    settings = parse_booking_settings(business.settings if business else None)

    duration = _pick(settings.default_duration, defaults.service_duration)
    buffer_time = _pick(settings.buffer_time, defaults.buffer_time)
    advance_days = _pick(settings.advance_booking_days, defaults.advance_booking_days)
    requires_approval = _pick(settings.require_approval, defaults.requires_approval)
    requires_deposit = _pick(settings.require_deposit, defaults.requires_deposit)
    deposit_amount = defaults.deposit_amount

    if service is not None:
        duration = service.duration_minutes
        buffer_time = _pick(service.buffer_time_minutes, buffer_time)
        requires_approval = requires_approval or bool(service.requires_approval)
        if service.requires_deposit:
            requires_deposit = True
            deposit_amount = Decimal(service.deposit_amount or 0)
        if service.max_advance_booking_days is not None:
            advance_days = (
                UNLIMITED_ADVANCE_WINDOW_DAYS
                if service.max_advance_booking_days == UNLIMITED_ADVANCE_DAYS
                else service.max_advance_booking_days
            )

    if duration_override is not None:
        duration = duration_override

    rules = BookingRules(
        service_duration=duration,
        buffer_time=buffer_time,
        slot_interval=_pick(settings.slot_interval, defaults.slot_interval),
        advance_booking_days=advance_days,
        same_day_booking=_pick(settings.same_day_booking, defaults.same_day_booking),
        same_day_lead_time=_pick(
            settings.same_day_lead_time, defaults.same_day_lead_time
        ),
        requires_approval=requires_approval,
        requires_deposit=requires_deposit,
        deposit_amount=deposit_amount,
    )
    logger.debug(f"Resolved booking rules: {rules.model_dump()}")
    return rules
