# Import all models to ensure they are registered with SQLAlchemy
from . import (
    appointment,
    business,
    business_hours,
    customer,
    service,
    special_date,
)

__all__ = [
    "appointment",
    "business",
    "business_hours",
    "customer",
    "service",
    "special_date",
]
