from fastapi import APIRouter

from app.api.v1.endpoints import appointments, scheduling, series

api_router = APIRouter()

# Availability endpoints
api_router.include_router(
    scheduling.router, prefix="/availability", tags=["availability"]
)

# Multi-day series endpoints (registered before the single-appointment routes)
api_router.include_router(series.router, prefix="/appointments", tags=["series"])

# Appointment lifecycle endpoints
api_router.include_router(
    appointments.router, prefix="/appointments", tags=["appointments"]
)
