from .bookings import router as bookings_router
from .payments import router as payments_router
from .admin import router as admin_router

__all__ = [
    "bookings_router",
    "payments_router",
    "admin_router"
]
