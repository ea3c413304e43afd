from .booking import (
    BookingCreate, BookingCreatedResponse, BookingCancel, BookingStatusResponse,
    BookingResponse, BookingDetailResponse, BookingAddonResponse, AvailableSlotsResponse
)
from .payment import CardData, PaymentCreate, PaymentCreatedResponse
from .audit import AuditLogResponse, AuditLogPage

__all__ = [
    "BookingCreate", "BookingCreatedResponse", "BookingCancel", "BookingStatusResponse",
    "BookingResponse", "BookingDetailResponse", "BookingAddonResponse", "AvailableSlotsResponse",
    "CardData", "PaymentCreate", "PaymentCreatedResponse",
    "AuditLogResponse", "AuditLogPage"
]
