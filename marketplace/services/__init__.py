from .audit_service import AuditLogService, AuditEntry
from .reservation_service import ReservationService, ReservationRequest, Reservation
from .booking_service import BookingService
from .payment_service import PaymentService, PaymentRequest

__all__ = [
    "AuditLogService",
    "AuditEntry",
    "ReservationService",
    "ReservationRequest",
    "Reservation",
    "BookingService",
    "PaymentService",
    "PaymentRequest"
]
