from .tenant import Tenant, User, UserRole, generate_id
from .provider import ServiceProvider, Service, ServiceAddon
from .booking import Booking, BookingAddon, BookingStatus, PaymentStatus, PaymentType
from .payment import Payment, PaymentMethod, PaymentRecordStatus
from .audit import AuditLog

from sqlalchemy.orm import configure_mappers
configure_mappers()

__all__ = [
    "Tenant", "User", "UserRole", "generate_id",
    "ServiceProvider", "Service", "ServiceAddon",
    "Booking", "BookingAddon", "BookingStatus", "PaymentStatus", "PaymentType",
    "Payment", "PaymentMethod", "PaymentRecordStatus",
    "AuditLog"
]
