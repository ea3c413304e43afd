from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, Enum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from marketplace.database import Base

class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class PaymentType(str, enum.Enum):
    INSTANT = "instant"
    CASH_ON_DELIVERY = "cash_on_delivery"

def _values(enum_cls):
    return [member.value for member in enum_cls]

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_provider_timeline", "tenant_id", "provider_id", "scheduled_at"),
    )

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    booking_type = Column(String(20), default="one_time")
    status = Column(Enum(BookingStatus, values_callable=_values, native_enum=False, length=20),
                    default=BookingStatus.PENDING, nullable=False)
    # Naive local timestamps, second precision
    scheduled_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False)
    commission_amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(10))
    payment_status = Column(Enum(PaymentStatus, values_callable=_values, native_enum=False, length=20),
                            default=PaymentStatus.PENDING, nullable=False)
    payment_type = Column(Enum(PaymentType, values_callable=_values, native_enum=False, length=20),
                          default=PaymentType.INSTANT, nullable=False)
    customer_address = Column(Text)  # JSON-serialized snapshot
    notes = Column(Text)
    completed_at = Column(DateTime)
    cancellation_reason = Column(Text)
    cancelled_by = Column(String(36), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    customer = relationship("User", back_populates="bookings", foreign_keys=[customer_id])
    provider = relationship("ServiceProvider", back_populates="bookings")
    service = relationship("Service")
    addons = relationship("BookingAddon", back_populates="booking")
    payments = relationship("Payment", back_populates="booking")

class BookingAddon(Base):
    __tablename__ = "booking_addons"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    addon_id = Column(String(36), ForeignKey("service_addons.id"), nullable=False)
    price = Column(Float, nullable=False)  # snapshot at booking time
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    booking = relationship("Booking", back_populates="addons")
    addon = relationship("ServiceAddon")
