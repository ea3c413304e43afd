from sqlalchemy import Column, String, DateTime, Text, Float, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from marketplace.database import Base
from marketplace.models.booking import _values
from marketplace.models.tenant import generate_id

class PaymentMethod(str, enum.Enum):
    CARD = "card"
    WALLET = "wallet"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"

class PaymentRecordStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(10))
    payment_method = Column(Enum(PaymentMethod, values_callable=_values, native_enum=False, length=20), nullable=False)
    gateway_reference = Column(String(100))
    status = Column(Enum(PaymentRecordStatus, values_callable=_values, native_enum=False, length=20),
                    default=PaymentRecordStatus.PENDING, nullable=False)
    payment_data = Column(Text)  # JSON: method, sandbox flag, card last four
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    booking = relationship("Booking", back_populates="payments")
