from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Float, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from marketplace.core.config import settings
from marketplace.database import Base
from marketplace.models.tenant import generate_id

class ServiceProvider(Base):
    __tablename__ = "service_providers"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    business_name = Column(String(255), nullable=False)
    commission_rate = Column(Float, nullable=False, default=10.0)  # percent of booking total
    rating = Column(Float, default=0.0)
    total_reviews = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="provider_profile")
    services = relationship("Service", back_populates="provider")
    bookings = relationship("Booking", back_populates="provider")

class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    base_price = Column(Float, nullable=False)
    currency = Column(String(10), default=settings.DEFAULT_CURRENCY)
    duration_minutes = Column(Integer)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    provider = relationship("ServiceProvider", back_populates="services")
    addons = relationship("ServiceAddon", back_populates="service")

class ServiceAddon(Base):
    __tablename__ = "service_addons"

    id = Column(String(36), primary_key=True, default=generate_id)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    service = relationship("Service", back_populates="addons")
