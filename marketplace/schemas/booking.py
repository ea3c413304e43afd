from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Optional, List
from datetime import datetime

from marketplace.models.booking import BookingStatus

class BookingCreate(BaseModel):
    # Presence and payment type are checked by the reservation service so
    # they report as validation errors rather than schema errors
    service_id: Optional[str] = None
    provider_id: Optional[str] = None
    scheduled_at: Optional[str] = None
    customer_address: Optional[Any] = None
    notes: Optional[str] = None
    addons: Optional[List[str]] = None
    payment_type: Optional[str] = "instant"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class BookingCreatedResponse(BaseModel):
    success: bool = True
    booking_id: str
    total_amount: float

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class BookingCancel(BaseModel):
    reason: Optional[str] = None

class BookingStatusResponse(BaseModel):
    booking_id: str
    status: BookingStatus

class BookingAddonResponse(BaseModel):
    id: str
    name: Optional[str] = None
    price: float

class BookingResponse(BaseModel):
    id: str
    status: BookingStatus
    payment_status: str
    payment_type: str
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    total_amount: float
    currency: Optional[str] = None
    customer_id: str
    provider_id: str
    provider_name: Optional[str] = None
    service_id: str
    service_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class BookingDetailResponse(BookingResponse):
    commission_amount: float
    customer_address: Optional[Any] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    addons: List[BookingAddonResponse] = []

class AvailableSlotsResponse(BaseModel):
    success: bool = True
    available_slots: List[str]
    duration: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
