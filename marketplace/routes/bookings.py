from fastapi import APIRouter, BackgroundTasks, Depends, Query, status as http_status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from marketplace.database import get_db
from marketplace.core.context import RequestContext
from marketplace.core.dependencies import get_request_context, require_customer, get_audit_sink
from marketplace.core.errors import raise_for_outcome
from marketplace.models.booking import BookingStatus
from marketplace.schemas.booking import (
    BookingCreate, BookingCreatedResponse, BookingCancel, BookingStatusResponse,
    BookingResponse, BookingDetailResponse, AvailableSlotsResponse
)
from marketplace.services.audit_service import AuditLogService
from marketplace.services.booking_service import BookingService
from marketplace.services.reservation_service import ReservationService, ReservationRequest

router = APIRouter()

@router.post("", response_model=BookingCreatedResponse, status_code=http_status.HTTP_201_CREATED)
def create_booking(
    booking_data: BookingCreate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(require_customer),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Reserve a provider's time slot for a service"""
    request = ReservationRequest(
        service_id=booking_data.service_id,
        provider_id=booking_data.provider_id,
        scheduled_at=booking_data.scheduled_at,
        customer_address=booking_data.customer_address,
        notes=booking_data.notes,
        addons=booking_data.addons,
        payment_type=booking_data.payment_type,
    )
    reservation = raise_for_outcome(ReservationService.reserve(db, context, request, audit_sink, background_tasks))
    return BookingCreatedResponse(
        booking_id=reservation.booking_id,
        total_amount=reservation.total_amount
    )

@router.get("", response_model=List[BookingResponse])
def get_bookings(
    status: Optional[BookingStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Get bookings for the current user"""
    return BookingService.list_bookings(db, context, status, page, limit)

@router.get("/available-slots", response_model=AvailableSlotsResponse)
def get_available_slots(
    service_id: str = Query(..., alias="serviceId"),
    provider_id: str = Query(..., alias="providerId"),
    day: date = Query(..., alias="date"),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Get free start times for a service on a given day"""
    slots = raise_for_outcome(
        BookingService.get_available_slots(db, context.tenant_id, service_id, provider_id, day)
    )
    return AvailableSlotsResponse(**slots)

@router.get("/{booking_id}", response_model=BookingDetailResponse)
def get_booking(
    booking_id: str,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
):
    """Get booking by ID"""
    return raise_for_outcome(BookingService.get_booking_details(db, context, booking_id))

def _transition(db, context, booking_id, target, audit_sink, background_tasks, reason=None):
    return raise_for_outcome(BookingService.transition(
        db, context, booking_id, target,
        reason=reason, audit_sink=audit_sink, background_tasks=background_tasks
    ))

@router.put("/{booking_id}/confirm", response_model=BookingStatusResponse)
def confirm_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Confirm a pending booking (provider or admin)"""
    return _transition(db, context, booking_id, BookingStatus.CONFIRMED, audit_sink, background_tasks)

@router.put("/{booking_id}/start", response_model=BookingStatusResponse)
def start_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Mark a confirmed booking as in progress"""
    return _transition(db, context, booking_id, BookingStatus.IN_PROGRESS, audit_sink, background_tasks)

@router.put("/{booking_id}/complete", response_model=BookingStatusResponse)
def complete_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Complete a confirmed or in-progress booking"""
    return _transition(db, context, booking_id, BookingStatus.COMPLETED, audit_sink, background_tasks)

@router.put("/{booking_id}/cancel", response_model=BookingStatusResponse)
def cancel_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    cancel_data: Optional[BookingCancel] = None,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Cancel a booking"""
    reason = cancel_data.reason if cancel_data else None
    return _transition(db, context, booking_id, BookingStatus.CANCELLED, audit_sink, background_tasks, reason=reason)

@router.put("/{booking_id}/refund", response_model=BookingStatusResponse)
def refund_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Refund a booking (admin only)"""
    return _transition(db, context, booking_id, BookingStatus.REFUNDED, audit_sink, background_tasks)
