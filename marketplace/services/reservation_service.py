import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.context import RequestContext
from marketplace.core.errors import ErrorKind, Outcome
from marketplace.models.booking import Booking, BookingAddon, BookingStatus, PaymentStatus, PaymentType
from marketplace.models.provider import Service, ServiceAddon, ServiceProvider
from marketplace.services.audit_service import AuditEntry, AuditLogService, record_audit
from marketplace.services.availability import find_conflicting_bookings
from marketplace.utils.scheduling import booking_window, parse_scheduled_at

logger = logging.getLogger(__name__)

ALLOWED_PAYMENT_TYPES = tuple(payment_type.value for payment_type in PaymentType)

@dataclass
class ReservationRequest:
    service_id: Optional[str]
    provider_id: Optional[str]
    scheduled_at: Optional[str]
    customer_address: Optional[Any] = None
    notes: Optional[str] = None
    addons: Optional[List[str]] = field(default_factory=list)
    payment_type: Optional[str] = PaymentType.INSTANT.value

@dataclass(frozen=True)
class Reservation:
    booking_id: str
    total_amount: float
    commission_amount: float

def calculate_commission(total_amount: float, commission_rate: Optional[float]) -> float:
    return round(total_amount * (commission_rate or 0) / 100, 2)

def _unique(ids):
    seen = []
    for addon_id in ids or []:
        if addon_id and addon_id not in seen:
            seen.append(addon_id)
    return seen

def bookable_service_query(db: Session, tenant_id: str, service_id: str, provider_id: str):
    """Active service of the provider, joined to the provider for its commission rate.

    FOR UPDATE covers both joined rows, so holding it serializes every
    reservation against the provider's timeline.
    """
    return db.query(Service, ServiceProvider.commission_rate).join(
        ServiceProvider, Service.provider_id == ServiceProvider.id
    ).filter(
        Service.id == service_id,
        Service.provider_id == provider_id,
        Service.tenant_id == tenant_id,
        Service.is_active == True
    ).with_for_update()

class ReservationService:
    @staticmethod
    def reserve(
        db: Session,
        context: RequestContext,
        request: ReservationRequest,
        audit_sink: Optional[AuditLogService] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Outcome[Reservation]:
        """Create a pending booking if the provider's slot is free.

        The service row (joined with its provider) and every overlapping
        booking are locked for the whole transaction, so of two concurrent
        requests for overlapping slots only one can commit.
        """
        payment_type = request.payment_type or PaymentType.INSTANT.value
        if payment_type not in ALLOWED_PAYMENT_TYPES:
            return Outcome.failure(
                ErrorKind.VALIDATION,
                'Invalid payment type. Must be either "instant" or "cash_on_delivery"'
            )

        if not request.service_id or not request.provider_id or not request.scheduled_at:
            return Outcome.failure(
                ErrorKind.VALIDATION,
                "Service ID, Provider ID, and scheduled time are required"
            )

        try:
            scheduled_at = parse_scheduled_at(request.scheduled_at)
        except ValueError:
            return Outcome.failure(
                ErrorKind.VALIDATION,
                "Scheduled time must look like YYYY-MM-DDTHH:MM:SS"
            )

        addon_ids = _unique(request.addons)

        try:
            row = bookable_service_query(
                db, context.tenant_id, request.service_id, request.provider_id
            ).first()

            if row is None:
                db.rollback()
                logger.info("Service %s not bookable for provider %s", request.service_id, request.provider_id)
                return Outcome.failure(ErrorKind.NOT_FOUND, "Service not found or not available")

            service, commission_rate = row
            duration = service.duration_minutes or settings.DEFAULT_SERVICE_DURATION_MINUTES
            scheduled_at, ends_at = booking_window(scheduled_at, duration)

            conflicts = find_conflicting_bookings(
                db, context.tenant_id, request.provider_id, scheduled_at, ends_at
            )
            if conflicts:
                db.rollback()
                logger.info(
                    "Slot %s-%s for provider %s conflicts with %s",
                    scheduled_at, ends_at, request.provider_id, conflicts
                )
                return Outcome.failure(ErrorKind.CONFLICT, "Selected time slot is not available")

            total_amount = float(service.base_price)
            addons = []
            if addon_ids:
                addons = db.query(ServiceAddon).filter(
                    ServiceAddon.service_id == service.id,
                    ServiceAddon.id.in_(addon_ids)
                ).all()
                total_amount += sum(float(addon.price) for addon in addons)

            total_amount = round(total_amount, 2)
            commission_amount = calculate_commission(total_amount, commission_rate)

            booking_id = str(uuid.uuid4())
            db.add(Booking(
                id=booking_id,
                tenant_id=context.tenant_id,
                customer_id=context.user_id,
                provider_id=request.provider_id,
                service_id=service.id,
                booking_type="one_time",
                status=BookingStatus.PENDING,
                scheduled_at=scheduled_at,
                ends_at=ends_at,
                duration_minutes=duration,
                total_amount=total_amount,
                commission_amount=commission_amount,
                currency=service.currency or settings.DEFAULT_CURRENCY,
                payment_status=PaymentStatus.PENDING,
                payment_type=PaymentType(payment_type),
                customer_address=json.dumps(request.customer_address) if request.customer_address is not None else None,
                notes=request.notes or None,
            ))
            # Parent row first so the addon foreign keys resolve
            db.flush()

            for addon in addons:
                db.add(BookingAddon(booking_id=booking_id, addon_id=addon.id, price=addon.price))

            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error creating booking for service %s", request.service_id)
            return Outcome.failure(ErrorKind.INTERNAL, "Failed to create booking")

        logger.info("Booking %s created for provider %s at %s", booking_id, request.provider_id, scheduled_at)

        record_audit(audit_sink, AuditEntry(
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            action="customer.booking.create",
            resource_type="booking",
            resource_id=booking_id,
            changes={
                "serviceId": request.service_id,
                "providerId": request.provider_id,
                "totalAmount": total_amount,
                "paymentType": payment_type,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ), background_tasks)

        return Outcome.success(Reservation(
            booking_id=booking_id,
            total_amount=total_amount,
            commission_amount=commission_amount,
        ))
