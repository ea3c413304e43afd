import json
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from marketplace.core.config import settings
from marketplace.core.context import RequestContext
from marketplace.core.errors import ErrorKind, Outcome
from marketplace.models.booking import Booking, BookingAddon, BookingStatus, PaymentStatus, PaymentType
from marketplace.models.provider import Service, ServiceProvider
from marketplace.models.tenant import UserRole
from marketplace.services.audit_service import AuditEntry, AuditLogService, record_audit
from marketplace.services.availability import busy_intervals, find_conflicting_bookings, lock_timeline_of_booking
from marketplace.utils.scheduling import free_slots

logger = logging.getLogger(__name__)

# Forward-only lifecycle; nothing returns a booking to an earlier state
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {
        BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED,
        BookingStatus.CANCELLED, BookingStatus.REFUNDED,
    },
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REFUNDED},
    BookingStatus.COMPLETED: {BookingStatus.REFUNDED},
    BookingStatus.CANCELLED: {BookingStatus.REFUNDED},
    BookingStatus.REFUNDED: set(),
}

TRANSITION_ACTIONS = {
    BookingStatus.CONFIRMED: "provider.booking.confirm",
    BookingStatus.IN_PROGRESS: "provider.booking.start",
    BookingStatus.COMPLETED: "provider.booking.complete",
    BookingStatus.CANCELLED: "booking.cancel",
    BookingStatus.REFUNDED: "admin.booking.refund",
}

def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(BookingStatus(current), set())

def _provider_ids_for_user(db: Session, context: RequestContext):
    rows = db.query(ServiceProvider.id).filter(
        ServiceProvider.tenant_id == context.tenant_id,
        ServiceProvider.user_id == context.user_id
    ).all()
    return [row.id for row in rows]

def _may_act(db: Session, context: RequestContext, booking: Booking, target: BookingStatus) -> bool:
    if context.role == UserRole.ADMIN:
        return True
    if target == BookingStatus.REFUNDED:
        return False
    if context.role == UserRole.CUSTOMER:
        return target == BookingStatus.CANCELLED and booking.customer_id == context.user_id
    if context.role == UserRole.PROVIDER:
        return booking.provider_id in _provider_ids_for_user(db, context)
    return False

def _may_view(db: Session, context: RequestContext, booking: Booking) -> bool:
    if context.role == UserRole.ADMIN:
        return True
    if context.role == UserRole.CUSTOMER:
        return booking.customer_id == context.user_id
    return booking.provider_id in _provider_ids_for_user(db, context)

def _load_address(raw):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw

class BookingService:
    @staticmethod
    def transition(
        db: Session,
        context: RequestContext,
        booking_id: str,
        target: BookingStatus,
        reason: Optional[str] = None,
        audit_sink: Optional[AuditLogService] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Outcome[dict]:
        """Move a booking forward in its lifecycle"""
        try:
            if target == BookingStatus.CONFIRMED:
                lock_timeline_of_booking(db, context.tenant_id, booking_id)

            booking = db.query(Booking).filter(
                Booking.id == booking_id,
                Booking.tenant_id == context.tenant_id
            ).with_for_update().first()

            if not booking:
                db.rollback()
                return Outcome.failure(ErrorKind.NOT_FOUND, "Booking not found")

            if not _may_act(db, context, booking, target):
                db.rollback()
                return Outcome.failure(ErrorKind.FORBIDDEN, "Not authorized to update this booking")

            current = BookingStatus(booking.status)
            if not can_transition(current, target):
                db.rollback()
                return Outcome.failure(
                    ErrorKind.VALIDATION,
                    f"Booking cannot move from {current.value} to {target.value}"
                )

            if target == BookingStatus.CONFIRMED:
                if booking.payment_type == PaymentType.INSTANT and booking.payment_status != PaymentStatus.PAID:
                    db.rollback()
                    return Outcome.failure(ErrorKind.VALIDATION, "Payment not completed")

                # The slot may have been taken while this booking was not holding it
                conflicts = find_conflicting_bookings(
                    db, booking.tenant_id, booking.provider_id, booking.scheduled_at, booking.ends_at,
                    exclude_booking_id=booking.id
                )
                if conflicts:
                    db.rollback()
                    return Outcome.failure(ErrorKind.CONFLICT, "Selected time slot is not available")

            changes = {"status": target.value}
            booking.status = target

            if target == BookingStatus.COMPLETED:
                booking.completed_at = datetime.now().replace(microsecond=0)
            elif target == BookingStatus.CANCELLED:
                booking.cancellation_reason = reason
                booking.cancelled_by = context.user_id
                changes["reason"] = reason
            elif target == BookingStatus.REFUNDED and booking.payment_status == PaymentStatus.PAID:
                booking.payment_status = PaymentStatus.REFUNDED
                changes["paymentStatus"] = PaymentStatus.REFUNDED.value

            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error moving booking %s to %s", booking_id, target.value)
            return Outcome.failure(ErrorKind.INTERNAL, "Failed to update booking")

        logger.info("Booking %s moved %s -> %s by %s", booking_id, current.value, target.value, context.user_id)

        record_audit(audit_sink, AuditEntry(
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            action=TRANSITION_ACTIONS[target],
            resource_type="booking",
            resource_id=booking_id,
            changes=changes,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ), background_tasks)

        return Outcome.success({"booking_id": booking_id, "status": target.value})

    @staticmethod
    def list_bookings(
        db: Session,
        context: RequestContext,
        booking_status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10
    ):
        """Get bookings visible to the caller"""
        query = db.query(Booking).options(
            joinedload(Booking.service),
            joinedload(Booking.provider)
        ).filter(Booking.tenant_id == context.tenant_id)

        if context.role == UserRole.CUSTOMER:
            query = query.filter(Booking.customer_id == context.user_id)
        elif context.role == UserRole.PROVIDER:
            query = query.filter(Booking.provider_id.in_(_provider_ids_for_user(db, context)))

        if booking_status:
            query = query.filter(Booking.status == booking_status)

        offset = (page - 1) * limit
        bookings = query.order_by(Booking.scheduled_at.desc()).offset(offset).limit(limit).all()
        return [BookingService._summary(booking) for booking in bookings]

    @staticmethod
    def get_booking_details(db: Session, context: RequestContext, booking_id: str) -> Outcome[dict]:
        """Get booking by ID with its service, provider and addon snapshots"""
        booking = db.query(Booking).options(
            joinedload(Booking.service),
            joinedload(Booking.provider),
            joinedload(Booking.addons).joinedload(BookingAddon.addon)
        ).filter(
            Booking.id == booking_id,
            Booking.tenant_id == context.tenant_id
        ).first()

        if not booking:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Booking not found")

        if not _may_view(db, context, booking):
            return Outcome.failure(ErrorKind.FORBIDDEN, "Not authorized to view this booking")

        details = BookingService._summary(booking)
        details.update({
            "commission_amount": booking.commission_amount,
            "customer_address": _load_address(booking.customer_address),
            "notes": booking.notes,
            "completed_at": booking.completed_at,
            "cancellation_reason": booking.cancellation_reason,
            "addons": [
                {
                    "id": item.addon_id,
                    "name": item.addon.name if item.addon else None,
                    "price": item.price,
                }
                for item in booking.addons
            ],
        })
        return Outcome.success(details)

    @staticmethod
    def get_available_slots(
        db: Session,
        tenant_id: str,
        service_id: str,
        provider_id: str,
        day: date
    ) -> Outcome[dict]:
        """Free start times for a service on one day of the provider's calendar"""
        service = db.query(Service).filter(
            Service.id == service_id,
            Service.provider_id == provider_id,
            Service.tenant_id == tenant_id
        ).first()
        if not service:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Service not found")

        duration = service.duration_minutes or settings.DEFAULT_SERVICE_DURATION_MINUTES
        day_start = datetime.combine(day, time.min)
        # Slots that start late in the day may run past midnight
        window_end = day_start + timedelta(days=1, minutes=duration)

        busy = busy_intervals(db, tenant_id, provider_id, day_start, window_end)
        slots = free_slots(
            day,
            duration,
            busy,
            settings.BOOKING_DAY_START_HOUR,
            settings.BOOKING_DAY_END_HOUR,
            settings.SLOT_INTERVAL_MINUTES,
        )
        return Outcome.success({"available_slots": slots, "duration": duration})

    @staticmethod
    def _summary(booking: Booking) -> dict:
        return {
            "id": booking.id,
            "status": BookingStatus(booking.status).value,
            "payment_status": PaymentStatus(booking.payment_status).value,
            "payment_type": PaymentType(booking.payment_type).value,
            "scheduled_at": booking.scheduled_at,
            "ends_at": booking.ends_at,
            "duration_minutes": booking.duration_minutes,
            "total_amount": booking.total_amount,
            "currency": booking.currency,
            "customer_id": booking.customer_id,
            "provider_id": booking.provider_id,
            "provider_name": booking.provider.business_name if booking.provider else None,
            "service_id": booking.service_id,
            "service_name": booking.service.name if booking.service else None,
            "created_at": booking.created_at,
        }
