import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.context import RequestContext
from marketplace.core.errors import ErrorKind, Outcome
from marketplace.models.booking import Booking, BookingStatus, PaymentStatus
from marketplace.models.payment import Payment, PaymentMethod, PaymentRecordStatus
from marketplace.services.audit_service import AuditEntry, AuditLogService, record_audit
from marketplace.services.availability import find_conflicting_bookings, lock_timeline_of_booking

logger = logging.getLogger(__name__)

# Sandbox cards: this one is always declined, every other well-formed number is approved
DECLINED_TEST_CARD = "4000000000000002"

CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")
AMOUNT_TOLERANCE = 0.01

@dataclass
class PaymentRequest:
    booking_id: Optional[str]
    amount: Optional[float]
    payment_method: Optional[str]
    currency: Optional[str] = None
    card: Optional[Dict[str, Any]] = None

def _digits(value) -> str:
    return re.sub(r"\s", "", str(value)) if value is not None else ""

def _card_errors(card: Optional[Dict[str, Any]]) -> List[str]:
    if not card:
        return ["Card data is required for card payments"]

    errors = []
    if not re.fullmatch(r"\d{13,19}", _digits(card.get("card_number"))):
        errors.append("Card number must be 13-19 digits")
    if not (card.get("card_holder") or "").strip():
        errors.append("Card holder name is required")

    month = _digits(card.get("expiry_month"))
    if not month.isdigit() or not 1 <= int(month) <= 12:
        errors.append("Expiry month must be 01-12")

    year = _digits(card.get("expiry_year"))
    if not year.isdigit() or len(year) not in (2, 4):
        errors.append("Expiry year must be 2 or 4 digits")

    if not re.fullmatch(r"\d{3,4}", _digits(card.get("cvv"))):
        errors.append("CVV must be 3 or 4 digits")
    return errors

def validate_payment_request(request: PaymentRequest) -> List[str]:
    """Every problem with the request body, in field order"""
    errors = []
    if not request.booking_id or not str(request.booking_id).strip():
        errors.append("Booking ID is required")

    if request.amount is None:
        errors.append("Amount is required")
    elif request.amount <= 0:
        errors.append("Amount must be a positive number")

    if request.currency is not None and not CURRENCY_CODE.match(request.currency):
        errors.append("Currency must be a 3-letter code")

    methods = [method.value for method in PaymentMethod]
    if request.payment_method not in methods:
        errors.append("Invalid payment method")
    elif request.payment_method == PaymentMethod.CARD.value:
        errors.extend(_card_errors(request.card))
    return errors

class PaymentService:
    @staticmethod
    def capture(
        db: Session,
        context: RequestContext,
        request: PaymentRequest,
        audit_sink: Optional[AuditLogService] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> Outcome[dict]:
        """Record a customer's payment for their pending booking.

        A completed payment marks the booking paid and confirmed in the same
        transaction, after re-checking its slot under the provider lock.
        """
        errors = validate_payment_request(request)
        if errors:
            return Outcome.failure(ErrorKind.VALIDATION, "Validation failed: " + "; ".join(errors))

        method = PaymentMethod(request.payment_method)
        payment_id = str(uuid.uuid4())
        sandbox = settings.IS_PAYMENT_SANDBOX

        try:
            lock_timeline_of_booking(db, context.tenant_id, request.booking_id)
            booking = db.query(Booking).filter(
                Booking.id == request.booking_id,
                Booking.customer_id == context.user_id,
                Booking.tenant_id == context.tenant_id
            ).with_for_update().first()

            if not booking:
                db.rollback()
                return Outcome.failure(ErrorKind.NOT_FOUND, "Booking not found")

            if abs(float(booking.total_amount) - request.amount) > AMOUNT_TOLERANCE:
                db.rollback()
                return Outcome.failure(ErrorKind.VALIDATION, "Payment amount does not match booking total")

            existing = db.query(Payment.id).filter(
                Payment.booking_id == booking.id,
                Payment.status.in_([PaymentRecordStatus.PENDING, PaymentRecordStatus.COMPLETED])
            ).first()
            if existing:
                db.rollback()
                return Outcome.failure(ErrorKind.CONFLICT, "Payment already exists for this booking")

            if BookingStatus(booking.status) != BookingStatus.PENDING:
                db.rollback()
                return Outcome.failure(ErrorKind.VALIDATION, "Booking is not awaiting payment")

            payment_data = {"paymentMethod": method.value, "testMode": sandbox}
            gateway_reference = None
            if method == PaymentMethod.CARD:
                card_number = _digits(request.card.get("card_number"))
                payment_data["cardLastFour"] = card_number[-4:]
                if sandbox:
                    if card_number == DECLINED_TEST_CARD:
                        db.rollback()
                        return Outcome.failure(ErrorKind.VALIDATION, "Card declined (test)")
                    payment_status = PaymentRecordStatus.COMPLETED
                    gateway_reference = f"TEST_{payment_id[:12].upper()}"
                else:
                    # TODO: hand card payments to the gateway client once one is configured
                    payment_status = PaymentRecordStatus.PENDING
                    gateway_reference = f"PROD_{payment_id[:12].upper()}"
            elif method == PaymentMethod.CASH:
                payment_status = PaymentRecordStatus.COMPLETED
            else:
                payment_status = PaymentRecordStatus.PENDING

            if payment_status == PaymentRecordStatus.COMPLETED:
                conflicts = find_conflicting_bookings(
                    db, booking.tenant_id, booking.provider_id, booking.scheduled_at, booking.ends_at,
                    exclude_booking_id=booking.id
                )
                if conflicts:
                    db.rollback()
                    return Outcome.failure(ErrorKind.CONFLICT, "Selected time slot is not available")
                booking.payment_status = PaymentStatus.PAID
                booking.status = BookingStatus.CONFIRMED

            booking_status = BookingStatus(booking.status).value
            currency = request.currency or booking.currency or settings.DEFAULT_CURRENCY
            db.add(Payment(
                id=payment_id,
                tenant_id=context.tenant_id,
                booking_id=booking.id,
                user_id=context.user_id,
                amount=request.amount,
                currency=currency,
                payment_method=method,
                gateway_reference=gateway_reference,
                status=payment_status,
                payment_data=json.dumps(payment_data),
            ))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error processing payment for booking %s", request.booking_id)
            return Outcome.failure(ErrorKind.INTERNAL, "Failed to process payment")

        logger.info("Payment %s for booking %s is %s", payment_id, request.booking_id, payment_status.value)

        record_audit(audit_sink, AuditEntry(
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            action="payment.create",
            resource_type="payment",
            resource_id=payment_id,
            changes={
                "bookingId": request.booking_id,
                "amount": request.amount,
                "currency": currency,
                "paymentMethod": method.value,
                "status": payment_status.value,
            },
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ), background_tasks)

        return Outcome.success({
            "payment_id": payment_id,
            "transaction_ref": gateway_reference,
            "status": payment_status.value,
            "booking_status": booking_status,
        })
