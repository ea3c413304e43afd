from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from marketplace.database import get_db
from marketplace.core.context import RequestContext
from marketplace.core.dependencies import require_customer, get_audit_sink
from marketplace.core.errors import raise_for_outcome
from marketplace.schemas.payment import PaymentCreate, PaymentCreatedResponse
from marketplace.services.audit_service import AuditLogService
from marketplace.services.payment_service import PaymentService, PaymentRequest

router = APIRouter()

@router.post("", response_model=PaymentCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_payment(
    payment_data: PaymentCreate,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(require_customer),
    db: Session = Depends(get_db),
    audit_sink: AuditLogService = Depends(get_audit_sink)
):
    """Pay for a pending booking; completed payments confirm it"""
    request = PaymentRequest(
        booking_id=payment_data.booking_id,
        amount=payment_data.amount,
        payment_method=payment_data.payment_method,
        currency=payment_data.currency,
        card=payment_data.card_data.model_dump() if payment_data.card_data else None,
    )
    payment = raise_for_outcome(
        PaymentService.capture(db, context, request, audit_sink, background_tasks)
    )
    return PaymentCreatedResponse(**payment)
