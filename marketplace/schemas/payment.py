from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, Union

from marketplace.models.payment import PaymentRecordStatus

class CardData(BaseModel):
    card_number: Optional[str] = None
    card_holder: Optional[str] = None
    expiry_month: Optional[Union[int, str]] = None
    expiry_year: Optional[Union[int, str]] = None
    cvv: Optional[Union[int, str]] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class PaymentCreate(BaseModel):
    # Field rules are checked by the payment service so every problem is reported together
    booking_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    card_data: Optional[CardData] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class PaymentCreatedResponse(BaseModel):
    success: bool = True
    payment_id: str
    transaction_ref: Optional[str] = None
    status: PaymentRecordStatus
    booking_status: str
    message: str = "Payment processed successfully"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
