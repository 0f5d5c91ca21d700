"""Typed payload variants carried by a notification.

Each notification type carries one variant, selected by the ``kind``
discriminator. ``OtherPayload`` covers ad hoc string values.
"""

from datetime import datetime
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


class PayloadBase(BaseModel):
    urgent: bool = False


class BookingPayload(PayloadBase):
    kind: Literal["booking"] = "booking"
    booking_id: str
    service_name: str = ""
    starts_at: datetime
    location: Optional[str] = None
    previous_starts_at: Optional[datetime] = None


class ReminderPayload(PayloadBase):
    kind: Literal["reminder"] = "reminder"
    hours_before: int
    starts_at: datetime
    title: str = ""


class PaymentPayload(PayloadBase):
    kind: Literal["payment"] = "payment"
    booking_id: str
    amount_due: float
    remaining_amount: float
    currency: str = "CAD"
    due_at: datetime
    hours_before_due: Optional[int] = None


class ConsultationPayload(PayloadBase):
    kind: Literal["consultation"] = "consultation"
    consultation_id: str
    title: str = ""
    starts_at: datetime
    minutes_before: Optional[int] = None
    join_url: Optional[str] = None


class OtherPayload(PayloadBase):
    kind: Literal["other"] = "other"
    values: Dict[str, str] = Field(default_factory=dict)


Payload = Annotated[
    Union[
        BookingPayload,
        ReminderPayload,
        PaymentPayload,
        ConsultationPayload,
        OtherPayload,
    ],
    Field(discriminator="kind"),
]


def payload_event_time(payload: PayloadBase) -> Optional[datetime]:
    """Event start carried by the payload, if the variant has one."""
    return getattr(payload, "starts_at", None)
