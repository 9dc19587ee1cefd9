# -*- coding: utf-8 -*-
"""
Stripe webhook event schemas.

Handled event kinds form a closed union discriminated on ``type``. Any other
type parses to UnhandledEvent. A handled kind whose payload does not match
its model raises pydantic.ValidationError.
"""
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


def _expandable_id(value):
    """Collapse an expanded Stripe object to its id."""
    if isinstance(value, dict):
        return value.get("id")
    return value


class InvoiceObject(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str = Field(..., min_length=1)
    subscription: Optional[str] = None
    billing_reason: Optional[str] = None
    amount_paid: int = 0
    currency: str = "usd"
    customer: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def lift_subscription(cls, data: Any) -> Any:
        # Newer API versions nest the subscription under parent.subscription_details.
        if isinstance(data, dict) and not data.get("subscription"):
            details = (data.get("parent") or {}).get("subscription_details") or {}
            if details.get("subscription"):
                data = {**data, "subscription": details["subscription"]}
        return data

    @field_validator('subscription', 'customer', mode='before')
    @classmethod
    def collapse_expanded(cls, v):
        return _expandable_id(v)


class SubscriptionObject(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str = Field(..., min_length=1)
    status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator('metadata', mode='before')
    @classmethod
    def default_metadata(cls, v):
        return v or {}


class InvoiceData(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    object_: InvoiceObject = Field(..., alias="object")


class SubscriptionData(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    object_: SubscriptionObject = Field(..., alias="object")


class _Event(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str = Field(..., min_length=1)


class InvoicePaidEvent(_Event):
    type: Literal["invoice.paid", "invoice.payment_succeeded"]
    data: InvoiceData

    @property
    def invoice(self) -> InvoiceObject:
        return self.data.object_


class InvoicePaymentFailedEvent(_Event):
    type: Literal["invoice.payment_failed"]
    data: InvoiceData

    @property
    def invoice(self) -> InvoiceObject:
        return self.data.object_


class SubscriptionDeletedEvent(_Event):
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionData

    @property
    def subscription(self) -> SubscriptionObject:
        return self.data.object_


class UnhandledEvent(_Event):
    id: str = ""
    type: str


HandledEvent = Annotated[
    Union[InvoicePaidEvent, InvoicePaymentFailedEvent, SubscriptionDeletedEvent],
    Field(discriminator="type"),
]

HANDLED_EVENT_TYPES = frozenset({
    "invoice.paid",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
    "customer.subscription.deleted",
})

_handled_adapter = TypeAdapter(HandledEvent)

StripeEvent = Union[InvoicePaidEvent, InvoicePaymentFailedEvent, SubscriptionDeletedEvent, UnhandledEvent]


def parse_event(payload: Dict[str, Any]) -> StripeEvent:
    """
    Parse a decoded webhook body into one of the event models.

    Raises pydantic.ValidationError for a handled type with a bad shape and
    ValueError when the body has no ``type``.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise ValueError("Event payload has no type")
    if payload["type"] in HANDLED_EVENT_TYPES:
        return _handled_adapter.validate_python(payload)
    return UnhandledEvent.model_validate(payload)
