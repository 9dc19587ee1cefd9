# -*- coding: utf-8 -*-
"""
JSON request bodies for the subscription and discount endpoints.
"""
from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True, populate_by_name=True)


class RetryPaymentRequest(_Request):
    """Schema for retrying a past-due subscription invoice."""
    user_id: str = Field(..., alias="userId", min_length=1)
    package_id: int = Field(..., alias="packageId", ge=1)
    stripe_subscription_id: str = Field(..., alias="stripeSubscriptionId", min_length=1)


class CancelPackageRequest(_Request):
    stripe_subscription_id: str = Field(..., alias="stripeSubscriptionId", min_length=1)


class CouponRequest(_Request):
    """Schema for a generic one-use coupon."""
    percent_off: float = Field(..., alias="percentOff", gt=0, le=100, strict=True)


class FirstTimeCouponRequest(CouponRequest):
    user_id: str = Field(..., alias="userId", min_length=1)
