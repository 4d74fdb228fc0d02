"""Pydantic schemas for the payments API.

Request DTOs only check shape and types; business rules (positive amount,
supported currency) are enforced by ``OrderGatewayClient`` so its messages
reach the client unchanged.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        amount: Amount in major currency units (rupees).
        currency: Currency code; matched case-insensitively downstream.
        plan_id: Optional plan the client is purchasing (``planId``).
    """

    model_config = ConfigDict(populate_by_name=True)

    amount: int = Field(strict=True)
    currency: str
    plan_id: Optional[str] = Field(default=None, alias="planId")


class VerifyPaymentDTO(BaseModel):
    """Schema for a checkout confirmation.

    Accepts the camelCase names used by the web client, the older
    ``razorpay*`` camelCase names and the provider's snake_case checkout
    callback fields.

    Attributes:
        order_id: Provider order id.
        payment_id: Provider payment id.
        signature: Hex signature returned by the checkout.
        plan_id: Optional purchased plan.
        credits: Optional number of credits to grant after verification.
        user_id: Optional user to credit.
    """

    order_id: str = Field(validation_alias=AliasChoices("orderId", "razorpayOrderId", "razorpay_order_id"))
    payment_id: str = Field(validation_alias=AliasChoices("paymentId", "razorpayPaymentId", "razorpay_payment_id"))
    signature: str = Field(validation_alias=AliasChoices("signature", "razorpaySignature", "razorpay_signature"))
    plan_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("planId", "plan_id"))
    credits: Optional[int] = Field(default=None, ge=0)
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))


class OrderOut(BaseModel):
    """Response shape for a created order. Absent provider fields are null."""

    id: Optional[str]
    amount: Optional[int]
    currency: Optional[str]
    status: Optional[str]
    receipt: Optional[str]

    @classmethod
    def from_order(cls, order) -> "OrderOut":
        return cls(
            id=order.id,
            amount=order.amount,
            currency=order.currency,
            status=order.status,
            receipt=order.receipt,
        )
