"""API schemas for the storefront API.

Pydantic models for request/response validation and serialization.
Storefront-facing models use camelCase on the wire; admin and webhook
models use snake_case.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional error details")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutItemRequest(CamelModel):
    """A line item submitted at checkout."""

    product_id: str = Field(..., min_length=1, description="Product identifier")
    product_name: str = Field(..., min_length=1, description="Product name")
    quantity: int = Field(..., gt=0, description="Quantity ordered")
    price: int = Field(..., ge=0, description="Unit price in IDR")
    weight: int | None = Field(default=None, ge=0, description="Unit weight in grams")


class CheckoutRequest(CamelModel):
    """Request to place an order and create its invoice."""

    amount: int = Field(..., gt=0, description="Total to charge in IDR, including shipping")
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    shipping_address: str = Field(default="")
    city: str = Field(default="")
    postal_code: str = Field(default="")
    items: list[CheckoutItemRequest] = Field(..., min_length=1)
    shipping_cost: int = Field(default=0, ge=0)
    courier_code: str | None = None
    courier_name: str | None = None
    service_code: str | None = None
    service_name: str | None = None
    estimated_days: str | None = None
    is_local_delivery: bool = False
    total_weight: float | None = Field(default=None, description="Parcel weight in kg")
    user_id: str | None = None
    success_redirect_url: str | None = None
    failure_redirect_url: str | None = None


class CheckoutResponse(CamelModel):
    """Order and invoice created at checkout."""

    success: bool = True
    order_id: str
    invoice_id: str
    invoice_url: str | None = None


# ============================================================================
# Shipping Schemas
# ============================================================================


class ShippingItemRequest(CamelModel):
    """A parcel line used for rate calculation."""

    name: str
    value: int = Field(..., ge=0, description="Unit value in IDR")
    weight: int = Field(..., ge=0, description="Unit weight in grams")
    quantity: int = Field(default=1, gt=0)


class ShippingRatesRequest(CamelModel):
    """Request for courier options."""

    origin_city: str | None = None
    destination_city: str = Field(..., min_length=1)
    destination_postal_code: str | None = None
    items: list[ShippingItemRequest] = Field(default_factory=list)
    total_weight: float | None = Field(default=None, description="Parcel weight in kg")


class ShippingOptionSchema(CamelModel):
    """A priced courier option."""

    courier: str
    courier_name: str
    service: str
    service_name: str
    price: int
    estimated_days: str
    description: str | None = None
    is_local: bool = False


class ShippingRatesResponse(CamelModel):
    """Courier options for a destination."""

    success: bool = True
    is_local: bool
    options: list[ShippingOptionSchema]
    total_weight: float
    fallback: bool = False
    warning: str | None = None


class TrackShipmentRequest(CamelModel):
    """Track by order or by waybill number."""

    order_id: str | None = None
    tracking_number: str | None = None


class TrackingEventSchema(CamelModel):
    """One tracking history entry."""

    status: str
    note: str
    updated_at: str | None = None


class TrackShipmentResponse(CamelModel):
    """Tracking view of a parcel."""

    success: bool = True
    is_local: bool = False
    tracking_number: str | None = None
    status: str
    courier: str | None = None
    service: str | None = None
    history: list[TrackingEventSchema] = Field(default_factory=list)
    link: str | None = None
    current_location: dict[str, Any] | str | None = None
    destination: dict[str, Any] | str | None = None
    estimated_delivery: str | None = None
    message: str = ""
    degraded: bool = False


# ============================================================================
# Guest Tracking Schemas
# ============================================================================


class TrackingVerifyRequest(CamelModel):
    """Prove ownership of an order."""

    email: str = ""
    order_id: str = ""


class TrackingVerifyResponse(CamelModel):
    """Guest tracking capability."""

    success: bool = True
    access_token: str
    expires_at: datetime


class GuestOrderItemSchema(CamelModel):
    """Order line shown to a guest."""

    id: str
    product_name: str
    quantity: int
    price: int


class GuestOrderSchema(CamelModel):
    """Order summary shown to a guest."""

    id: str
    status: str
    total_amount: int
    shipping_cost: int
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    city: str
    postal_code: str
    courier_name: str | None = None
    service_name: str | None = None
    tracking_number: str | None = None
    is_local_delivery: bool = False
    created_at: datetime
    updated_at: datetime
    items: list[GuestOrderItemSchema]


class GuestOrderResponse(CamelModel):
    """Guest tracking read."""

    success: bool = True
    order: GuestOrderSchema


# ============================================================================
# Refund Schemas
# ============================================================================


class RefundCreateRequest(CamelModel):
    """Request a refund against an order."""

    order_id: str = Field(..., min_length=1)
    amount: int
    reason: str
    reason_note: str | None = None
    requester_id: str | None = None


class RefundReviewRequest(BaseModel):
    """Admin decision on a pending refund."""

    action: Literal["approve", "reject"]
    note: str | None = Field(default=None, max_length=2000)
    reviewer_id: str = Field(default="admin", min_length=1)


class RefundResponse(BaseModel):
    """Refund request details."""

    id: str
    order_id: str
    amount: int
    reason: str
    reason_note: str | None = None
    requester_id: str | None = None
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    admin_notes: str | None = None
    gateway_refund_id: str | None = None
    payment_reference: str | None = None
    refund_method: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RefundsListResponse(PaginatedResponse):
    """Paginated list of refund requests."""

    items: list[RefundResponse]


# ============================================================================
# Admin Order Schemas
# ============================================================================


class OrderItemSchema(BaseModel):
    """Order line item snapshot."""

    id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    line_total: int
    weight_grams: int | None = None


class OrderStatusHistorySchema(BaseModel):
    """One status transition."""

    from_status: str | None
    to_status: str
    actor: str | None = None
    reason: str | None = None
    created_at: datetime


class OrderNoteSchema(BaseModel):
    """Internal order note."""

    note: str
    author: str | None = None
    is_internal: bool = True
    created_at: datetime


class OrderCourierSchema(BaseModel):
    """Courier selection."""

    courier_code: str | None = None
    courier_name: str | None = None
    service_code: str | None = None
    service_name: str | None = None
    estimated_days: str | None = None


class OrderSummarySchema(BaseModel):
    """Order row in admin listings."""

    id: str
    status: str
    total_amount: int
    customer_name: str
    customer_email: str
    is_local_delivery: bool
    tracking_number: str | None = None
    created_at: datetime
    updated_at: datetime


class OrderResponse(BaseModel):
    """Full order details for admins."""

    id: str
    status: str
    version: int
    total_amount: int
    shipping_cost: int
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    city: str
    postal_code: str
    courier: OrderCourierSchema
    is_local_delivery: bool
    total_weight_kg: float
    user_id: str | None = None
    external_id: str | None = Field(default=None, description="Xendit invoice id")
    invoice_url: str | None = None
    shipment_id: str | None = Field(default=None, description="Biteship order id")
    shipment_status: str | None = None
    tracking_number: str | None = None
    shipping_notes: str | None = None
    cancelled_reason: str | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemSchema]
    status_history: list[OrderStatusHistorySchema] = Field(default_factory=list)
    notes: list[OrderNoteSchema] = Field(default_factory=list)


class OrdersListResponse(PaginatedResponse):
    """Paginated list of orders."""

    items: list[OrderSummarySchema]


class OrderCancelRequest(BaseModel):
    """Request to cancel an order and its shipment."""

    reason: str = Field(..., min_length=1, max_length=500)
    cancelled_by: str = Field(default="admin", min_length=1)


class TrackingNumberRequest(BaseModel):
    """Manual tracking number."""

    tracking_number: str = Field(..., min_length=1, max_length=100)
    updated_by: str = Field(default="admin", min_length=1)


class ShipmentResponse(BaseModel):
    """Outcome of a shipment booking."""

    success: bool = True
    order_id: str
    is_local: bool
    shipment_id: str | None = None
    tracking_number: str | None = None
    created: bool
    message: str


class CancelResponse(BaseModel):
    """Outcome of a cancellation."""

    success: bool = True
    order_id: str
    status: str
    provider_outcome: str | None = None
    message: str


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to webhook callers."""

    success: bool
    outcome: str
    message: str
    entity_id: str | None = None
    status: str | None = None
