"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. Monetary amounts are whole rupiah (IDR has no
minor unit in practice) and are carried as plain ``int``.
"""

import re
from dataclasses import dataclass

from storefront.domain.base import ValueObject
from storefront.domain.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str | None) -> bool:
    """Check an email address against the storefront's accepted format."""
    return bool(value) and EMAIL_PATTERN.match(value.strip()) is not None


# ============================================================================
# Customer Information
# ============================================================================


@dataclass(frozen=True)
class CustomerInfo(ValueObject):
    """Customer contact details captured at checkout.

    Attributes:
        name: Customer full name.
        email: Customer email address, stored lowercased.
        phone: Phone number.
    """

    name: str
    email: str
    phone: str

    def __post_init__(self) -> None:
        """Validate customer info."""
        if not self.name or not self.name.strip():
            raise ValidationError("Customer name cannot be empty", details={"field": "customer_name"})
        if not is_valid_email(self.email):
            raise ValidationError("Invalid email format", details={"field": "customer_email"})
        if not self.phone or not self.phone.strip():
            raise ValidationError("Customer phone cannot be empty", details={"field": "customer_phone"})
        # Normalize email so guest lookups can match case-insensitively
        object.__setattr__(self, "email", self.email.strip().lower())


# ============================================================================
# Shipping Address
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Destination address for an order.

    Attributes:
        address: Street address.
        city: City name, used for local-zone detection.
        postal_code: Postal code, used for courier area lookup.
    """

    address: str = ""
    city: str = ""
    postal_code: str = ""

    def format_single_line(self) -> str:
        """Format address as single line."""
        return ", ".join(part for part in (self.address, self.city, self.postal_code) if part)


# ============================================================================
# Courier Selection
# ============================================================================


@dataclass(frozen=True)
class CourierSelection(ValueObject):
    """Courier and service chosen by the customer at checkout.

    Attributes:
        courier_code: Aggregator courier company code (e.g. ``jne``).
        courier_name: Display name of the courier.
        service_code: Courier service type code (e.g. ``reg``).
        service_name: Display name of the service.
        estimated_days: Estimated transit time, e.g. ``"2-4"``.
    """

    courier_code: str | None = None
    courier_name: str | None = None
    service_code: str | None = None
    service_name: str | None = None
    estimated_days: str | None = None

    @property
    def is_bookable(self) -> bool:
        """Check if an external shipment can be booked with this selection."""
        return bool(self.courier_code)


# ============================================================================
# Shipping Items
# ============================================================================


@dataclass(frozen=True)
class ShippingItem(ValueObject):
    """A parcel line used for rate calculation.

    Attributes:
        name: Item name.
        value: Unit value in IDR.
        weight_grams: Unit weight in grams.
        quantity: Number of units.
    """

    name: str
    value: int
    weight_grams: int
    quantity: int = 1

    def __post_init__(self) -> None:
        """Validate item."""
        if self.quantity <= 0:
            raise ValidationError("Quantity must be positive", details={"item": self.name})
        if self.value < 0 or self.weight_grams < 0:
            raise ValidationError("Value and weight cannot be negative", details={"item": self.name})

    @property
    def total_weight_grams(self) -> int:
        """Weight of all units of this line."""
        return self.weight_grams * self.quantity

    @property
    def total_value(self) -> int:
        """Value of all units of this line."""
        return self.value * self.quantity

    def to_provider_item(self) -> dict[str, object]:
        """Render the item in the courier aggregator's wire shape."""
        return {
            "name": self.name,
            "value": self.value,
            "weight": self.weight_grams,
            "quantity": self.quantity,
        }


# ============================================================================
# Shipping Options & Tracking
# ============================================================================


@dataclass(frozen=True)
class ShippingOption(ValueObject):
    """A priced courier/service option offered to the customer."""

    courier: str
    courier_name: str
    service: str
    service_name: str
    price: int
    estimated_days: str
    description: str | None = None
    is_local: bool = False


@dataclass(frozen=True)
class TrackingEvent(ValueObject):
    """One entry of a shipment's tracking history."""

    status: str
    note: str
    occurred_at: str | None = None
