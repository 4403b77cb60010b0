"""Transactional entities supplied by the external loader.

Entities are immutable once loaded. Each validates its own field-level
invariants; cross-entity invariants (an order's customer exists, and so on)
are checked by :func:`commerce_analytics.foundation.snapshot.validate_snapshot`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from commerce_analytics.foundation.periods import to_decimal

CUSTOMER_COLUMNS = ("customer_id", "signup_date", "last_purchase_date", "customer_name")
ORDER_COLUMNS = ("order_id", "customer_id", "order_date", "total_amount")
ORDER_ITEM_COLUMNS = (
    "order_item_id",
    "order_id",
    "product_id",
    "quantity",
    "unit_price",
)
PRODUCT_COLUMNS = ("product_id", "product_name", "category_id")
CATEGORY_COLUMNS = ("category_id", "category_name")


def _as_date(value: date | datetime, field_name: str, owner: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if not isinstance(value, date):
        raise TypeError(
            f"{field_name} must be a date, got {type(value).__name__} ({owner})"
        )
    return value


@dataclass(frozen=True)
class Customer:
    """A customer account.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    signup_date:
        Date the account was created
    last_purchase_date:
        Date of the most recent order as recorded by the source system.
        Informational only; analytics derive recency from orders.
    customer_name:
        Optional display name
    """

    customer_id: str
    signup_date: date
    last_purchase_date: Optional[date] = None
    customer_name: Optional[str] = None

    def __post_init__(self) -> None:
        owner = f"customer_id={self.customer_id}"
        object.__setattr__(self, "customer_id", str(self.customer_id))
        object.__setattr__(
            self, "signup_date", _as_date(self.signup_date, "signup_date", owner)
        )
        if self.last_purchase_date is not None:
            object.__setattr__(
                self,
                "last_purchase_date",
                _as_date(self.last_purchase_date, "last_purchase_date", owner),
            )


@dataclass(frozen=True)
class Order:
    """A placed order owned by exactly one customer."""

    order_id: str
    customer_id: str
    order_date: date
    total_amount: Decimal

    def __post_init__(self) -> None:
        owner = f"order_id={self.order_id}"
        object.__setattr__(self, "order_id", str(self.order_id))
        object.__setattr__(self, "customer_id", str(self.customer_id))
        object.__setattr__(
            self, "order_date", _as_date(self.order_date, "order_date", owner)
        )
        amount = to_decimal(self.total_amount)
        if amount < 0:
            raise ValueError(f"Order total cannot be negative: {amount} ({owner})")
        object.__setattr__(self, "total_amount", amount)


@dataclass(frozen=True)
class OrderItem:
    """A line item of an order."""

    order_item_id: str
    order_id: str
    product_id: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        owner = f"order_item_id={self.order_item_id}"
        object.__setattr__(self, "order_item_id", str(self.order_item_id))
        object.__setattr__(self, "order_id", str(self.order_id))
        object.__setattr__(self, "product_id", str(self.product_id))
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive: {self.quantity} ({owner})")
        price = to_decimal(self.unit_price)
        if price < 0:
            raise ValueError(f"Unit price cannot be negative: {price} ({owner})")
        object.__setattr__(self, "unit_price", price)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Product:
    product_id: str
    product_name: str
    category_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "product_id", str(self.product_id))
        object.__setattr__(self, "category_id", str(self.category_id))


@dataclass(frozen=True)
class Category:
    category_id: str
    category_name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_id", str(self.category_id))
