"""Input snapshot bundling and referential validation.

The engine trusts field-level validity (enforced by the entity dataclasses)
but checks the cross-entity invariants itself before computing anything:

- ids are unique within each entity
- every order references an existing customer
- every order item references an existing order
- every order item references an existing product (when products are supplied)
- every product references an existing category (when categories are supplied)

All violations are collected and raised together as one :class:`SchemaViolation`.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from commerce_analytics.errors import SchemaViolation
from commerce_analytics.foundation.entities import (
    CATEGORY_COLUMNS,
    CUSTOMER_COLUMNS,
    ORDER_COLUMNS,
    ORDER_ITEM_COLUMNS,
    PRODUCT_COLUMNS,
    Category,
    Customer,
    Order,
    OrderItem,
    Product,
)
from commerce_analytics.foundation.recordset import Recordset

logger = logging.getLogger(__name__)


def _duplicates(values: Iterable[str]) -> list[str]:
    counts = Counter(values)
    return sorted(v for v, count in counts.items() if count > 1)


def validate_snapshot(
    customers: Recordset,
    orders: Recordset,
    order_items: Recordset,
    products: Optional[Recordset] = None,
    categories: Optional[Recordset] = None,
) -> None:
    """Check referential and uniqueness invariants across recordsets.

    Raises
    ------
    SchemaViolation
        Listing every violation found. Nothing is repaired.
    """
    customers.require_columns("customer_id")
    orders.require_columns("order_id", "customer_id")
    order_items.require_columns("order_item_id", "order_id", "product_id")

    violations: list[str] = []

    for label, recordset, id_column in (
        ("customer", customers, "customer_id"),
        ("order", orders, "order_id"),
        ("order item", order_items, "order_item_id"),
    ):
        for dup in _duplicates(recordset.column(id_column)):
            violations.append(f"Duplicate {label} id {dup}")

    customer_ids = set(customers.column("customer_id"))
    for row in orders:
        if row["customer_id"] not in customer_ids:
            violations.append(
                f"Order {row['order_id']} references unknown customer {row['customer_id']}"
            )

    order_ids = set(orders.column("order_id"))
    for row in order_items:
        if row["order_id"] not in order_ids:
            violations.append(
                f"Order item {row['order_item_id']} references unknown order {row['order_id']}"
            )

    if products is not None:
        products.require_columns("product_id", "category_id")
        for dup in _duplicates(products.column("product_id")):
            violations.append(f"Duplicate product id {dup}")
        product_ids = set(products.column("product_id"))
        for row in order_items:
            if row["product_id"] not in product_ids:
                violations.append(
                    f"Order item {row['order_item_id']} references unknown product {row['product_id']}"
                )

        if categories is not None:
            categories.require_columns("category_id")
            for dup in _duplicates(categories.column("category_id")):
                violations.append(f"Duplicate category id {dup}")
            category_ids = set(categories.column("category_id"))
            for row in products:
                if row["category_id"] not in category_ids:
                    violations.append(
                        f"Product {row['product_id']} references unknown category {row['category_id']}"
                    )

    if violations:
        logger.error(f"Snapshot validation found {len(violations)} violation(s)")
        raise SchemaViolation(violations)


@dataclass(frozen=True)
class Snapshot:
    """Validated, immutable set of input recordsets for one engine run."""

    customers: Recordset
    orders: Recordset
    order_items: Recordset
    products: Optional[Recordset] = None
    categories: Optional[Recordset] = None

    def __post_init__(self) -> None:
        validate_snapshot(
            self.customers,
            self.orders,
            self.order_items,
            self.products,
            self.categories,
        )

    @classmethod
    def from_records(
        cls,
        customers: Iterable[Customer],
        orders: Iterable[Order],
        order_items: Iterable[OrderItem],
        products: Optional[Iterable[Product]] = None,
        categories: Optional[Iterable[Category]] = None,
    ) -> Snapshot:
        """Build and validate a snapshot from entity instances."""
        return cls(
            customers=Recordset.from_records("customers", customers, CUSTOMER_COLUMNS),
            orders=Recordset.from_records("orders", orders, ORDER_COLUMNS),
            order_items=Recordset.from_records(
                "order_items", order_items, ORDER_ITEM_COLUMNS
            ),
            products=(
                Recordset.from_records("products", products, PRODUCT_COLUMNS)
                if products is not None
                else None
            ),
            categories=(
                Recordset.from_records("categories", categories, CATEGORY_COLUMNS)
                if categories is not None
                else None
            ),
        )
