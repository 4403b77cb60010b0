"""Foundational building blocks for the analytics engine.

This package exposes the transactional entities, the immutable
:class:`Recordset` they are loaded into, snapshot validation and the
injectable reference time used by every recency computation.
"""

from .entities import Category, Customer, Order, OrderItem, Product
from .recordset import Recordset
from .reference_time import ReferenceTime
from .snapshot import Snapshot, validate_snapshot

__all__ = [
    "Category",
    "Customer",
    "Order",
    "OrderItem",
    "Product",
    "Recordset",
    "ReferenceTime",
    "Snapshot",
    "validate_snapshot",
]
