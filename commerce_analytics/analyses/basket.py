"""Market-basket co-occurrence ("frequently bought together").

Pairs are enumerated per order and canonicalised as ``(lower_id, higher_id)``
so (A, B) and (B, A) are the same pair. A pair is counted at most once per
order, however many line items mention either product.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, Optional

from commerce_analytics.errors import ResourceLimitExceeded
from commerce_analytics.foundation.periods import percentage
from commerce_analytics.foundation.recordset import Recordset
from commerce_analytics.window.partition import order_recordset

logger = logging.getLogger(__name__)

DEFAULT_MIN_SUPPORT = 3
DEFAULT_MAX_ITEMS_PER_ORDER = 200

BASKET_COLUMNS = (
    "product_id_low",
    "product_id_high",
    "co_occurrence_count",
    "pct_of_all_orders",
)


@dataclass(frozen=True)
class BasketResult:
    """Co-occurrence pairs plus the orders left out of the count.

    Attributes
    ----------
    pairs:
        ``basket_pairs`` recordset, most frequent pair first
    skipped_orders:
        Ids of orders above the line-item cap, in ascending order
    total_orders:
        Denominator used for ``pct_of_all_orders``
    """

    pairs: Recordset
    skipped_orders: tuple[str, ...]
    total_orders: int


def order_pairs(
    order_id: str,
    product_ids: Iterable[str],
    max_items_per_order: int = DEFAULT_MAX_ITEMS_PER_ORDER,
) -> set[tuple[str, str]]:
    """Canonical product pairs of one order.

    Raises
    ------
    ResourceLimitExceeded
        If the order has more line items than ``max_items_per_order``.

    >>> sorted(order_pairs("O1", ["B", "A", "A"]))
    [('A', 'B')]
    """
    product_ids = list(product_ids)
    if len(product_ids) > max_items_per_order:
        raise ResourceLimitExceeded(order_id, len(product_ids), max_items_per_order)
    return set(combinations(sorted(set(product_ids)), 2))


def oversized_orders(
    order_items: Recordset, max_items_per_order: int = DEFAULT_MAX_ITEMS_PER_ORDER
) -> Recordset:
    """Orders whose line-item count exceeds the basket cap, by order_id."""
    order_items.require_columns("order_id")
    counts = Counter(order_items.column("order_id"))
    return Recordset(
        "basket_skipped_orders",
        ("order_id", "item_count"),
        (
            {"order_id": order_id, "item_count": counts[order_id]}
            for order_id in sorted(counts)
            if counts[order_id] > max_items_per_order
        ),
    )


def co_occurrence(
    order_items: Recordset,
    orders: Optional[Recordset] = None,
    min_support: int = DEFAULT_MIN_SUPPORT,
    max_items_per_order: int = DEFAULT_MAX_ITEMS_PER_ORDER,
) -> BasketResult:
    """Count product pairs bought in the same order.

    Parameters
    ----------
    order_items:
        Line items (order_id, product_id)
    orders:
        When given, the number of distinct orders here is the percentage
        denominator; otherwise distinct orders in ``order_items`` are used
    min_support:
        Minimum number of orders a pair must appear in
    max_items_per_order:
        Orders with more line items are skipped and reported

    Returns
    -------
    BasketResult
        Pairs ordered by count descending, then pair ascending.
    """
    if min_support < 1:
        raise ValueError(f"min_support must be >= 1, got {min_support}")
    if max_items_per_order < 1:
        raise ValueError(f"max_items_per_order must be >= 1, got {max_items_per_order}")
    order_items.require_columns("order_id", "product_id")

    products_by_order: dict[str, list[str]] = {}
    for row in order_items:
        products_by_order.setdefault(row["order_id"], []).append(row["product_id"])

    if orders is not None:
        total_orders = len(set(orders.column("order_id")))
    else:
        total_orders = len(products_by_order)

    counts: Counter = Counter()
    skipped: list[str] = []
    for order_id, product_ids in products_by_order.items():
        try:
            pairs = order_pairs(order_id, product_ids, max_items_per_order)
        except ResourceLimitExceeded as exc:
            logger.warning(f"Skipping order in basket analysis: {exc}")
            skipped.append(order_id)
            continue
        counts.update(pairs)

    pairs = Recordset(
        "basket_pairs",
        BASKET_COLUMNS,
        (
            {
                "product_id_low": low,
                "product_id_high": high,
                "co_occurrence_count": count,
                "pct_of_all_orders": percentage(count, total_orders),
            }
            for (low, high), count in counts.items()
            if count >= min_support
        ),
    )
    pairs = order_recordset(
        pairs,
        [("co_occurrence_count", "desc"), "product_id_low", "product_id_high"],
    )
    if skipped:
        logger.info(
            f"Basket analysis skipped {len(skipped)} order(s) above {max_items_per_order} line items"
        )
    return BasketResult(
        pairs=pairs, skipped_orders=tuple(sorted(skipped)), total_orders=total_orders
    )
