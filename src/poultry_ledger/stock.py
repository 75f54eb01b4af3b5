"""Stock levels derived from the purchase and sale ledgers.

Stock is never stored. Every request reduces the full purchase and sale
history into per-type aggregates, so archived lots, edits and deletions are
all reflected without any incremental bookkeeping.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from . import core_logic, data_manager, log
from .constants import ProductType
from .errors import ValidationError


@dataclass(frozen=True)
class StockLevel:
    """Aggregated stock for one product type.

    ``pieces`` may be negative: that signals sales or mortality reported in
    excess of purchases and is surfaced to the caller as-is.
    """

    pieces: Decimal = Decimal("0")
    kg: Decimal = Decimal("0")
    dead: Decimal = Decimal("0")


StockMap = Dict[str, StockLevel]


def _type_key(product_type: str) -> str:
    try:
        return ProductType(product_type).value
    except ValueError as exc:
        raise ValidationError(f"Unknown product type: {product_type!r}") from exc


def compute_stock(
    purchases: Iterable[data_manager.PurchaseRow],
    sales: Iterable[data_manager.SaleRow],
) -> StockMap:
    """Reduce purchase and sale records into per-type stock levels.

    Every :class:`ProductType` is pre-seeded to zero so idle types report
    ``StockLevel(0, 0, 0)`` instead of being absent. Purchases add pieces and
    kg; sales remove ``pieces + mortality`` pieces and add ``mortality`` to
    ``dead``. The function is pure and the result does not depend on record
    order.

    Raises:
        ValidationError: If a record carries a type outside the enumeration.
    """

    totals: Dict[str, list[Decimal]] = {
        member.value: [Decimal("0"), Decimal("0"), Decimal("0")] for member in ProductType
    }

    for purchase in purchases:
        bucket = totals[_type_key(purchase.product_type)]
        bucket[0] += purchase.pieces
        bucket[1] += purchase.kg

    for sale in sales:
        bucket = totals[_type_key(sale.product_type)]
        bucket[0] -= sale.pieces + sale.mortality
        bucket[2] += sale.mortality

    return {
        product_type: StockLevel(pieces=pieces, kg=kg, dead=dead)
        for product_type, (pieces, kg, dead) in totals.items()
    }


def current_stock(context: core_logic.RuntimeContext) -> StockMap:
    """Compute stock for the context's shop over its entire history."""

    stock = compute_stock(core_logic.list_purchases(context), core_logic.list_sales(context))
    negative = [name for name, level in stock.items() if level.pieces < 0]
    if negative:
        log.warning("Negative stock reported for: %s", ", ".join(negative))
    return stock


def window_totals(
    purchases: Iterable[data_manager.PurchaseRow],
    sales: Iterable[data_manager.SaleRow],
) -> Tuple[Decimal, Decimal]:
    """Return ``(purchased_pieces, sold_or_dead_pieces)`` for a set of records."""

    purchased = sum((purchase.pieces for purchase in purchases), Decimal("0"))
    consumed = sum((sale.pieces + sale.mortality for sale in sales), Decimal("0"))
    return purchased, consumed
