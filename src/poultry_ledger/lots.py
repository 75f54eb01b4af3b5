"""Lot depletion detection and archiving.

A lot is the activity of one product type since its checkpoint. When the
purchased pieces of the open window are all sold or dead the window is
summarised into an immutable ``LotArchive`` row and the checkpoint moves
forward. Checkpoints are versioned: the archiver re-reads the version it
started from and only advances it through a conditional update, so two
closers racing for the same window cannot both archive it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from . import core_logic, data_manager, log
from .constants import EPOCH, SheetName
from .errors import CheckpointConflictError, StoreError
from .stock import window_totals


@dataclass(frozen=True)
class LotWindow:
    """Purchases and sales of one type recorded after its checkpoint."""

    product_type: str
    start: datetime
    version: int
    purchases: Tuple[data_manager.PurchaseRow, ...]
    sales: Tuple[data_manager.SaleRow, ...]

    @property
    def purchased_pieces(self) -> Decimal:
        return window_totals(self.purchases, self.sales)[0]

    @property
    def consumed_pieces(self) -> Decimal:
        return window_totals(self.purchases, self.sales)[1]

    @property
    def remaining(self) -> Decimal:
        purchased, consumed = window_totals(self.purchases, self.sales)
        return purchased - consumed

    @property
    def is_depleted(self) -> bool:
        return self.purchased_pieces > 0 and self.remaining <= 0

    @property
    def total_buy(self) -> int:
        return sum(purchase.total for purchase in self.purchases)

    @property
    def total_sell(self) -> int:
        return sum(sale.total for sale in self.sales)


def get_checkpoint(context: core_logic.RuntimeContext, product_type: str) -> data_manager.CheckpointRow:
    """Return the stored checkpoint, or an epoch checkpoint at version 0.

    Checkpoints are read straight from the store on every call so that a
    concurrent advance is always observed.
    """

    product = core_logic.require_product_type(product_type).value
    try:
        stored = data_manager.get_checkpoint(context.workbook, context.shop_id, product)
    except (KeyError, ValueError, TypeError) as exc:
        log.error("Failed to read checkpoint for '%s': %s", product, exc)
        raise StoreError(f"Unable to read checkpoint for {product}: {exc}") from exc
    if stored is None:
        return data_manager.CheckpointRow(
            shop_id=context.shop_id,
            product_type=product,
            last_archived_at=EPOCH,
            version=0,
        )
    return stored


def open_window(context: core_logic.RuntimeContext, product_type: str) -> LotWindow:
    """Collect the records of ``product_type`` created strictly after its checkpoint."""

    checkpoint = get_checkpoint(context, product_type)
    start = checkpoint.last_archived_at
    return LotWindow(
        product_type=checkpoint.product_type,
        start=start,
        version=checkpoint.version,
        purchases=tuple(
            row
            for row in core_logic.list_purchases(context)
            if row.product_type == checkpoint.product_type and row.created_at > start
        ),
        sales=tuple(
            row
            for row in core_logic.list_sales(context)
            if row.product_type == checkpoint.product_type and row.created_at > start
        ),
    )


def open_lot_remainder(context: core_logic.RuntimeContext, product_type: str) -> Decimal:
    """Return the pieces still on hand in the current open lot of ``product_type``."""

    return open_window(context, product_type).remaining


def _existing_archive(
    context: core_logic.RuntimeContext, window: LotWindow
) -> Optional[data_manager.LotArchiveRow]:
    for archive in core_logic.list_lot_archives(context):
        if archive.product_type == window.product_type and archive.window_start == window.start:
            return archive
    return None


def _advance_checkpoint(
    context: core_logic.RuntimeContext, window: LotWindow, moment: datetime
) -> None:
    advanced = core_logic.store_write(
        context,
        "advance checkpoint",
        SheetName.CHECKPOINTS,
        data_manager.compare_and_set_checkpoint,
        context.shop_id,
        window.product_type,
        last_archived_at=moment,
        expected_version=window.version,
    )
    if not advanced:
        log.error(
            "Checkpoint for '%s' moved past version %d before it could advance",
            window.product_type,
            window.version,
        )
        raise CheckpointConflictError(
            f"Checkpoint for {window.product_type} changed concurrently (expected version {window.version})"
        )
    log.info("Advanced checkpoint for '%s' to %s", window.product_type, moment.isoformat())


def check_lot_closure(
    context: core_logic.RuntimeContext,
    product_type: str,
    *,
    timestamp: Optional[datetime] = None,
) -> Optional[data_manager.LotArchiveRow]:
    """Archive the open lot of ``product_type`` when its pieces are exhausted.

    The archive row is written first and the checkpoint advanced second, so a
    failed archive insert leaves the window open for the next check. When the
    checkpoint version moved since the window was read the close is skipped.
    When an archive for the same window already exists (a previous close
    stopped between its two writes) only the checkpoint is completed.

    Returns:
        LotArchiveRow | None: The archive written by this call, if any.

    Raises:
        StoreError: If the archive insert or checkpoint write fails.
        CheckpointConflictError: If the conditional checkpoint update loses.
    """

    window = open_window(context, product_type)
    if not window.is_depleted:
        return None

    if window.total_buy == 0 and window.total_sell == 0:
        log.info("Lot for '%s' depleted with no money recorded; nothing to archive", window.product_type)
        return None

    current = get_checkpoint(context, window.product_type)
    if current.version != window.version:
        log.warning(
            "Skipping close of '%s': checkpoint moved from version %d to %d",
            window.product_type,
            window.version,
            current.version,
        )
        return None

    duplicate = _existing_archive(context, window)
    if duplicate is not None:
        log.warning(
            "Lot for '%s' starting %s already archived as '%s'; completing checkpoint",
            window.product_type,
            window.start.isoformat(),
            duplicate.archive_id,
        )
        _advance_checkpoint(context, window, duplicate.date)
        return None

    moment = max(core_logic.resolve_timestamp(timestamp), window.start)
    archive = data_manager.LotArchiveRow(
        archive_id=core_logic.generate_record_id("L", when=moment),
        shop_id=context.shop_id,
        product_type=window.product_type,
        total_purchase=window.total_buy,
        total_sale=window.total_sell,
        profit=window.total_sell - window.total_buy,
        date=moment,
        window_start=window.start,
    )
    core_logic.store_write(
        context, "insert lot archive", SheetName.LOT_ARCHIVE, data_manager.append_lot_archive, archive
    )
    log.info(
        "Archived lot '%s' for '%s': bought %d, sold %d, profit %d",
        archive.archive_id,
        archive.product_type,
        archive.total_purchase,
        archive.total_sale,
        archive.profit,
    )
    _advance_checkpoint(context, window, moment)
    context.closed_lots.append(archive)
    return archive


def list_lot_history(context: core_logic.RuntimeContext) -> List[data_manager.LotArchiveRow]:
    """Return the shop's archived lots, newest first."""

    return sorted(core_logic.list_lot_archives(context), key=lambda row: row.date, reverse=True)


def take_closed_lots(context: core_logic.RuntimeContext) -> List[data_manager.LotArchiveRow]:
    """Return the archives written through ``context`` since the last call and forget them."""

    closed = list(context.closed_lots)
    context.closed_lots.clear()
    return closed
