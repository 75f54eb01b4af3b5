"""Tests for lot depletion detection, archiving and checkpoint versioning."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from poultry_ledger import compensation, core_logic, data_manager, lots, stock
from poultry_ledger.constants import EPOCH, SheetName
from poultry_ledger.core_logic import PurchaseCommand, SaleCommand
from poultry_ledger.errors import CheckpointConflictError, StoreError


@pytest.fixture
def clock(set_fixed_datetime, at):
    """Freeze the engine clock ``minutes`` after the base moment."""

    def _set(minutes: float):
        return set_fixed_datetime(at(minutes))

    return _set


def _seed_purchase(context, moment, *, product_type="broiler", pieces="100", total=5000):
    row = data_manager.PurchaseRow(
        purchase_id=core_logic.generate_record_id("P", when=moment),
        shop_id=context.shop_id,
        product_type=product_type,
        pieces=Decimal(pieces),
        kg=Decimal("0"),
        total=total,
        is_credit=False,
        date=moment.date().isoformat(),
        created_at=moment,
    )
    core_logic.store_write(context, "seed purchase", SheetName.PURCHASES, data_manager.append_purchase, row)
    return row


def _seed_sale(context, moment, *, product_type="broiler", pieces="100", mortality="0", total=6000):
    row = data_manager.SaleRow(
        sale_id=core_logic.generate_record_id("S", when=moment),
        shop_id=context.shop_id,
        product_type=product_type,
        pieces=Decimal(pieces),
        mortality=Decimal(mortality),
        total=total,
        date=moment.date().isoformat(),
        created_at=moment,
    )
    core_logic.store_write(context, "seed sale", SheetName.SALES, data_manager.append_sale, row)
    return row


def _seed_depleted_lot(context, at):
    _seed_purchase(context, at(1), pieces="50", total=2500)
    _seed_sale(context, at(2), pieces="50", total=3000)


# ---------------------------------------------------------------------------
# Closing lots through ordinary mutations
# ---------------------------------------------------------------------------


def test_sale_exhausting_lot_archives_window(runtime_context, clock, at):
    """100 purchased against 60 sold plus 40 dead closes the broiler lot."""

    clock(1)
    compensation.record_purchase(
        runtime_context, PurchaseCommand(product_type="broiler", pieces=Decimal("100"), kg=Decimal("150"), total=5000)
    )
    clock(2)
    compensation.record_sale(runtime_context, SaleCommand(product_type="broiler", pieces=Decimal("60"), total=4200))
    assert lots.list_lot_history(runtime_context) == []

    clock(3)
    compensation.record_sale(
        runtime_context,
        SaleCommand(product_type="broiler", pieces=Decimal("0"), mortality=Decimal("40"), total=0),
    )

    [archive] = lots.list_lot_history(runtime_context)
    assert archive.product_type == "broiler"
    assert archive.total_purchase == 5000
    assert archive.total_sale == 4200
    assert archive.profit == -800
    assert archive.date == at(3)
    assert archive.window_start == EPOCH

    checkpoint = lots.get_checkpoint(runtime_context, "broiler")
    assert checkpoint.last_archived_at == at(3)
    assert checkpoint.version == 1


def test_take_closed_lots_drains_archives_written_by_mutations(runtime_context, clock):
    """Archives closed by a sale are handed out once, then forgotten."""

    clock(1)
    compensation.record_purchase(
        runtime_context, PurchaseCommand(product_type="broiler", pieces=Decimal("10"), kg=Decimal("15"), total=1000)
    )
    assert lots.take_closed_lots(runtime_context) == []

    clock(2)
    compensation.record_sale(runtime_context, SaleCommand(product_type="broiler", pieces=Decimal("10"), total=1500))

    [closed] = lots.take_closed_lots(runtime_context)
    assert (closed.product_type, closed.total_purchase, closed.total_sale, closed.profit) == (
        "broiler",
        1000,
        1500,
        500,
    )
    assert lots.take_closed_lots(runtime_context) == []


def test_partial_depletion_keeps_lot_open(runtime_context, clock):
    """Remaining pieces keep the window open and the checkpoint at epoch."""

    clock(1)
    compensation.record_purchase(
        runtime_context, PurchaseCommand(product_type="duck", pieces=Decimal("20"), kg=Decimal("30"), total=4000)
    )
    compensation.record_sale(runtime_context, SaleCommand(product_type="duck", pieces=Decimal("19"), total=3800))

    assert lots.list_lot_history(runtime_context) == []
    assert lots.open_lot_remainder(runtime_context, "duck") == Decimal("1")
    assert lots.get_checkpoint(runtime_context, "duck").version == 0


def test_stock_keeps_full_history_after_archive(runtime_context, clock):
    """Archiving moves the lot window but never resets current stock."""

    clock(1)
    compensation.record_purchase(
        runtime_context, PurchaseCommand(product_type="broiler", pieces=Decimal("100"), kg=Decimal("150"), total=5000)
    )
    clock(2)
    compensation.record_sale(
        runtime_context,
        SaleCommand(product_type="broiler", pieces=Decimal("60"), mortality=Decimal("40"), total=4200),
    )
    clock(10)
    compensation.record_purchase(
        runtime_context, PurchaseCommand(product_type="broiler", pieces=Decimal("30"), kg=Decimal("45"), total=1600)
    )

    levels = stock.current_stock(runtime_context)
    assert levels["broiler"].pieces == Decimal("30")
    assert levels["broiler"].dead == Decimal("40")
    assert levels["broiler"].kg == Decimal("195")
    assert lots.open_lot_remainder(runtime_context, "broiler") == Decimal("30")
    assert len(lots.open_window(runtime_context, "broiler").purchases) == 1


def test_zero_money_lot_is_not_archived(runtime_context, at):
    """Depleted windows without any money are left alone."""

    _seed_purchase(runtime_context, at(1), pieces="10", total=0)
    _seed_sale(runtime_context, at(2), pieces="10", total=0)

    assert lots.check_lot_closure(runtime_context, "broiler", timestamp=at(3)) is None
    assert lots.list_lot_history(runtime_context) == []
    assert lots.get_checkpoint(runtime_context, "broiler").version == 0


def test_window_without_purchases_is_not_depleted(runtime_context, at):
    """Selling from an empty window does not count as closing a lot."""

    _seed_sale(runtime_context, at(1), pieces="3", total=900)

    window = lots.open_window(runtime_context, "broiler")
    assert window.is_depleted is False
    assert window.remaining == Decimal("-3")


# ---------------------------------------------------------------------------
# Archive and checkpoint ordering
# ---------------------------------------------------------------------------


def test_archive_insert_failure_leaves_checkpoint(monkeypatch, runtime_context, at):
    """The checkpoint only moves after the archive row exists."""

    _seed_depleted_lot(runtime_context, at)
    monkeypatch.setattr(data_manager, "append_lot_archive", Mock(side_effect=OSError("read-only")))

    with pytest.raises(StoreError):
        lots.check_lot_closure(runtime_context, "broiler", timestamp=at(3))

    assert lots.get_checkpoint(runtime_context, "broiler").version == 0
    assert lots.open_window(runtime_context, "broiler").is_depleted is True


def test_stale_checkpoint_version_skips_close(monkeypatch, runtime_context, at):
    """A checkpoint advanced by someone else between reads aborts the close."""

    _seed_depleted_lot(runtime_context, at)
    moved = data_manager.CheckpointRow(runtime_context.shop_id, "broiler", at(2), 1)
    monkeypatch.setattr(data_manager, "get_checkpoint", Mock(side_effect=[None, moved]))

    assert lots.check_lot_closure(runtime_context, "broiler", timestamp=at(3)) is None
    assert core_logic.list_lot_archives(runtime_context) == []
    assert lots.take_closed_lots(runtime_context) == []


def test_existing_archive_only_completes_checkpoint(runtime_context, at):
    """An archive left behind by an interrupted close is not duplicated."""

    _seed_depleted_lot(runtime_context, at)
    leftover = data_manager.LotArchiveRow(
        archive_id="L-leftover",
        shop_id=runtime_context.shop_id,
        product_type="broiler",
        total_purchase=2500,
        total_sale=3000,
        profit=500,
        date=at(5),
        window_start=EPOCH,
    )
    core_logic.store_write(
        runtime_context, "seed archive", SheetName.LOT_ARCHIVE, data_manager.append_lot_archive, leftover
    )

    assert lots.check_lot_closure(runtime_context, "broiler", timestamp=at(6)) is None

    assert [row.archive_id for row in core_logic.list_lot_archives(runtime_context)] == ["L-leftover"]
    checkpoint = lots.get_checkpoint(runtime_context, "broiler")
    assert checkpoint.last_archived_at == at(5)
    assert checkpoint.version == 1


def test_conflicting_checkpoint_update_raises_and_recovers(monkeypatch, runtime_context, at):
    """Losing the conditional update raises; the next check completes it."""

    _seed_depleted_lot(runtime_context, at)
    monkeypatch.setattr(data_manager, "compare_and_set_checkpoint", Mock(return_value=False))

    with pytest.raises(CheckpointConflictError):
        lots.check_lot_closure(runtime_context, "broiler", timestamp=at(3))

    assert len(core_logic.list_lot_archives(runtime_context)) == 1
    monkeypatch.undo()

    assert lots.check_lot_closure(runtime_context, "broiler", timestamp=at(4)) is None
    assert len(core_logic.list_lot_archives(runtime_context)) == 1
    checkpoint = lots.get_checkpoint(runtime_context, "broiler")
    assert checkpoint.last_archived_at == at(3)
    assert checkpoint.version == 1


def test_archive_moment_never_precedes_window_start(runtime_context, at):
    """A clock behind the checkpoint is clamped to the window start."""

    data_manager.compare_and_set_checkpoint(
        runtime_context.workbook,
        runtime_context.shop_id,
        "layer",
        last_archived_at=at(10),
        expected_version=0,
    )
    _seed_purchase(runtime_context, at(11), product_type="layer", pieces="5", total=500)
    _seed_sale(runtime_context, at(12), product_type="layer", pieces="5", total=650)

    archive = lots.check_lot_closure(runtime_context, "layer", timestamp=at(0))

    assert archive.date == at(10)
    assert archive.window_start == at(10)
    assert lots.get_checkpoint(runtime_context, "layer").version == 2


def test_records_at_or_before_checkpoint_are_outside_window(runtime_context, at):
    """The window holds records created strictly after the checkpoint."""

    _seed_depleted_lot(runtime_context, at)
    lots.check_lot_closure(runtime_context, "broiler", timestamp=at(2))
    _seed_purchase(runtime_context, at(2), pieces="7", total=100)

    assert lots.open_window(runtime_context, "broiler").purchases == ()


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def test_list_lot_history_is_newest_first(runtime_context, at):
    """Archived lots are listed by close date, most recent first."""

    _seed_depleted_lot(runtime_context, at)
    lots.check_lot_closure(runtime_context, "broiler", timestamp=at(3))
    _seed_purchase(runtime_context, at(4), product_type="duck", pieces="2", total=600)
    _seed_sale(runtime_context, at(5), product_type="duck", pieces="1", mortality="1", total=400)
    lots.check_lot_closure(runtime_context, "duck", timestamp=at(6))

    history = lots.list_lot_history(runtime_context)

    assert [row.product_type for row in history] == ["duck", "broiler"]
    assert history[0].profit == -200
