"""Integration tests describing the end-to-end poultry ledger workflows.

These scenarios drive the CLI entry point against a real workbook on disk and
then reload the saved file to check what the engine layers persisted.
"""

from __future__ import annotations

from decimal import Decimal

from poultry_ledger import cli, core_logic, data_manager, lots, reconciliation, stock


def _run(config_path, capsys, *argv: str) -> tuple[int, str]:
    """Invoke the CLI against ``config_path`` and return its exit code and stdout."""

    capsys.readouterr()
    exit_code = cli.main(["--config", str(config_path), *argv])
    return exit_code, capsys.readouterr().out


def _last_token(output: str) -> str:
    return output.strip().splitlines()[-1].split()[-1]


def _reload(config_path) -> core_logic.RuntimeContext:
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def test_purchase_correction_and_drawer_count_flow(config_file, capsys):
    """Correct a purchase, count the drawer and check the persisted cash log."""

    code, _ = _run(config_file, capsys, "cash", "--type", "ADD", "--amount", "10000", "--note", "opening float")
    assert code == 0

    code, out = _run(
        config_file, capsys, "purchase", "--type", "broiler", "--pieces", "100", "--kg", "150", "--total", "5000"
    )
    assert code == 0
    purchase_id = _last_token(out)

    # Editing the paid purchase upward takes the difference out of the drawer.
    code, _ = _run(
        config_file,
        capsys,
        "edit-purchase",
        "--purchase-id",
        purchase_id,
        "--type",
        "broiler",
        "--pieces",
        "100",
        "--kg",
        "150",
        "--total",
        "5200",
    )
    assert code == 0

    code, out = _run(config_file, capsys, "balance")
    assert code == 0
    assert "Cash balance: 9800" in out

    # The drawer holds 9700, so the count records a shortfall of 100.
    code, out = _run(config_file, capsys, "count-cash", "--notes", "1000=9", "500=1", "100=2")
    assert code == 0
    assert "Gap:" in out and "-100" in out

    context = _reload(config_file)
    entries = core_logic.list_cash_logs(context)
    assert [(entry.entry_type, entry.amount) for entry in entries] == [
        ("ADD", 10000),
        ("WITHDRAW", 200),
        ("WITHDRAW", 100),
    ]
    assert entries[-1].note == "cash adjustment (shortfall 100)"
    assert entries[-1].denominations[1000] == 9
    assert core_logic.cash_balance(context) == 9700
    assert core_logic.get_purchase(context, purchase_id).total == 5200


def test_recount_edits_the_same_entry_flow(config_file, capsys):
    """Re-running a count with --edit-id rewrites the entry instead of appending."""

    _run(config_file, capsys, "cash", "--type", "ADD", "--amount", "5000", "--note", "opening float")
    _run(config_file, capsys, "cash", "--type", "WITHDRAW", "--amount", "700", "--note", "feed supplier")

    code, out = _run(config_file, capsys, "count-cash", "--notes", "1000=4", "500=1")
    assert code == 0
    count_id = out.strip().splitlines()[-1].split()[1].rstrip(":")

    code, out = _run(config_file, capsys, "count-cash", "--notes", "1000=4", "200=1", "100=1", "--edit-id", count_id)
    assert code == 0
    assert "reconciled, no adjustment" in out

    context = _reload(config_file)
    records = reconciliation.list_reconciliations(context)
    assert len(records) == 1
    assert records[0].entry.cash_log_id == count_id
    assert records[0].physical_total == 4300
    assert core_logic.cash_balance(context) == 4300


def test_lot_closes_when_mortality_finishes_stock_flow(config_file, capsys):
    """Selling and losing every bird archives the lot but keeps stock history."""

    _, out = _run(
        config_file, capsys, "purchase", "--type", "sonali", "--pieces", "100", "--kg", "90", "--total", "18000"
    )
    _run(config_file, capsys, "sale", "--type", "sonali", "--pieces", "60", "--total", "13200")
    code, out = _run(config_file, capsys, "sale", "--type", "sonali", "--pieces", "0", "--mortality", "40", "--total", "0")
    assert code == 0
    assert "Lot for sonali archived: bought 18000, sold 13200, profit -4800" in out

    code, out = _run(config_file, capsys, "lots")
    assert code == 0
    assert "sonali" in out
    assert "profit=-4800" in out

    context = _reload(config_file)
    [archive] = lots.list_lot_history(context)
    assert archive.total_purchase == 18000
    assert archive.total_sale == 13200
    assert lots.get_checkpoint(context, "sonali").version == 1

    levels = stock.current_stock(context)
    assert levels["sonali"].pieces == Decimal("0")
    assert levels["sonali"].dead == Decimal("40")

    # A fresh purchase opens the next lot from the advanced checkpoint.
    _run(config_file, capsys, "purchase", "--type", "sonali", "--pieces", "25", "--kg", "22", "--total", "4500")
    code, out = _run(config_file, capsys, "stock")
    assert code == 0
    sonali_line = next(line for line in out.splitlines() if line.startswith("sonali"))
    assert "pieces=25" in sonali_line
    assert "open_lot=25" in sonali_line


def test_due_lifecycle_flow(config_file, capsys):
    """Dues list outstanding balances and return them to cash on delete."""

    code, out = _run(config_file, capsys, "due", "--customer", "Karim", "--amount", "1500", "--paid", "400")
    assert code == 0
    due_id = _last_token(out)

    code, out = _run(config_file, capsys, "dues")
    assert "Karim: owes 1100 of 1500" in out

    code, _ = _run(config_file, capsys, "delete-due", "--due-id", due_id)
    assert code == 0

    context = _reload(config_file)
    assert core_logic.list_dues(context) == []
    [entry] = core_logic.list_cash_logs(context)
    assert (entry.entry_type, entry.amount) == ("ADD", 1100)


def test_expense_delete_returns_cash_flow(config_file, capsys):
    """Deleting an expense puts its amount back into the drawer."""

    _, out = _run(config_file, capsys, "expense", "--category", "rent", "--amount", "3000")
    expense_id = _last_token(out)
    _run(config_file, capsys, "edit-expense", "--expense-id", expense_id, "--category", "rent", "--amount", "3500")
    code, _ = _run(config_file, capsys, "delete-expense", "--expense-id", expense_id)
    assert code == 0

    context = _reload(config_file)
    assert [(entry.entry_type, entry.amount) for entry in core_logic.list_cash_logs(context)] == [
        ("WITHDRAW", 500),
        ("ADD", 3500),
    ]
    assert core_logic.cash_balance(context) == 3000


def test_failed_compensation_leaves_file_untouched_flow(config_file, capsys, monkeypatch):
    """A partial mutation exits with code 4 and nothing reaches the workbook file."""

    _, out = _run(
        config_file, capsys, "purchase", "--type", "duck", "--pieces", "10", "--kg", "15", "--total", "3000"
    )
    purchase_id = _last_token(out)

    def offline(workbook, record):
        raise OSError("cash log offline")

    monkeypatch.setattr(data_manager, "append_cash_log", offline)
    code, _ = _run(
        config_file,
        capsys,
        "edit-purchase",
        "--purchase-id",
        purchase_id,
        "--type",
        "duck",
        "--pieces",
        "10",
        "--kg",
        "15",
        "--total",
        "3400",
    )
    assert code == 4

    monkeypatch.undo()
    context = _reload(config_file)
    assert core_logic.get_purchase(context, purchase_id).total == 3000
    assert core_logic.list_cash_logs(context) == []


def test_unknown_record_exits_with_code_two_flow(config_file, capsys):
    """Deleting a record that does not exist is reported, not ignored."""

    code, _ = _run(config_file, capsys, "delete-sale", "--sale-id", "S-missing")
    assert code == 2


def test_selling_out_a_lot_tells_the_operator_flow(config_file, capsys):
    """The sale that empties a lot reports the archive on stdout."""

    _, out = _run(config_file, capsys, "purchase", "--type", "broiler", "--pieces", "10", "--kg", "15", "--total", "1000")
    assert "archived" not in out

    code, out = _run(config_file, capsys, "sale", "--type", "broiler", "--pieces", "10", "--total", "1500")

    assert code == 0
    lines = out.strip().splitlines()
    assert lines[0].startswith("Recorded sale S")
    assert lines[1] == "Lot for broiler archived: bought 1000, sold 1500, profit 500"
