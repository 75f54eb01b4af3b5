"""Command-line entry points for the poultry ledger.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the engine
modules. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import compensation, core_logic, log, lots, reconciliation, stock
from .constants import CashEntryType, ProductType
from .errors import MissingReferenceError, PartialMutationError, ValidationError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="poultry-cli",
        description="Command-line tools for the poultry shop ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini upwards).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as purchases and cash counts."""
    specs = {
        "purchase": register_purchase_command(subparsers),
        "edit-purchase": register_edit_purchase_command(subparsers),
        "delete-purchase": register_delete_purchase_command(subparsers),
        "sale": register_sale_command(subparsers),
        "edit-sale": register_edit_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "expense": register_expense_command(subparsers),
        "edit-expense": register_edit_expense_command(subparsers),
        "delete-expense": register_delete_expense_command(subparsers),
        "due": register_due_command(subparsers),
        "edit-due": register_edit_due_command(subparsers),
        "delete-due": register_delete_due_command(subparsers),
        "cash": register_cash_command(subparsers),
        "count-cash": register_count_cash_command(subparsers),
        "delete-count": register_delete_count_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "balance": register_balance_command(subparsers),
        "lots": register_lots_command(subparsers),
        "dues": register_dues_command(subparsers),
        "cash-log": register_cash_log_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Shared argument groups
# ---------------------------------------------------------------------------


def _add_purchase_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", dest="product_type", choices=[member.value for member in ProductType], required=True)
    parser.add_argument("--pieces", required=True)
    parser.add_argument("--kg", required=True)
    parser.add_argument("--total", required=True)
    parser.add_argument("--credit", action="store_true", help="Record the purchase as bought on credit.")
    parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")


def _add_sale_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", dest="product_type", choices=[member.value for member in ProductType], required=True)
    parser.add_argument("--pieces", required=True)
    parser.add_argument("--mortality", default="0", help="Pieces that died before sale.")
    parser.add_argument("--total", required=True)
    parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")


def _add_expense_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--category", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")


def _add_due_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--customer", dest="customer_name", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--paid", default="0")
    parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")


# ---------------------------------------------------------------------------
# Write commands
# ---------------------------------------------------------------------------


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record a purchase of birds."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_purchase_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_edit_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-purchase``."""
    name = "edit-purchase"
    help_text = "Correct a recorded purchase and compensate the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        _add_purchase_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_purchase)


def register_delete_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-purchase``."""
    name = "delete-purchase"
    help_text = "Delete a recorded purchase and compensate the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_purchase)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale, including birds that died."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_edit_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-sale``."""
    name = "edit-sale"
    help_text = "Correct a recorded sale and compensate the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_sale)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a recorded sale and compensate the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale)


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""
    name = "expense"
    help_text = "Record a shop expense."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_expense_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expense)


def register_edit_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-expense``."""
    name = "edit-expense"
    help_text = "Correct a recorded expense and compensate the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--expense-id", required=True)
        _add_expense_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_expense)


def register_delete_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-expense``."""
    name = "delete-expense"
    help_text = "Delete a recorded expense and return its cash."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--expense-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_expense)


def register_due_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``due``."""
    name = "due"
    help_text = "Record an amount a customer owes."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_due_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_due)


def register_edit_due_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-due``."""
    name = "edit-due"
    help_text = "Correct a customer due."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--due-id", required=True)
        _add_due_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_due)


def register_delete_due_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-due``."""
    name = "delete-due"
    help_text = "Delete a customer due, returning any unpaid balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--due-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_due)


def register_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash``."""
    name = "cash"
    help_text = "Put cash into or take cash out of the drawer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--type", dest="entry_type", choices=[member.value for member in CashEntryType], required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--note", required=True)
        parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash)


def register_count_cash_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``count-cash``."""
    name = "count-cash"
    help_text = "Reconcile a physical note count against the system balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--notes",
            dest="note_counts",
            nargs="+",
            required=True,
            metavar="NOTE=COUNT",
            help="Counted notes, for example 500=3 100=7.",
        )
        parser.add_argument("--edit-id", default=None, help="Rewrite an earlier count in place.")
        parser.add_argument("--preview", action="store_true", help="Show the gap without recording it.")
        parser.add_argument("--date", default=None, help="Business date (YYYY-MM-DD); defaults to today.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_count_cash)


def register_delete_count_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-count``."""
    name = "delete-count"
    help_text = "Delete a recorded note count."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--cash-log-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_count)


# ---------------------------------------------------------------------------
# Read commands
# ---------------------------------------------------------------------------


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display stock levels and open lot remainders."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_balance_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balance``."""
    name = "balance"
    help_text = "Display the system cash balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balance_report)


def register_lots_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``lots``."""
    name = "lots"
    help_text = "Display archived lots, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_lots_report)


def register_dues_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dues``."""
    name = "dues"
    help_text = "Display customers with an unpaid balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dues_report)


def register_cash_log_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-log``."""
    name = "cash-log"
    help_text = "Display the cash log."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--counts-only", action="store_true", help="Only show note count reconciliations.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash_log_report)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)
    core_logic.ensure_schema_version(context)
    core_logic.ensure_shop(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.PurchaseCommand(
        product_type=core_logic.require_product_type(args.product_type),
        pieces=core_logic.require_quantity(args.pieces, "Pieces"),
        kg=core_logic.require_quantity(args.kg, "Kg"),
        total=core_logic.require_money(args.total, "Total"),
        is_credit=bool(getattr(args, "credit", False)),
        date=args.date,
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        product_type=core_logic.require_product_type(args.product_type),
        pieces=core_logic.require_quantity(args.pieces, "Pieces"),
        mortality=core_logic.require_quantity(args.mortality, "Mortality"),
        total=core_logic.require_money(args.total, "Total"),
        date=args.date,
    )


def translate_expense(args: argparse.Namespace) -> core_logic.ExpenseCommand:
    """Translate CLI args into an expense command object."""
    return core_logic.ExpenseCommand(
        category=args.category,
        amount=core_logic.require_money(args.amount),
        date=args.date,
    )


def translate_due(args: argparse.Namespace) -> core_logic.DueCommand:
    """Translate CLI args into a due command object."""
    return core_logic.DueCommand(
        customer_name=args.customer_name,
        amount=core_logic.require_money(args.amount),
        paid=core_logic.require_money(args.paid, "Paid"),
        date=args.date,
    )


def translate_note_counts(pairs: Sequence[str]) -> Dict[str, str]:
    """Split ``NOTE=COUNT`` tokens into a raw count mapping."""
    counts: Dict[str, str] = {}
    for pair in pairs:
        note, separator, count = pair.partition("=")
        if not separator or not note.strip():
            raise ValidationError(f"Expected NOTE=COUNT, got {pair!r}")
        counts[note.strip()] = count
    return counts


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def report_closed_lots(context: core_logic.RuntimeContext) -> None:
    """Tell the operator about every lot the last mutation archived."""
    for archive in lots.take_closed_lots(context):
        print(
            f"Lot for {archive.product_type} archived: bought {archive.total_purchase}, "
            f"sold {archive.total_sale}, profit {archive.profit}"
        )


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase workflow via the compensator."""
    row = compensation.apply_purchase_mutation(
        context, compensation.MutationKind.CREATE, command=translate_purchase(args)
    )
    print(f"Recorded purchase {row.purchase_id}")
    report_closed_lots(context)
    return 0


def run_edit_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_purchase_mutation(
        context,
        compensation.MutationKind.UPDATE,
        record_id=args.purchase_id,
        command=translate_purchase(args),
    )
    print(f"Updated purchase {args.purchase_id}")
    report_closed_lots(context)
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_purchase_mutation(context, compensation.MutationKind.DELETE, record_id=args.purchase_id)
    print(f"Deleted purchase {args.purchase_id}")
    report_closed_lots(context)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the compensator."""
    row = compensation.apply_sale_mutation(context, compensation.MutationKind.CREATE, command=translate_sale(args))
    print(f"Recorded sale {row.sale_id}")
    report_closed_lots(context)
    return 0


def run_edit_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_sale_mutation(
        context,
        compensation.MutationKind.UPDATE,
        record_id=args.sale_id,
        command=translate_sale(args),
    )
    print(f"Updated sale {args.sale_id}")
    report_closed_lots(context)
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_sale_mutation(context, compensation.MutationKind.DELETE, record_id=args.sale_id)
    print(f"Deleted sale {args.sale_id}")
    report_closed_lots(context)
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    row = compensation.apply_expense_mutation(
        context, compensation.MutationKind.CREATE, command=translate_expense(args)
    )
    print(f"Recorded expense {row.expense_id}")
    return 0


def run_edit_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_expense_mutation(
        context,
        compensation.MutationKind.UPDATE,
        record_id=args.expense_id,
        command=translate_expense(args),
    )
    print(f"Updated expense {args.expense_id}")
    return 0


def run_delete_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_expense_mutation(context, compensation.MutationKind.DELETE, record_id=args.expense_id)
    print(f"Deleted expense {args.expense_id}")
    return 0


def run_due(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    row = compensation.apply_due_mutation(context, compensation.MutationKind.CREATE, command=translate_due(args))
    print(f"Recorded due {row.due_id}")
    return 0


def run_edit_due(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_due_mutation(
        context,
        compensation.MutationKind.UPDATE,
        record_id=args.due_id,
        command=translate_due(args),
    )
    print(f"Updated due {args.due_id}")
    return 0


def run_delete_due(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    compensation.apply_due_mutation(context, compensation.MutationKind.DELETE, record_id=args.due_id)
    print(f"Deleted due {args.due_id}")
    return 0


def run_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Record a manual cash movement."""
    entry = reconciliation.record_cash_movement(context, args.entry_type, args.amount, args.note, date=args.date)
    print(f"Recorded cash {entry.entry_type} {entry.amount} ({entry.cash_log_id})")
    return 0


def run_count_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Preview or record a denomination reconciliation."""
    counts = translate_note_counts(args.note_counts)
    preview = reconciliation.preview_reconciliation(context, counts, args.edit_id)
    print(f"System balance: {preview.system_balance}")
    print(f"Counted cash:   {preview.physical_total}")
    print(f"Gap:            {preview.gap}")
    if args.preview:
        return 0
    entry = reconciliation.reconcile_denomination(context, counts, args.edit_id, date=args.date)
    print(f"Saved {entry.cash_log_id}: {entry.note}")
    return 0


def run_delete_count(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    reconciliation.delete_reconciliation(context, args.cash_log_id)
    print(f"Deleted count {args.cash_log_id}")
    return 0


def format_stock_lines(levels: stock.StockMap, remainders: Mapping[str, Decimal]) -> List[str]:
    """Render one line per product type for the stock report."""
    return [
        f"{product_type:<8} pieces={level.pieces} kg={level.kg} dead={level.dead} open_lot={remainders[product_type]}"
        for product_type, level in levels.items()
    ]


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    levels = stock.current_stock(context)
    remainders = {product_type: lots.open_lot_remainder(context, product_type) for product_type in levels}
    for line in format_stock_lines(levels, remainders):
        print(line)
    return 0


def run_balance_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(f"Cash balance: {core_logic.cash_balance(context)}")
    return 0


def run_lots_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the lot history reporting workflow."""
    for archive in lots.list_lot_history(context):
        print(
            f"{archive.date:%Y-%m-%d %H:%M} {archive.product_type:<8} "
            f"bought={archive.total_purchase} sold={archive.total_sale} profit={archive.profit}"
        )
    return 0


def run_dues_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the outstanding dues reporting workflow."""
    for due in core_logic.list_dues(context):
        if due.outstanding > 0:
            print(f"{due.due_id} {due.customer_name}: owes {due.outstanding} of {due.amount}")
    return 0


def run_cash_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cash log reporting workflow."""
    if getattr(args, "counts_only", False):
        for record in reconciliation.list_reconciliations(context):
            entry = record.entry
            print(f"{entry.cash_log_id} {entry.date} counted={record.physical_total} {entry.note}")
        return 0
    for entry in core_logic.list_cash_logs(context):
        print(f"{entry.cash_log_id} {entry.date} {entry.entry_type:<8} {entry.amount} {entry.note}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, PartialMutationError):
        log.error("%s", error)
        return 4
    if isinstance(error, (ValidationError, MissingReferenceError)):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
