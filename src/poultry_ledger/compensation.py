"""Cash compensation for edits and deletions of historical ledger rows.

Purchases, sales, expenses and dues are edited in place, yet the cash
balance is the signed sum of the append-only cash log. Every correction to
history that changes how much cash the record moved is therefore paired with
exactly one compensating cash log entry. New records never produce one.

Each mutation runs as a :class:`~poultry_ledger.saga.MutationSaga` with the
steps ``write-source``, ``compensate-cash`` (when a delta exists) and one
``check-lot:<type>`` per affected product type for purchases and sales.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Optional, Union

from . import core_logic, data_manager, log, lots
from .constants import CashEntryType, SheetName
from .core_logic import DueCommand, ExpenseCommand, PurchaseCommand, RuntimeContext, SaleCommand
from .errors import ValidationError
from .saga import MutationSaga


@dataclass(frozen=True)
class CashDelta:
    """A compensating cash log entry that a mutation requires."""

    entry_type: CashEntryType
    amount: int
    note: str


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# Compensation rules
# ---------------------------------------------------------------------------


def _signed_delta(
    difference: int, when_positive: CashEntryType, when_negative: CashEntryType, note: str
) -> Optional[CashDelta]:
    if difference > 0:
        return CashDelta(when_positive, difference, note)
    if difference < 0:
        return CashDelta(when_negative, -difference, note)
    return None


def purchase_update_delta(old: data_manager.PurchaseRow, new: data_manager.PurchaseRow) -> Optional[CashDelta]:
    """Return the cash effect of replacing purchase ``old`` with ``new``.

    Cash purchases take money out of the drawer and credit purchases do not,
    so the rule depends on the credit flag before and after the edit.
    """

    if not old.is_credit and not new.is_credit:
        return _signed_delta(
            new.total - old.total,
            CashEntryType.WITHDRAW,
            CashEntryType.ADD,
            f"purchase correction: {new.product_type}",
        )
    if old.is_credit and not new.is_credit:
        return CashDelta(CashEntryType.WITHDRAW, new.total, f"credit purchase settled in cash: {new.product_type}")
    if not old.is_credit and new.is_credit:
        return CashDelta(CashEntryType.ADD, old.total, f"cash purchase moved to credit: {new.product_type}")
    return None


def purchase_delete_delta(old: data_manager.PurchaseRow) -> Optional[CashDelta]:
    if old.is_credit:
        return None
    return CashDelta(CashEntryType.ADD, old.total, f"purchase deleted, cash returned: {old.product_type}")


def sale_update_delta(old: data_manager.SaleRow, new: data_manager.SaleRow) -> Optional[CashDelta]:
    return _signed_delta(
        new.total - old.total,
        CashEntryType.ADD,
        CashEntryType.WITHDRAW,
        f"sale correction: {new.product_type}",
    )


def sale_delete_delta(old: data_manager.SaleRow) -> Optional[CashDelta]:
    return CashDelta(CashEntryType.WITHDRAW, old.total, f"sale deleted: {old.product_type}")


def expense_update_delta(old: data_manager.ExpenseRow, new: data_manager.ExpenseRow) -> Optional[CashDelta]:
    return _signed_delta(
        new.amount - old.amount,
        CashEntryType.WITHDRAW,
        CashEntryType.ADD,
        f"expense correction: {new.category}",
    )


def expense_delete_delta(old: data_manager.ExpenseRow) -> Optional[CashDelta]:
    return CashDelta(CashEntryType.ADD, old.amount, f"expense deleted: {old.category}")


def due_delete_delta(old: data_manager.DueRow) -> Optional[CashDelta]:
    """Return the unpaid balance of a deleted due as an ``ADD`` entry.

    Fully paid (or overpaid) dues have nothing outstanding and produce no
    entry. Due edits never move cash.
    """

    if old.outstanding <= 0:
        return None
    return CashDelta(
        CashEntryType.ADD,
        old.outstanding,
        f"due deleted, unpaid balance returned: {old.customer_name}",
    )


# ---------------------------------------------------------------------------
# Saga assembly
# ---------------------------------------------------------------------------


def _write_step(context: RuntimeContext, description: str, sheet: SheetName, operation, *args, **kwargs):
    return partial(core_logic.store_write, context, description, sheet, operation, *args, **kwargs)


def _add_compensation(saga: MutationSaga, context: RuntimeContext, delta: Optional[CashDelta]) -> None:
    if delta is None:
        return
    saga.add_step(
        "compensate-cash",
        partial(core_logic.record_cash_entry, context, delta.entry_type, delta.amount, delta.note),
        affects_cash=True,
    )


def _add_lot_checks(saga: MutationSaga, context: RuntimeContext, *product_types: str) -> None:
    # dict.fromkeys keeps the first occurrence so an unchanged type is checked once
    for product_type in dict.fromkeys(product_types):
        saga.add_step(f"check-lot:{product_type}", partial(lots.check_lot_closure, context, product_type))


def _update_step(context: RuntimeContext, sheet: SheetName, record_id: str, serialized_row):
    return _write_step(
        context,
        f"update {sheet.value} row",
        sheet,
        data_manager.update_record,
        sheet.value,
        record_id,
        field_values=data_manager.editable_fields(sheet.value, serialized_row),
    )


def _delete_step(context: RuntimeContext, sheet: SheetName, record_id: str):
    return _write_step(
        context, f"delete {sheet.value} row", sheet, data_manager.delete_record, sheet.value, record_id
    )


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


def _build_purchase(
    context: RuntimeContext,
    command: PurchaseCommand,
    *,
    existing: Optional[data_manager.PurchaseRow] = None,
) -> data_manager.PurchaseRow:
    product = core_logic.require_product_type(command.product_type)
    pieces = core_logic.require_quantity(command.pieces, "Pieces")
    kg = core_logic.require_quantity(command.kg, "Kg")
    total = core_logic.require_money(command.total, "Total")

    if existing is not None:
        return replace(
            existing,
            product_type=product.value,
            pieces=pieces,
            kg=kg,
            total=total,
            is_credit=bool(command.is_credit),
            date=command.date or existing.date,
        )

    moment = core_logic.resolve_timestamp(command.timestamp)
    return data_manager.PurchaseRow(
        purchase_id=core_logic.generate_record_id("P", when=moment),
        shop_id=context.shop_id,
        product_type=product.value,
        pieces=pieces,
        kg=kg,
        total=total,
        is_credit=bool(command.is_credit),
        date=core_logic.business_date(command.date),
        created_at=moment,
    )


def record_purchase(context: RuntimeContext, command: PurchaseCommand) -> data_manager.PurchaseRow:
    """Insert a purchase and check whether its lot closed."""

    row = _build_purchase(context, command)
    saga = MutationSaga(f"create purchase {row.purchase_id}")
    saga.add_step(
        "write-source",
        _write_step(context, "insert purchase", SheetName.PURCHASES, data_manager.append_purchase, row),
    )
    _add_lot_checks(saga, context, row.product_type)
    saga.run()
    log.info(
        "Recorded purchase '%s' (%s, %s pcs, total %d, credit=%s)",
        row.purchase_id,
        row.product_type,
        row.pieces,
        row.total,
        row.is_credit,
    )
    return row


def update_purchase(
    context: RuntimeContext, purchase_id: str, command: PurchaseCommand
) -> data_manager.PurchaseRow:
    """Replace a purchase in place and compensate the cash it moved.

    Raises:
        MissingReferenceError: If ``purchase_id`` is unknown.
        ValidationError: If the replacement values are invalid.
        StoreError: If the purchase row could not be written.
        PartialMutationError: If a later step failed after the row changed.
    """

    old = core_logic.get_purchase(context, purchase_id)
    new = _build_purchase(context, command, existing=old)
    saga = MutationSaga(f"update purchase {purchase_id}")
    saga.add_step(
        "write-source",
        _update_step(context, SheetName.PURCHASES, purchase_id, data_manager.serialize_purchase(new)),
    )
    _add_compensation(saga, context, purchase_update_delta(old, new))
    _add_lot_checks(saga, context, new.product_type, old.product_type)
    saga.run()
    log.info("Updated purchase '%s' (total %d -> %d)", purchase_id, old.total, new.total)
    return new


def delete_purchase(context: RuntimeContext, purchase_id: str) -> data_manager.PurchaseRow:
    """Delete a purchase, returning its cash to the drawer when it was paid in cash."""

    old = core_logic.get_purchase(context, purchase_id)
    saga = MutationSaga(f"delete purchase {purchase_id}")
    saga.add_step("write-source", _delete_step(context, SheetName.PURCHASES, purchase_id))
    _add_compensation(saga, context, purchase_delete_delta(old))
    _add_lot_checks(saga, context, old.product_type)
    saga.run()
    log.info("Deleted purchase '%s'", purchase_id)
    return old


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


def _build_sale(
    context: RuntimeContext,
    command: SaleCommand,
    *,
    existing: Optional[data_manager.SaleRow] = None,
) -> data_manager.SaleRow:
    product = core_logic.require_product_type(command.product_type)
    pieces = core_logic.require_quantity(command.pieces, "Pieces")
    mortality = core_logic.require_quantity(command.mortality, "Mortality")
    total = core_logic.require_money(command.total, "Total")

    if existing is not None:
        return replace(
            existing,
            product_type=product.value,
            pieces=pieces,
            mortality=mortality,
            total=total,
            date=command.date or existing.date,
        )

    moment = core_logic.resolve_timestamp(command.timestamp)
    return data_manager.SaleRow(
        sale_id=core_logic.generate_record_id("S", when=moment),
        shop_id=context.shop_id,
        product_type=product.value,
        pieces=pieces,
        mortality=mortality,
        total=total,
        date=core_logic.business_date(command.date),
        created_at=moment,
    )


def record_sale(context: RuntimeContext, command: SaleCommand) -> data_manager.SaleRow:
    row = _build_sale(context, command)
    saga = MutationSaga(f"create sale {row.sale_id}")
    saga.add_step(
        "write-source",
        _write_step(context, "insert sale", SheetName.SALES, data_manager.append_sale, row),
    )
    _add_lot_checks(saga, context, row.product_type)
    saga.run()
    log.info(
        "Recorded sale '%s' (%s, %s pcs + %s dead, total %d)",
        row.sale_id,
        row.product_type,
        row.pieces,
        row.mortality,
        row.total,
    )
    return row


def update_sale(context: RuntimeContext, sale_id: str, command: SaleCommand) -> data_manager.SaleRow:
    old = core_logic.get_sale(context, sale_id)
    new = _build_sale(context, command, existing=old)
    saga = MutationSaga(f"update sale {sale_id}")
    saga.add_step("write-source", _update_step(context, SheetName.SALES, sale_id, data_manager.serialize_sale(new)))
    _add_compensation(saga, context, sale_update_delta(old, new))
    _add_lot_checks(saga, context, new.product_type, old.product_type)
    saga.run()
    log.info("Updated sale '%s' (total %d -> %d)", sale_id, old.total, new.total)
    return new


def delete_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    old = core_logic.get_sale(context, sale_id)
    saga = MutationSaga(f"delete sale {sale_id}")
    saga.add_step("write-source", _delete_step(context, SheetName.SALES, sale_id))
    _add_compensation(saga, context, sale_delete_delta(old))
    _add_lot_checks(saga, context, old.product_type)
    saga.run()
    log.info("Deleted sale '%s'", sale_id)
    return old


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def _build_expense(
    context: RuntimeContext,
    command: ExpenseCommand,
    *,
    existing: Optional[data_manager.ExpenseRow] = None,
) -> data_manager.ExpenseRow:
    category = core_logic.require_text(command.category, "Category")
    amount = core_logic.require_money(command.amount)

    if existing is not None:
        return replace(existing, category=category, amount=amount, date=command.date or existing.date)

    moment = core_logic.resolve_timestamp(command.timestamp)
    return data_manager.ExpenseRow(
        expense_id=core_logic.generate_record_id("E", when=moment),
        shop_id=context.shop_id,
        category=category,
        amount=amount,
        date=core_logic.business_date(command.date),
        created_at=moment,
    )


def record_expense(context: RuntimeContext, command: ExpenseCommand) -> data_manager.ExpenseRow:
    row = _build_expense(context, command)
    saga = MutationSaga(f"create expense {row.expense_id}")
    saga.add_step(
        "write-source",
        _write_step(context, "insert expense", SheetName.EXPENSES, data_manager.append_expense, row),
    )
    saga.run()
    log.info("Recorded expense '%s' (%s, %d)", row.expense_id, row.category, row.amount)
    return row


def update_expense(context: RuntimeContext, expense_id: str, command: ExpenseCommand) -> data_manager.ExpenseRow:
    old = core_logic.get_expense(context, expense_id)
    new = _build_expense(context, command, existing=old)
    saga = MutationSaga(f"update expense {expense_id}")
    saga.add_step(
        "write-source",
        _update_step(context, SheetName.EXPENSES, expense_id, data_manager.serialize_expense(new)),
    )
    _add_compensation(saga, context, expense_update_delta(old, new))
    saga.run()
    log.info("Updated expense '%s' (amount %d -> %d)", expense_id, old.amount, new.amount)
    return new


def delete_expense(context: RuntimeContext, expense_id: str) -> data_manager.ExpenseRow:
    old = core_logic.get_expense(context, expense_id)
    saga = MutationSaga(f"delete expense {expense_id}")
    saga.add_step("write-source", _delete_step(context, SheetName.EXPENSES, expense_id))
    _add_compensation(saga, context, expense_delete_delta(old))
    saga.run()
    log.info("Deleted expense '%s'", expense_id)
    return old


# ---------------------------------------------------------------------------
# Dues
# ---------------------------------------------------------------------------


def _build_due(
    context: RuntimeContext,
    command: DueCommand,
    *,
    existing: Optional[data_manager.DueRow] = None,
) -> data_manager.DueRow:
    customer = core_logic.require_text(command.customer_name, "Customer name")
    amount = core_logic.require_money(command.amount)
    paid = core_logic.require_money(command.paid, "Paid")

    if existing is not None:
        return replace(
            existing,
            customer_name=customer,
            amount=amount,
            paid=paid,
            date=command.date or existing.date,
        )

    moment = core_logic.resolve_timestamp(command.timestamp)
    return data_manager.DueRow(
        due_id=core_logic.generate_record_id("D", when=moment),
        shop_id=context.shop_id,
        customer_name=customer,
        amount=amount,
        paid=paid,
        date=core_logic.business_date(command.date),
        created_at=moment,
    )


def record_due(context: RuntimeContext, command: DueCommand) -> data_manager.DueRow:
    row = _build_due(context, command)
    saga = MutationSaga(f"create due {row.due_id}")
    saga.add_step("write-source", _write_step(context, "insert due", SheetName.DUES, data_manager.append_due, row))
    saga.run()
    log.info("Recorded due '%s' for '%s' (%d, paid %d)", row.due_id, row.customer_name, row.amount, row.paid)
    return row


def update_due(context: RuntimeContext, due_id: str, command: DueCommand) -> data_manager.DueRow:
    old = core_logic.get_due(context, due_id)
    new = _build_due(context, command, existing=old)
    saga = MutationSaga(f"update due {due_id}")
    saga.add_step("write-source", _update_step(context, SheetName.DUES, due_id, data_manager.serialize_due(new)))
    saga.run()
    log.info("Updated due '%s' (amount %d, paid %d)", due_id, new.amount, new.paid)
    return new


def delete_due(context: RuntimeContext, due_id: str) -> data_manager.DueRow:
    old = core_logic.get_due(context, due_id)
    saga = MutationSaga(f"delete due {due_id}")
    saga.add_step("write-source", _delete_step(context, SheetName.DUES, due_id))
    _add_compensation(saga, context, due_delete_delta(old))
    saga.run()
    log.info("Deleted due '%s'", due_id)
    return old


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------


def _dispatch(kind, record_id, command, create, update, delete, label: str):
    try:
        kind = MutationKind(kind)
    except ValueError as exc:
        raise ValidationError(f"Unknown mutation kind: {kind!r}") from exc
    if kind is MutationKind.CREATE:
        if command is None:
            raise ValidationError(f"Creating a {label} requires a command")
        return create(command)
    if not record_id:
        raise ValidationError(f"Changing a {label} requires its id")
    if kind is MutationKind.UPDATE:
        if command is None:
            raise ValidationError(f"Updating a {label} requires a command")
        return update(record_id, command)
    return delete(record_id)


def apply_purchase_mutation(
    context: RuntimeContext,
    kind: Union[MutationKind, str],
    *,
    record_id: Optional[str] = None,
    command: Optional[PurchaseCommand] = None,
) -> data_manager.PurchaseRow:
    """Create, update or delete a purchase with its compensation and lot check.

    Returns the written row, or the removed row for deletions.
    """

    return _dispatch(
        kind,
        record_id,
        command,
        partial(record_purchase, context),
        partial(update_purchase, context),
        partial(delete_purchase, context),
        "purchase",
    )


def apply_sale_mutation(
    context: RuntimeContext,
    kind: Union[MutationKind, str],
    *,
    record_id: Optional[str] = None,
    command: Optional[SaleCommand] = None,
) -> data_manager.SaleRow:
    return _dispatch(
        kind,
        record_id,
        command,
        partial(record_sale, context),
        partial(update_sale, context),
        partial(delete_sale, context),
        "sale",
    )


def apply_expense_mutation(
    context: RuntimeContext,
    kind: Union[MutationKind, str],
    *,
    record_id: Optional[str] = None,
    command: Optional[ExpenseCommand] = None,
) -> data_manager.ExpenseRow:
    return _dispatch(
        kind,
        record_id,
        command,
        partial(record_expense, context),
        partial(update_expense, context),
        partial(delete_expense, context),
        "expense",
    )


def apply_due_mutation(
    context: RuntimeContext,
    kind: Union[MutationKind, str],
    *,
    record_id: Optional[str] = None,
    command: Optional[DueCommand] = None,
) -> data_manager.DueRow:
    return _dispatch(
        kind,
        record_id,
        command,
        partial(record_due, context),
        partial(update_due, context),
        partial(delete_due, context),
        "due",
    )
