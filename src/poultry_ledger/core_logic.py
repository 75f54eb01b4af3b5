"""Business logic plumbing shared by the reconciliation engine.

This module owns the :class:`RuntimeContext` (settings + live workbook +
read caches), the tenant-scoped read helpers, identifier and timestamp
generation, input validators, and the command objects describing user
intent. The rule engines (:mod:`.stock`, :mod:`.compensation`, :mod:`.lots`
and :mod:`.reconciliation`) build on these helpers and never touch the
workbook directly.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, CashEntryType, ProductType, SheetName
from .errors import MissingReferenceError, StoreError, ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the engine.

    ``closed_lots`` collects the lot archives written since the caller last
    drained it with :func:`.lots.take_closed_lots`.
    """

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)
    closed_lots: List[data_manager.LotArchiveRow] = field(default_factory=list, repr=False, compare=False)

    @property
    def shop_id(self) -> str:
        return self.settings.shop_id


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for creating or replacing a purchase."""

    product_type: ProductType
    pieces: Decimal
    kg: Decimal
    total: int
    is_credit: bool = False
    date: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleCommand:
    """User intent for creating or replacing a sale."""

    product_type: ProductType
    pieces: Decimal
    total: int
    mortality: Decimal = Decimal("0")
    date: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ExpenseCommand:
    """User intent for creating or replacing an expense."""

    category: str
    amount: int
    date: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DueCommand:
    """User intent for creating or replacing a customer due."""

    customer_name: str
    amount: int
    paid: int = 0
    date: Optional[str] = None
    timestamp: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Timestamps and identifiers
# ---------------------------------------------------------------------------


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def business_date(candidate: Optional[str] = None) -> str:
    """Return ``candidate`` or today's local business date as ``YYYY-MM-DD``."""

    if candidate:
        return candidate
    return resolve_timestamp(None).astimezone().date().isoformat()


def generate_record_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable record identifier.

    The identifier is ``{prefix}{YYYYMMDDHHMMSSffffff}-{6 hex}``. The
    timestamp keeps ids chronologically sortable; the random suffix keeps
    them unique when several records share a timestamp (bulk imports and
    tests with a frozen clock).
    """

    when = when or resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:6]}"


# ---------------------------------------------------------------------------
# Runtime context
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for shop '%s' from '%s'", settings.shop_id, settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""

    data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook, dropping unsaved edits and every cached read."""

    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def ensure_shop(context: RuntimeContext) -> data_manager.ShopRow:
    """Return the configured shop row, registering it on first use."""

    for shop in data_manager.iter_shops(context.workbook):
        if shop.shop_id == context.shop_id:
            return shop

    shop = data_manager.ShopRow(
        shop_id=context.shop_id,
        owner_name=context.settings.owner_name,
        created_at=resolve_timestamp(None),
    )
    store_write(context, "register shop", SheetName.SHOPS, data_manager.append_shop, shop)
    log.info("Registered shop '%s' for owner '%s'", shop.shop_id, shop.owner_name)
    return shop


# ---------------------------------------------------------------------------
# Cached reads
# ---------------------------------------------------------------------------

_LOADERS: Dict[SheetName, str] = {
    SheetName.PURCHASES: "iter_purchases",
    SheetName.SALES: "iter_sales",
    SheetName.EXPENSES: "iter_expenses",
    SheetName.DUES: "iter_dues",
    SheetName.CASH_LOG: "iter_cash_logs",
    SheetName.LOT_ARCHIVE: "iter_lot_archives",
}


def _ensure_cache(context: RuntimeContext, sheet: SheetName) -> List[Any]:
    """Populate and return the cached rows of ``sheet`` for the context's shop."""

    bucket = context._cache.get(sheet.value)
    if bucket is None:
        try:
            loader = getattr(data_manager, _LOADERS[sheet])
            rows = list(loader(context.workbook, context.shop_id))
        except (KeyError, ValueError, TypeError) as exc:
            log.error("Failed to read sheet '%s': %s", sheet.value, exc)
            raise StoreError(f"Unable to read {sheet.value}: {exc}") from exc
        bucket = {"all": rows}
        context._cache[sheet.value] = bucket
        log.debug("Populated %s cache with %d entries", sheet.value, len(rows))
    return bucket["all"]


def _invalidate_cache(context: RuntimeContext, *sheets: SheetName) -> None:
    for sheet in sheets:
        context._cache.pop(sheet.value, None)


def store_write(
    context: RuntimeContext,
    description: str,
    sheet: SheetName,
    operation: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a DAL write and translate collaborator failures into :class:`StoreError`.

    The cache for ``sheet`` is invalidated whether or not the write
    succeeded, since a failing write may have touched the sheet partially.
    """

    try:
        return operation(context.workbook, *args, **kwargs)
    except (KeyError, ValueError, TypeError, OSError) as exc:
        log.error("Store write failed (%s): %s", description, exc)
        raise StoreError(f"{description} failed: {exc}") from exc
    finally:
        _invalidate_cache(context, sheet)


def list_purchases(context: RuntimeContext) -> List[data_manager.PurchaseRow]:
    return list(_ensure_cache(context, SheetName.PURCHASES))


def list_sales(context: RuntimeContext) -> List[data_manager.SaleRow]:
    return list(_ensure_cache(context, SheetName.SALES))


def list_expenses(context: RuntimeContext) -> List[data_manager.ExpenseRow]:
    return list(_ensure_cache(context, SheetName.EXPENSES))


def list_dues(context: RuntimeContext) -> List[data_manager.DueRow]:
    return list(_ensure_cache(context, SheetName.DUES))


def list_cash_logs(context: RuntimeContext) -> List[data_manager.CashLogRow]:
    """Return the shop's cash log in insertion order."""

    return list(_ensure_cache(context, SheetName.CASH_LOG))


def list_lot_archives(context: RuntimeContext) -> List[data_manager.LotArchiveRow]:
    return list(_ensure_cache(context, SheetName.LOT_ARCHIVE))


def _find(rows: Iterable[T], key: Callable[[T], str], record_id: str, label: str) -> T:
    for row in rows:
        if key(row) == record_id:
            return row
    log.warning("%s lookup failed for id '%s'", label, record_id)
    raise MissingReferenceError(f"Unknown {label.lower()} id: {record_id}")


def get_purchase(context: RuntimeContext, purchase_id: str) -> data_manager.PurchaseRow:
    return _find(list_purchases(context), lambda row: row.purchase_id, purchase_id, "Purchase")


def get_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    return _find(list_sales(context), lambda row: row.sale_id, sale_id, "Sale")


def get_expense(context: RuntimeContext, expense_id: str) -> data_manager.ExpenseRow:
    return _find(list_expenses(context), lambda row: row.expense_id, expense_id, "Expense")


def get_due(context: RuntimeContext, due_id: str) -> data_manager.DueRow:
    return _find(list_dues(context), lambda row: row.due_id, due_id, "Due")


def get_cash_log(context: RuntimeContext, cash_log_id: str) -> data_manager.CashLogRow:
    return _find(list_cash_logs(context), lambda row: row.cash_log_id, cash_log_id, "Cash log")


# ---------------------------------------------------------------------------
# Cash balance
# ---------------------------------------------------------------------------


def signed_amount(entry: data_manager.CashLogRow) -> int:
    """Return the entry's contribution to the drawer: ``+amount`` or ``-amount``."""

    if entry.entry_type == CashEntryType.WITHDRAW.value:
        return -entry.amount
    return entry.amount


def cash_balance(context: RuntimeContext, *, exclude_id: Optional[str] = None) -> int:
    """Return the system cash balance, the signed sum of the shop's cash log.

    ``exclude_id`` removes one entry's effect, recovering the balance as it
    would stand without that entry.
    """

    return sum(
        signed_amount(entry)
        for entry in list_cash_logs(context)
        if entry.cash_log_id != exclude_id
    )


def record_cash_entry(
    context: RuntimeContext,
    entry_type: CashEntryType,
    amount: int,
    note: str,
    *,
    denominations: Optional[Dict[int, int]] = None,
    date: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.CashLogRow:
    """Append one entry to the shop's cash log and return it.

    Raises:
        StoreError: If the store rejects the insert.
    """

    moment = resolve_timestamp(timestamp)
    entry = data_manager.CashLogRow(
        cash_log_id=generate_record_id("C", when=moment),
        shop_id=context.shop_id,
        entry_type=CashEntryType(entry_type).value,
        amount=amount,
        date=business_date(date),
        note=note,
        denominations=dict(denominations) if denominations is not None else None,
        created_at=moment,
    )
    store_write(context, "insert cash log", SheetName.CASH_LOG, data_manager.append_cash_log, entry)
    log.info(
        "Recorded cash log '%s' %s %d (%s)",
        entry.cash_log_id,
        entry.entry_type,
        entry.amount,
        entry.note,
    )
    return entry


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def require_product_type(value: object) -> ProductType:
    """Coerce ``value`` into a :class:`ProductType` or reject it."""

    try:
        return ProductType(value)
    except ValueError as exc:
        log.error("Unknown product type: %r", value)
        raise ValidationError(f"Unknown product type: {value!r}") from exc


def require_quantity(value: object, label: str = "Quantity") -> Decimal:
    """Coerce ``value`` into a non-negative :class:`Decimal`."""

    try:
        quantity = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        log.error("%s validation failed: %r", label, value)
        raise ValidationError(f"{label} must be numeric") from exc
    if not quantity.is_finite() or quantity < 0:
        log.error("%s validation failed: %s", label, quantity)
        raise ValidationError(f"{label} must be zero or positive")
    return quantity


def require_money(value: object, label: str = "Amount") -> int:
    """Coerce ``value`` into a non-negative integer amount in the smallest unit."""

    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer amount")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        log.error("%s validation failed: %r", label, value)
        raise ValidationError(f"{label} must be an integer amount") from exc
    if not amount.is_finite() or amount != amount.to_integral_value():
        log.error("%s validation failed: %r", label, value)
        raise ValidationError(f"{label} must be an integer amount")
    if amount < 0:
        log.error("%s validation failed: %s", label, amount)
        raise ValidationError(f"{label} must be zero or positive")
    return int(amount)


def require_text(value: Optional[str], label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    return text
