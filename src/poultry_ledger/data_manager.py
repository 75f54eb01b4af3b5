"""Data access layer for the poultry ledger.

This module provides low-level helpers that read from and write to the shop
workbook. Business rules belong elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading tenant-scoped records and appending, updating,
   or deleting individual rows.

Every ledger sheet carries a ``ShopID`` column; iterators accept an optional
``shop_id`` so callers only ever see their own tenant's rows.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_DENOMINATIONS, SheetName


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SHOPS.value: ["ShopID", "OwnerName", "CreatedAt"],
    SheetName.PURCHASES.value: [
        "PurchaseID",
        "ShopID",
        "Type",
        "Pieces",
        "Kg",
        "Total",
        "IsCredit",
        "Date",
        "CreatedAt",
    ],
    SheetName.SALES.value: [
        "SaleID",
        "ShopID",
        "Type",
        "Pieces",
        "Mortality",
        "Total",
        "Date",
        "CreatedAt",
    ],
    SheetName.EXPENSES.value: ["ExpenseID", "ShopID", "Category", "Amount", "Date", "CreatedAt"],
    SheetName.DUES.value: ["DueID", "ShopID", "CustomerName", "Amount", "Paid", "Date", "CreatedAt"],
    SheetName.CASH_LOG.value: [
        "CashLogID",
        "ShopID",
        "Type",
        "Amount",
        "Date",
        "Note",
        "Denominations",
        "CreatedAt",
    ],
    SheetName.LOT_ARCHIVE.value: [
        "ArchiveID",
        "ShopID",
        "Type",
        "TotalPurchase",
        "TotalSale",
        "Profit",
        "Date",
        "WindowStart",
    ],
    SheetName.CHECKPOINTS.value: ["ShopID", "Type", "LastArchivedAt", "Version"],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    schema_version: str
    shop_id: str
    owner_name: str
    denominations: tuple[int, ...] = DEFAULT_DENOMINATIONS


@dataclass(frozen=True)
class ShopRow:
    """In-memory view of a row from the ``Shops`` sheet."""

    shop_id: str
    owner_name: str
    created_at: datetime


@dataclass(frozen=True)
class PurchaseRow:
    """In-memory view of a row from the ``Purchases`` sheet."""

    purchase_id: str
    shop_id: str
    product_type: str
    pieces: Decimal
    kg: Decimal
    total: int
    is_credit: bool
    date: str
    created_at: datetime


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    shop_id: str
    product_type: str
    pieces: Decimal
    mortality: Decimal
    total: int
    date: str
    created_at: datetime


@dataclass(frozen=True)
class ExpenseRow:
    """In-memory view of a row from the ``Expenses`` sheet."""

    expense_id: str
    shop_id: str
    category: str
    amount: int
    date: str
    created_at: datetime


@dataclass(frozen=True)
class DueRow:
    """In-memory view of a row from the ``Dues`` sheet."""

    due_id: str
    shop_id: str
    customer_name: str
    amount: int
    paid: int
    date: str
    created_at: datetime

    @property
    def outstanding(self) -> int:
        return self.amount - self.paid


@dataclass(frozen=True)
class CashLogRow:
    """In-memory view of a row from the ``CashLog`` sheet."""

    cash_log_id: str
    shop_id: str
    entry_type: str
    amount: int
    date: str
    note: str
    denominations: Optional[Dict[int, int]]
    created_at: datetime


@dataclass(frozen=True)
class LotArchiveRow:
    """In-memory view of a row from the ``LotArchive`` sheet."""

    archive_id: str
    shop_id: str
    product_type: str
    total_purchase: int
    total_sale: int
    profit: int
    date: datetime
    window_start: datetime


@dataclass(frozen=True)
class CheckpointRow:
    """In-memory view of a row from the ``Checkpoints`` sheet."""

    shop_id: str
    product_type: str
    last_archived_at: datetime
    version: int


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the
    current working directory toward the filesystem root looking for a file
    named ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are anchored to ``base_path`` (or the
    current working directory). The optional ``[Cash] Denominations`` entry is
    a comma separated list of note values; it falls back to
    :data:`DEFAULT_DENOMINATIONS`.

    Raises:
        KeyError: If one of the required sections or options is missing, or
            the denomination list cannot be parsed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        schema_version = parser.get("System", "SchemaVersion")
        shop_id = parser.get("Shop", "ShopID")
        owner_name = parser.get("Shop", "OwnerName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    denominations_raw = parser.get("Cash", "Denominations", fallback="")
    try:
        denominations = tuple(
            int(part) for part in denominations_raw.split(",") if part.strip()
        ) or DEFAULT_DENOMINATIONS
    except ValueError as exc:
        raise KeyError(f"Invalid Cash.Denominations entry: {denominations_raw!r}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        schema_version=schema_version,
        shop_id=shop_id,
        owner_name=owner_name,
        denominations=denominations,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the shop workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Sheet iteration
# ---------------------------------------------------------------------------


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_shops(workbook: Workbook) -> Iterable[ShopRow]:
    """Iterate over the registered shops."""

    for raw in _iter_raw_rows(workbook, SheetName.SHOPS.value):
        yield deserialize_shop(raw)


def iter_purchases(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[PurchaseRow]:
    """Stream purchase records, optionally restricted to one tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.PURCHASES.value):
        row = deserialize_purchase(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_sales(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[SaleRow]:
    """Stream sale records, optionally restricted to one tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.SALES.value):
        row = deserialize_sale(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_expenses(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[ExpenseRow]:
    """Stream expense records, optionally restricted to one tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.EXPENSES.value):
        row = deserialize_expense(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_dues(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[DueRow]:
    """Stream customer due records, optionally restricted to one tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.DUES.value):
        row = deserialize_due(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_cash_logs(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[CashLogRow]:
    """Stream cash log entries in insertion order, optionally per tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.CASH_LOG.value):
        row = deserialize_cash_log(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_lot_archives(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[LotArchiveRow]:
    """Stream closed lot snapshots, optionally per tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.LOT_ARCHIVE.value):
        row = deserialize_lot_archive(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


def iter_checkpoints(workbook: Workbook, shop_id: Optional[str] = None) -> Iterable[CheckpointRow]:
    """Stream per-type checkpoints, optionally per tenant."""

    for raw in _iter_raw_rows(workbook, SheetName.CHECKPOINTS.value):
        row = deserialize_checkpoint(raw)
        if shop_id is None or row.shop_id == shop_id:
            yield row


# ---------------------------------------------------------------------------
# Appends
# ---------------------------------------------------------------------------


def append_shop(workbook: Workbook, record: ShopRow) -> None:
    workbook[SheetName.SHOPS.value].append(serialize_shop(record))


def append_purchase(workbook: Workbook, record: PurchaseRow) -> None:
    workbook[SheetName.PURCHASES.value].append(serialize_purchase(record))


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    workbook[SheetName.SALES.value].append(serialize_sale(record))


def append_expense(workbook: Workbook, record: ExpenseRow) -> None:
    workbook[SheetName.EXPENSES.value].append(serialize_expense(record))


def append_due(workbook: Workbook, record: DueRow) -> None:
    workbook[SheetName.DUES.value].append(serialize_due(record))


def append_cash_log(workbook: Workbook, record: CashLogRow) -> None:
    """Append a cash log entry; denominations are stored as a JSON object."""

    workbook[SheetName.CASH_LOG.value].append(serialize_cash_log(record))


def append_lot_archive(workbook: Workbook, record: LotArchiveRow) -> None:
    """Append a closed lot snapshot. Archive rows are never updated afterwards."""

    workbook[SheetName.LOT_ARCHIVE.value].append(serialize_lot_archive(record))


# ---------------------------------------------------------------------------
# Row lookup, update and delete
# ---------------------------------------------------------------------------


def _header_map(workbook: Workbook, sheet_name: str) -> Dict[Any, int]:
    sheet = workbook[sheet_name]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def locate_row(workbook: Workbook, sheet_name: str, criteria: Mapping[str, object]) -> Optional[int]:
    """Find the first row whose cells equal every value in ``criteria``.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        criteria (Mapping[str, object]): Header titles mapped to the values
            the row must hold. Composite keys (such as the checkpoint's
            ``ShopID`` + ``Type``) are expressed with several entries.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If a criteria column is not present in the worksheet header.
    """

    header_map = _header_map(workbook, sheet_name)
    for column in criteria:
        if column not in header_map:
            raise KeyError(f"Unknown column: {column}")

    sheet = workbook[sheet_name]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if all(row[header_map[column] - 1] == value for column, value in criteria.items()):
            return row_idx

    return None


def _key_criteria(sheet_name: str, record_id: str) -> Dict[str, object]:
    key_column = SHEET_COLUMNS[sheet_name][0]
    return {key_column: record_id}


def update_record(workbook: Workbook, sheet_name: str, record_id: str, *, field_values: Mapping[str, Any]) -> None:
    """Update selected columns of the row identified by its primary key.

    The primary key is the first column declared in :data:`SHEET_COLUMNS`.
    Only the specified fields are modified.

    Raises:
        KeyError: If the record or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, _key_criteria(sheet_name, record_id))
    if row_index is None:
        raise KeyError(f"Record not found in {sheet_name}: {record_id}")

    sheet = workbook[sheet_name]
    header_map = _header_map(workbook, sheet_name)

    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


def delete_record(workbook: Workbook, sheet_name: str, record_id: str) -> None:
    """Remove the row identified by its primary key.

    Raises:
        KeyError: If the record cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, _key_criteria(sheet_name, record_id))
    if row_index is None:
        raise KeyError(f"Record not found in {sheet_name}: {record_id}")
    workbook[sheet_name].delete_rows(row_index)


def editable_fields(sheet_name: str, serialized_row: Sequence[object]) -> Dict[str, object]:
    """Map a serialized row onto the columns an in-place edit may rewrite.

    The primary key, the tenant key and ``CreatedAt`` are immutable and are
    left out of the result.
    """

    columns = SHEET_COLUMNS[sheet_name]
    return {
        column: value
        for column, value in zip(columns, serialized_row)
        if column not in (columns[0], "ShopID", "CreatedAt")
    }


def get_checkpoint(workbook: Workbook, shop_id: str, product_type: str) -> Optional[CheckpointRow]:
    """Return the checkpoint row for ``(shop_id, product_type)`` if one exists."""

    sheet_name = SheetName.CHECKPOINTS.value
    row_index = locate_row(workbook, sheet_name, {"ShopID": shop_id, "Type": product_type})
    if row_index is None:
        return None
    raw = next(workbook[sheet_name].iter_rows(min_row=row_index, max_row=row_index, values_only=True))
    return deserialize_checkpoint(raw)


def compare_and_set_checkpoint(
    workbook: Workbook,
    shop_id: str,
    product_type: str,
    *,
    last_archived_at: datetime,
    expected_version: int,
) -> bool:
    """Conditionally move a checkpoint forward.

    The write only happens when the stored version equals
    ``expected_version`` (a missing row counts as version ``0``); the stored
    version is then incremented. Returns ``False`` without writing when the
    versions differ, letting callers detect a concurrent closer.
    """

    sheet_name = SheetName.CHECKPOINTS.value
    sheet = workbook[sheet_name]
    row_index = locate_row(workbook, sheet_name, {"ShopID": shop_id, "Type": product_type})

    if row_index is None:
        if expected_version != 0:
            return False
        sheet.append(
            serialize_checkpoint(
                CheckpointRow(
                    shop_id=shop_id,
                    product_type=product_type,
                    last_archived_at=last_archived_at,
                    version=1,
                )
            )
        )
        return True

    current = get_checkpoint(workbook, shop_id, product_type)
    if current is None or current.version != expected_version:
        return False

    header_map = _header_map(workbook, sheet_name)
    sheet.cell(row=row_index, column=header_map["LastArchivedAt"], value=last_archived_at.isoformat())
    sheet.cell(row=row_index, column=header_map["Version"], value=expected_version + 1)
    return True


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal("0")


def _to_int(raw: object) -> int:
    return int(Decimal(str(raw))) if raw is not None else 0


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def _to_datetime(raw: object) -> datetime:
    if isinstance(raw, datetime):
        moment = raw
    else:
        moment = datetime.fromisoformat(str(raw))
    # Excel round-trips can drop the offset; stored timestamps are always UTC.
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def _to_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"true", "1", "yes"}
    return bool(raw)


def encode_denominations(denominations: Optional[Mapping[int, int]]) -> Optional[str]:
    """Serialize a note-count mapping into the JSON text stored in the sheet."""

    if denominations is None:
        return None
    return json.dumps({str(note): int(count) for note, count in sorted(denominations.items(), reverse=True)})


def decode_denominations(raw: object) -> Optional[Dict[int, int]]:
    """Parse the JSON text stored in ``CashLog.Denominations``."""

    if raw is None or raw == "":
        return None
    try:
        payload = json.loads(str(raw))
    except json.JSONDecodeError:
        log.warning("Ignoring unreadable denominations cell: %r", raw)
        return None
    return {int(note): int(count or 0) for note, count in payload.items()}


def serialize_shop(record: ShopRow) -> list[object]:
    return [record.shop_id, record.owner_name, record.created_at.isoformat()]


def serialize_purchase(record: PurchaseRow) -> list[object]:
    """Convert a purchase dataclass into the ``Purchases`` column order."""

    return [
        record.purchase_id,
        record.shop_id,
        record.product_type,
        record.pieces,
        record.kg,
        record.total,
        record.is_credit,
        record.date,
        record.created_at.isoformat(),
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the ``Sales`` column order."""

    return [
        record.sale_id,
        record.shop_id,
        record.product_type,
        record.pieces,
        record.mortality,
        record.total,
        record.date,
        record.created_at.isoformat(),
    ]


def serialize_expense(record: ExpenseRow) -> list[object]:
    return [
        record.expense_id,
        record.shop_id,
        record.category,
        record.amount,
        record.date,
        record.created_at.isoformat(),
    ]


def serialize_due(record: DueRow) -> list[object]:
    return [
        record.due_id,
        record.shop_id,
        record.customer_name,
        record.amount,
        record.paid,
        record.date,
        record.created_at.isoformat(),
    ]


def serialize_cash_log(record: CashLogRow) -> list[object]:
    return [
        record.cash_log_id,
        record.shop_id,
        record.entry_type,
        record.amount,
        record.date,
        record.note,
        encode_denominations(record.denominations),
        record.created_at.isoformat(),
    ]


def serialize_lot_archive(record: LotArchiveRow) -> list[object]:
    return [
        record.archive_id,
        record.shop_id,
        record.product_type,
        record.total_purchase,
        record.total_sale,
        record.profit,
        record.date.isoformat(),
        record.window_start.isoformat(),
    ]


def serialize_checkpoint(record: CheckpointRow) -> list[object]:
    return [record.shop_id, record.product_type, record.last_archived_at.isoformat(), record.version]


def deserialize_shop(raw_row: Sequence[object]) -> ShopRow:
    shop_id, owner_name, created_at = raw_row[:3]
    return ShopRow(shop_id=str(shop_id), owner_name=_to_text(owner_name), created_at=_to_datetime(created_at))


def deserialize_purchase(raw_row: Sequence[object]) -> PurchaseRow:
    """Convert a raw ``Purchases`` row into a typed record.

    Quantities become :class:`~decimal.Decimal`, money becomes ``int`` and
    the credit flag tolerates the textual booleans Excel users type by hand.
    """

    (purchase_id, shop_id, product_type, pieces, kg, total, is_credit, date, created_at) = raw_row[:9]
    return PurchaseRow(
        purchase_id=str(purchase_id),
        shop_id=_to_text(shop_id),
        product_type=_to_text(product_type),
        pieces=_to_decimal(pieces),
        kg=_to_decimal(kg),
        total=_to_int(total),
        is_credit=_to_bool(is_credit),
        date=_to_text(date),
        created_at=_to_datetime(created_at),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    (sale_id, shop_id, product_type, pieces, mortality, total, date, created_at) = raw_row[:8]
    return SaleRow(
        sale_id=str(sale_id),
        shop_id=_to_text(shop_id),
        product_type=_to_text(product_type),
        pieces=_to_decimal(pieces),
        mortality=_to_decimal(mortality),
        total=_to_int(total),
        date=_to_text(date),
        created_at=_to_datetime(created_at),
    )


def deserialize_expense(raw_row: Sequence[object]) -> ExpenseRow:
    (expense_id, shop_id, category, amount, date, created_at) = raw_row[:6]
    return ExpenseRow(
        expense_id=str(expense_id),
        shop_id=_to_text(shop_id),
        category=_to_text(category),
        amount=_to_int(amount),
        date=_to_text(date),
        created_at=_to_datetime(created_at),
    )


def deserialize_due(raw_row: Sequence[object]) -> DueRow:
    (due_id, shop_id, customer_name, amount, paid, date, created_at) = raw_row[:7]
    return DueRow(
        due_id=str(due_id),
        shop_id=_to_text(shop_id),
        customer_name=_to_text(customer_name),
        amount=_to_int(amount),
        paid=_to_int(paid),
        date=_to_text(date),
        created_at=_to_datetime(created_at),
    )


def deserialize_cash_log(raw_row: Sequence[object]) -> CashLogRow:
    (cash_log_id, shop_id, entry_type, amount, date, note, denominations, created_at) = raw_row[:8]
    return CashLogRow(
        cash_log_id=str(cash_log_id),
        shop_id=_to_text(shop_id),
        entry_type=_to_text(entry_type),
        amount=_to_int(amount),
        date=_to_text(date),
        note=_to_text(note),
        denominations=decode_denominations(denominations),
        created_at=_to_datetime(created_at),
    )


def deserialize_lot_archive(raw_row: Sequence[object]) -> LotArchiveRow:
    (archive_id, shop_id, product_type, total_purchase, total_sale, profit, date, window_start) = raw_row[:8]
    return LotArchiveRow(
        archive_id=str(archive_id),
        shop_id=_to_text(shop_id),
        product_type=_to_text(product_type),
        total_purchase=_to_int(total_purchase),
        total_sale=_to_int(total_sale),
        profit=_to_int(profit),
        date=_to_datetime(date),
        window_start=_to_datetime(window_start),
    )


def deserialize_checkpoint(raw_row: Sequence[object]) -> CheckpointRow:
    shop_id, product_type, last_archived_at, version = raw_row[:4]
    return CheckpointRow(
        shop_id=_to_text(shop_id),
        product_type=_to_text(product_type),
        last_archived_at=_to_datetime(last_archived_at),
        version=_to_int(version),
    )
