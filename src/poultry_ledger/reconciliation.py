"""Denomination counting and cash drawer reconciliation.

The operator counts the notes in the drawer; the physical total is compared
against the system balance (the signed sum of the cash log) and the gap is
written back to the cash log as an adjustment entry carrying the counts for
audit. Editing a reconciliation recomputes the gap against every *other*
entry so the replaced entry's own effect is removed exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from . import core_logic, data_manager, log
from .constants import CashEntryType, SheetName
from .core_logic import RuntimeContext
from .errors import ValidationError

NO_ADJUSTMENT_NOTE = "reconciled, no adjustment"


@dataclass(frozen=True)
class ReconciliationPreview:
    """System balance, physical count and the gap between them."""

    system_balance: int
    physical_total: int
    gap: int

    @property
    def entry_type(self) -> CashEntryType:
        return CashEntryType.ADD if self.gap >= 0 else CashEntryType.WITHDRAW

    @property
    def amount(self) -> int:
        return abs(self.gap)

    @property
    def note(self) -> str:
        if self.gap == 0:
            return NO_ADJUSTMENT_NOTE
        if self.gap > 0:
            return f"cash adjustment (surplus {self.gap})"
        return f"cash adjustment (shortfall {-self.gap})"


@dataclass(frozen=True)
class ReconciliationRecord:
    entry: data_manager.CashLogRow
    physical_total: int


def _count_value(note: int, raw: object) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool):
        raise ValidationError(f"Count for note {note} must be a whole number")
    if isinstance(raw, int):
        count = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return 0
        if not text.isdecimal() or not text.isascii():
            log.error("Rejected count %r for note %d", raw, note)
            raise ValidationError(f"Count for note {note} must be a whole number")
        count = int(text)
    else:
        raise ValidationError(f"Count for note {note} must be a whole number")
    if count < 0:
        log.error("Rejected negative count %d for note %d", count, note)
        raise ValidationError(f"Count for note {note} must be zero or positive")
    return count


def normalize_counts(counts: Mapping[object, object], denominations: Sequence[int]) -> Dict[int, int]:
    """Validate raw note counts and return a count for every configured note.

    Keys may be ints or digit strings; blank counts are read as zero.

    Raises:
        ValidationError: If a note is not configured or a count is not a
            non-negative whole number.
    """

    allowed = set(denominations)
    parsed: Dict[int, int] = {}
    for key, raw in counts.items():
        try:
            note = int(str(key).strip())
        except ValueError as exc:
            raise ValidationError(f"Unknown note value: {key!r}") from exc
        if note not in allowed:
            log.error("Rejected unconfigured note value %r", key)
            raise ValidationError(f"Unknown note value: {key!r}")
        parsed[note] = _count_value(note, raw)
    return {note: parsed.get(note, 0) for note in denominations}


def physical_total(counts: Mapping[int, int]) -> int:
    return sum(note * count for note, count in counts.items())


def _reconciliation_entry(context: RuntimeContext, cash_log_id: str) -> data_manager.CashLogRow:
    entry = core_logic.get_cash_log(context, cash_log_id)
    if entry.denominations is None:
        log.error("Cash log '%s' is not a reconciliation entry", cash_log_id)
        raise ValidationError(f"Cash log {cash_log_id} is not a denomination reconciliation")
    return entry


def preview_reconciliation(
    context: RuntimeContext,
    counts: Mapping[object, object],
    editing_id: Optional[str] = None,
) -> ReconciliationPreview:
    """Compute the gap a reconciliation would record, without writing."""

    normalized = normalize_counts(counts, context.settings.denominations)
    if editing_id is not None:
        _reconciliation_entry(context, editing_id)
    system = core_logic.cash_balance(context, exclude_id=editing_id)
    physical = physical_total(normalized)
    return ReconciliationPreview(system_balance=system, physical_total=physical, gap=physical - system)


def reconcile_denomination(
    context: RuntimeContext,
    counts: Mapping[object, object],
    editing_id: Optional[str] = None,
    *,
    date: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.CashLogRow:
    """Record, or rewrite in place, the adjustment that closes the drawer gap.

    Raises:
        ValidationError: If the counts are invalid, their total is not
            positive, or ``editing_id`` is not a reconciliation entry.
        MissingReferenceError: If ``editing_id`` is unknown.
        StoreError: If the cash log write fails.
    """

    normalized = normalize_counts(counts, context.settings.denominations)
    preview = preview_reconciliation(context, normalized, editing_id)
    if preview.physical_total <= 0:
        log.error("Rejected reconciliation with physical total %d", preview.physical_total)
        raise ValidationError("Counted cash must be greater than zero")

    if editing_id is None:
        entry = core_logic.record_cash_entry(
            context,
            preview.entry_type,
            preview.amount,
            preview.note,
            denominations=normalized,
            date=date,
            timestamp=timestamp,
        )
    else:
        existing = _reconciliation_entry(context, editing_id)
        entry = replace(
            existing,
            entry_type=preview.entry_type.value,
            amount=preview.amount,
            note=preview.note,
            denominations=normalized,
            date=date or existing.date,
        )
        core_logic.store_write(
            context,
            "update reconciliation",
            SheetName.CASH_LOG,
            data_manager.update_record,
            SheetName.CASH_LOG.value,
            editing_id,
            field_values=data_manager.editable_fields(
                SheetName.CASH_LOG.value, data_manager.serialize_cash_log(entry)
            ),
        )

    log.info(
        "Reconciled drawer: system %d, counted %d, gap %d (entry '%s')",
        preview.system_balance,
        preview.physical_total,
        preview.gap,
        entry.cash_log_id,
    )
    return entry


def delete_reconciliation(context: RuntimeContext, cash_log_id: str) -> data_manager.CashLogRow:
    entry = _reconciliation_entry(context, cash_log_id)
    core_logic.store_write(
        context,
        "delete reconciliation",
        SheetName.CASH_LOG,
        data_manager.delete_record,
        SheetName.CASH_LOG.value,
        cash_log_id,
    )
    log.info("Deleted reconciliation '%s'", cash_log_id)
    return entry


def list_reconciliations(context: RuntimeContext) -> List[ReconciliationRecord]:
    """Return reconciliation entries newest first with their counted totals."""

    return [
        ReconciliationRecord(entry=entry, physical_total=physical_total(entry.denominations))
        for entry in reversed(core_logic.list_cash_logs(context))
        if entry.denominations is not None
    ]


def record_cash_movement(
    context: RuntimeContext,
    entry_type: object,
    amount: object,
    note: Optional[str],
    *,
    date: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.CashLogRow:
    """Record cash put into or taken out of the drawer by hand."""

    try:
        direction = (
            entry_type if isinstance(entry_type, CashEntryType) else CashEntryType(str(entry_type).upper())
        )
    except ValueError as exc:
        raise ValidationError(f"Unknown cash entry type: {entry_type!r}") from exc
    value = core_logic.require_money(amount)
    if value == 0:
        raise ValidationError("Amount must be greater than zero")
    return core_logic.record_cash_entry(
        context,
        direction,
        value,
        core_logic.require_text(note, "Note"),
        date=date,
        timestamp=timestamp,
    )
