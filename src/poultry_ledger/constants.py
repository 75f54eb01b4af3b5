"""Enumerations shared across the poultry ledger modules.

Centralises domain constants so that the data access layer (DAL), the
reconciliation engine, and the CLI rely on a single source of truth for
product categories, cash entry kinds, and workbook sheet names.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Boundary used when a product type has never been archived.
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Note values accepted by the denomination counter when config.ini is silent.
DEFAULT_DENOMINATIONS: tuple[int, ...] = (1000, 500, 200, 100, 50, 20, 10, 5, 2, 1)


class ProductType(str, Enum):
    """Enumerate the poultry categories tracked by the shop."""

    BROILER = "broiler"
    SONALI = "sonali"
    LAYER = "layer"
    DESHI = "deshi"
    DUCK = "duck"


class CashEntryType(str, Enum):
    """Enumerate the directions a cash log entry can move the drawer."""

    ADD = "ADD"
    WITHDRAW = "WITHDRAW"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SHOPS = "Shops"
    PURCHASES = "Purchases"
    SALES = "Sales"
    EXPENSES = "Expenses"
    DUES = "Dues"
    CASH_LOG = "CashLog"
    LOT_ARCHIVE = "LotArchive"
    CHECKPOINTS = "Checkpoints"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EPOCH",
    "DEFAULT_DENOMINATIONS",
    "ProductType",
    "CashEntryType",
    "SheetName",
]
