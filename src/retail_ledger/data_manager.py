"""Data access layer for the retail ledger.

This module owns every byte that leaves the process. Business logic belongs
elsewhere.

The public API is organized around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Blob stores: the :class:`BlobStore` contract plus its two implementations,
   the ``openpyxl`` workbook that acts as the durable store and the JSON file
   that acts as the local cache.
3. Sheet operations: converting between snapshot records and worksheet rows.
"""

from __future__ import annotations

import configparser
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook
from openpyxl.utils.exceptions import InvalidFileException

from . import log
from .constants import SheetName


CONFIG_FILE_NAME = "config.ini"

DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_BACKOFF_BASE = 1.0


# Worksheet name -> (snapshot key, ordered columns). Columns are the snapshot
# record keys, so a row maps onto a record without renaming.
SHEET_COLUMNS: Mapping[SheetName, tuple] = {
    SheetName.PRODUCTS: ("products", ["id", "sku", "name", "price", "cost", "stock", "categoryId"]),
    SheetName.CATEGORIES: ("categories", ["id", "name"]),
    SheetName.TRANSACTIONS: (
        "transactions",
        [
            "id",
            "type",
            "date",
            "amount",
            "discount",
            "paymentMethod",
            "accountId",
            "destinationAccountId",
            "customerId",
            "vendorId",
            "items",
            "description",
            "chequeNumber",
            "chequeDate",
        ],
    ),
    SheetName.ACCOUNTS: ("accounts", ["id", "name", "balance", "accountNumber"]),
    SheetName.PURCHASE_ORDERS: (
        "purchaseOrders",
        [
            "id",
            "vendorId",
            "items",
            "totalAmount",
            "paymentMethod",
            "accountId",
            "status",
            "createdDate",
            "receivedDate",
            "chequeNumber",
            "chequeDate",
        ],
    ),
    SheetName.VENDORS: ("vendors", ["id", "name", "phone", "totalBalance"]),
    SheetName.CUSTOMERS: ("customers", ["id", "name", "phone", "creditLimit", "totalCredit"]),
    SheetName.RECURRING_EXPENSES: (
        "recurringExpenses",
        ["id", "description", "amount", "paymentMethod", "accountId", "frequency", "startDate", "lastProcessedDate"],
    ),
    SheetName.DAY_SESSIONS: (
        "daySessions",
        ["date", "openingBalance", "expectedClosing", "actualClosing", "status"],
    ),
}

# Single-record snapshot entries stored as two-column Key/Value sheets.
KEY_VALUE_SHEETS: Mapping[SheetName, str] = {
    SheetName.USER_PROFILE: "userProfile",
    SheetName.POS_SESSION: "posSession",
}
KEY_VALUE_COLUMNS = ["Key", "Value"]

# Columns holding nested sequences, stored as JSON text in a single cell.
JSON_COLUMNS = frozenset({"items", "cart"})

# Columns written as numbers so the workbook stays usable in a spreadsheet.
NUMERIC_COLUMNS = frozenset(
    {
        "price",
        "cost",
        "stock",
        "amount",
        "discount",
        "balance",
        "totalAmount",
        "totalBalance",
        "creditLimit",
        "totalCredit",
        "openingBalance",
        "expectedClosing",
        "actualClosing",
    }
)


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    cache_file: Path
    store_name: str
    schema_version: str
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for
    ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The explicit path or the discovered configuration file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser holding the raw configuration data;
            required entries are validated later by :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _resolve_path(raw: str, base_path: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = ((base_path or Path.cwd()) / path).resolve()
    return path


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Sync]`` entries are optional and
    fall back to the module defaults. Relative file paths are anchored at
    ``base_path`` (normally the directory holding ``config.ini``) or the
    current working directory.

    Raises:
        KeyError: If a required ``[System]`` option is missing.
        ValueError: If a ``[Sync]`` option is not a number.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        cache_file_raw = parser.get("System", "CacheFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    return ConfigSettings(
        data_file=_resolve_path(data_file_raw, base_path),
        cache_file=_resolve_path(cache_file_raw, base_path),
        store_name=store_name,
        schema_version=schema_version,
        debounce_seconds=parser.getfloat("Sync", "DebounceSeconds", fallback=DEFAULT_DEBOUNCE_SECONDS),
        max_retries=parser.getint("Sync", "MaxRetries", fallback=DEFAULT_MAX_RETRIES),
        backoff_base=parser.getfloat("Sync", "BackoffBase", fallback=DEFAULT_BACKOFF_BASE),
    )


# ---------------------------------------------------------------------------
# Blob store contract
# ---------------------------------------------------------------------------


SnapshotListener = Callable[[Dict[str, Any]], None]


class BlobStore(ABC):
    """Whole-snapshot persistence: load it all, save it all."""

    def __init__(self) -> None:
        self._listeners: List[SnapshotListener] = []

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored snapshot, or ``None`` when nothing is stored yet."""

    @abstractmethod
    def save(self, snapshot: Mapping[str, Any]) -> bool:
        """Replace the stored snapshot; ``False`` signals a failed write."""

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Receive every snapshot this store writes; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, snapshot: Mapping[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(dict(snapshot))


class JsonFileStore(BlobStore):
    """Local cache kept as one JSON document."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path).expanduser().resolve()

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable cache '%s': %s", self.path, exc)
            return None
        if not isinstance(payload, dict):
            log.warning("Ignoring cache '%s': top level is not an object", self.path)
            return None
        return payload

    def save(self, snapshot: Mapping[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
        except OSError as exc:
            log.error("Unable to write cache '%s': %s", self.path, exc)
            return False
        self._publish(snapshot)
        return True


class WorkbookStore(BlobStore):
    """Durable store backed by the master ``.xlsx`` workbook."""

    def __init__(self, data_file: Path) -> None:
        super().__init__()
        self.data_file = Path(data_file).expanduser().resolve()

    def load(self) -> Optional[Dict[str, Any]]:
        """Read every known sheet into a snapshot.

        Raises:
            FileNotFoundError: If the workbook does not exist.
        """

        workbook = open_workbook(self.data_file)
        snapshot = read_snapshot(workbook)
        log.debug("Loaded snapshot from '%s'", self.data_file)
        return snapshot

    def save(self, snapshot: Mapping[str, Any]) -> bool:
        workbook = build_workbook(snapshot)
        try:
            save_workbook(workbook, self.data_file)
        except OSError as exc:
            log.error("Unable to save workbook '%s': %s", self.data_file, exc)
            return False
        log.info("Persisted workbook '%s'", self.data_file)
        self._publish(snapshot)
        return True


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion.
        ValueError: If the file exists but is not a readable workbook.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")
    try:
        return openpyxl.load_workbook(data_file)
    except InvalidFileException as exc:
        raise ValueError(f"Not a workbook: {data_file}") from exc


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist ``workbook`` at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def new_workbook() -> Workbook:
    """Empty workbook with every managed sheet and a bold header row."""

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    layouts = [(sheet, columns) for sheet, (_key, columns) in SHEET_COLUMNS.items()]
    layouts += [(sheet, KEY_VALUE_COLUMNS) for sheet in KEY_VALUE_SHEETS]
    for sheet_name, columns in layouts:
        worksheet = workbook.create_sheet(title=sheet_name.value)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font
    return workbook


def build_workbook(snapshot: Mapping[str, Any]) -> Workbook:
    """Render a full snapshot into a fresh workbook."""

    workbook = new_workbook()
    for sheet_name, (key, columns) in SHEET_COLUMNS.items():
        sheet = workbook[sheet_name.value]
        for record in snapshot.get(key) or ():
            sheet.append(serialize_record(record, columns))
    for sheet_name, key in KEY_VALUE_SHEETS.items():
        sheet = workbook[sheet_name.value]
        for field_name, value in (snapshot.get(key) or {}).items():
            sheet.append([field_name, serialize_cell(field_name, value)])
    return workbook


def read_snapshot(workbook: Workbook) -> Dict[str, Any]:
    """Read a snapshot back out of ``workbook``.

    Sheets missing from the workbook are left out of the snapshot, so a
    partially bootstrapped workbook only overrides what it actually holds.
    """

    snapshot: Dict[str, Any] = {}
    for sheet_name, (key, _columns) in SHEET_COLUMNS.items():
        if sheet_name.value not in workbook.sheetnames:
            log.warning("Workbook has no '%s' sheet", sheet_name.value)
            continue
        snapshot[key] = list(iter_records(workbook, sheet_name))
    for sheet_name, key in KEY_VALUE_SHEETS.items():
        if sheet_name.value not in workbook.sheetnames:
            continue
        sheet = workbook[sheet_name.value]
        entries = {
            str(field_name): deserialize_cell(str(field_name), value)
            for field_name, value in sheet.iter_rows(min_row=2, max_col=2, values_only=True)
            if field_name is not None
        }
        if entries:
            snapshot[key] = entries
    return snapshot


def header_map(workbook: Workbook, sheet_name: SheetName) -> Dict[str, int]:
    """Map header titles to 1-based column indices."""

    sheet = workbook[sheet_name.value]
    return {cell.value: index + 1 for index, cell in enumerate(sheet[1]) if cell.value is not None}


def iter_records(workbook: Workbook, sheet_name: SheetName):
    """Yield one snapshot record per non-empty row, keyed by header title.

    Columns are located through the header row, so reordered or extra columns
    added by hand in a spreadsheet do not break loading.
    """

    headers = header_map(workbook, sheet_name)
    sheet = workbook[sheet_name.value]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if not any(cell is not None for cell in raw):
            continue
        yield deserialize_record(raw, headers)


def locate_row(workbook: Workbook, sheet_name: SheetName, key_column: str, key_value: str) -> Optional[int]:
    """Find the 1-based row whose ``key_column`` equals ``key_value``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    headers = header_map(workbook, sheet_name)
    if key_column not in headers:
        raise KeyError(f"Unknown column: {key_column}")
    key_index = headers[key_column]
    sheet = workbook[sheet_name.value]
    for row_index, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_index - 1] == key_value:
            return row_index
    return None


# ---------------------------------------------------------------------------
# Cell conversion
# ---------------------------------------------------------------------------


def serialize_cell(column: str, value: Any) -> Any:
    """Convert one snapshot value into what openpyxl should store."""

    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.dumps(value)
    if column in NUMERIC_COLUMNS:
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return str(value)
    return value


def deserialize_cell(column: str, value: Any) -> Any:
    """Convert one worksheet cell back into its snapshot form."""

    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.loads(value) if isinstance(value, str) and value else []
    if column in NUMERIC_COLUMNS:
        return str(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Excel turns numeric-looking ids into numbers.
        return str(value)
    return value


def serialize_record(record: Mapping[str, Any], columns: Sequence[str]) -> List[Any]:
    return [serialize_cell(column, record.get(column)) for column in columns]


def deserialize_record(raw_row: Sequence[Any], headers: Mapping[str, int]) -> Dict[str, Any]:
    return {
        column: deserialize_cell(column, raw_row[index - 1] if index - 1 < len(raw_row) else None)
        for column, index in headers.items()
    }


__all__ = [
    "CONFIG_FILE_NAME",
    "SHEET_COLUMNS",
    "KEY_VALUE_SHEETS",
    "ConfigSettings",
    "find_config_file",
    "read_config",
    "parse_settings",
    "BlobStore",
    "JsonFileStore",
    "WorkbookStore",
    "open_workbook",
    "save_workbook",
    "new_workbook",
    "build_workbook",
    "read_snapshot",
    "header_map",
    "iter_records",
    "locate_row",
    "serialize_cell",
    "deserialize_cell",
]
