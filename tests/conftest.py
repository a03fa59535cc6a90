"""Shared pytest fixtures and utilities for retail ledger tests."""

from __future__ import annotations

import argparse
import copy
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from retail_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from retail_ledger.ledger import Ledger  # noqa: E402
from retail_ledger.models import Customer, Product, Vendor  # noqa: E402
from retail_ledger.setup_workbook import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
TODAY = FIXED_NOW.date()

_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "CacheFile = {cache_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Sync]\n"
    "DebounceSeconds = 0\n"
    "MaxRetries = 1\n"
    "BackoffBase = 0\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    cache_path: Path
    schema_version: str
    store_name: str


class ManualClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryStore(data_manager.BlobStore):
    """In-memory blob store; ``results`` scripts the outcome of successive saves."""

    def __init__(self, snapshot: Optional[Mapping[str, Any]] = None, *, results: Optional[List[bool]] = None) -> None:
        super().__init__()
        self.snapshot = copy.deepcopy(dict(snapshot)) if snapshot is not None else None
        self.results = list(results or [])
        self.saves: List[Dict[str, Any]] = []
        self.attempts = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.snapshot)

    def save(self, snapshot: Mapping[str, Any]) -> bool:
        self.attempts += 1
        if self.results and not self.results.pop(0):
            return False
        self.snapshot = copy.deepcopy(dict(snapshot))
        self.saves.append(self.snapshot)
        self._publish(snapshot)
        return True


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the repository root path."""

    return PROJECT_ROOT


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        store_name: str = "Test Store",
        filename: str = "retail_master.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, store_name=store_name, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Store",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        create_workbook: bool = True,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        if create_workbook:
            workbook_path = workbook_factory(subdir=bundle_dir.name, store_name=store_name)
        else:
            workbook_path = bundle_dir / "retail_master.xlsx"
        cache_path = bundle_dir / "retail_cache.json"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=workbook_path.name if make_relative else str(workbook_path),
                cache_file=cache_path.name if make_relative else str(cache_path),
                store_name=store_name,
                schema_version=schema_version,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            cache_path=cache_path,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# Ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger() -> Ledger:
    """Ledger with a small catalog, one customer, and one vendor."""

    return Ledger(
        products=[
            Product(id="P1", sku="SKU-1", name="Rice 5kg", price=Decimal("50"), stock=Decimal("10")),
            Product(id="P2", sku="SKU-2", name="Dhal 1kg", price=Decimal("30"), stock=Decimal("5")),
        ],
        customers=[Customer(id="C1", name="Nimal", credit_limit=Decimal("1000"))],
        vendors=[Vendor(id="V1", name="Wholesale Co")],
        clock=lambda: FIXED_NOW,
    )


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "retail_master.xlsx",
        cache_file=tmp_path / "retail_cache.json",
        store_name="Test Store",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        debounce_seconds=1.0,
        max_retries=2,
        backoff_base=0.0,
    )


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def monotonic() -> ManualClock:
    return ManualClock()


@pytest.fixture
def context(
    settings: data_manager.ConfigSettings,
    memory_store: MemoryStore,
    monotonic: ManualClock,
) -> core_logic.RuntimeContext:
    """Assemble a runtime context over an in-memory store and a fixed clock."""

    return core_logic.build_context(settings, memory_store, clock=lambda: FIXED_NOW, monotonic=monotonic)


@pytest.fixture
def stocked_context(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Context with two products, a customer, and a vendor registered."""

    core_logic.add_product(context, product_id="P1", name="Rice 5kg", price=Decimal("50"), stock=Decimal("10"))
    core_logic.add_product(context, product_id="P2", name="Dhal 1kg", price=Decimal("30"), stock=Decimal("5"))
    core_logic.add_customer(context, customer_id="C1", name="Nimal", credit_limit=Decimal("1000"))
    core_logic.add_vendor(context, vendor_id="V1", name="Wholesale Co")
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="retail-cli", description="Retail CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
