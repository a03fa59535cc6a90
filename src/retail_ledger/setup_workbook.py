"""Utility for initializing the retail ledger master workbook.

The module doubles as a console script (``retail-setup``) and as a library
used by tests. It writes every managed sheet with its header row, seeds the
two reserved accounts, and records the store name in the profile sheet.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import data_manager, log
from .constants import SheetName
from .data_manager import serialize_record
from .ledger import RESERVED_ACCOUNTS
from .snapshot import dump_account


def create_master_workbook(
    destination: Path,
    *,
    store_name: str = "",
    overwrite: bool = False,
) -> Path:
    """Create the master workbook at ``destination``.

    Raises:
        FileExistsError: If the target exists and ``overwrite`` is ``False``.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    workbook = data_manager.new_workbook()

    _key, columns = data_manager.SHEET_COLUMNS[SheetName.ACCOUNTS]
    accounts_sheet = workbook[SheetName.ACCOUNTS.value]
    for account in RESERVED_ACCOUNTS:
        accounts_sheet.append(serialize_record(dump_account(account), columns))

    profile_sheet = workbook[SheetName.USER_PROFILE.value]
    profile_sheet.append(["name", store_name])
    profile_sheet.append(["branch", ""])
    profile_sheet.append(["logo", ""])

    data_manager.save_workbook(workbook, destination)
    log.info("Created master workbook '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_master_workbook(settings.data_file, store_name=settings.store_name, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="retail-setup", description="Initialize the retail ledger data file")
    parser.add_argument(
        "--config",
        default=data_manager.CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Retail Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
