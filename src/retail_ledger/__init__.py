"""Retail ledger: POS checkout, cash-drawer sessions and bookkeeping.

Importing the package configures the shared ``retail_ledger`` logger. Every
posting, day-session change and save attempt is written to
``.logs/retail_ledger.log`` at the project root (rotated at 1 MB) and echoed
to stderr, so a cashier running ``retail-cli`` sees rule violations as they
happen while the file keeps the audit trail of the till.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / ".logs"
LOG_FILE = LOG_DIR / "retail_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _configure_logging() -> logging.Logger:
    """Return the package logger, attaching its handlers on first import only."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        till_log = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        till_log.setLevel(logging.INFO)
        till_log.setFormatter(formatter)
        logger.addHandler(till_log)
    except OSError as exc:
        # Read-only installs still get stderr output.
        print(
            f"[retail-ledger] logging to stderr only; cannot write '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    console.setFormatter(formatter)
    logger.addHandler(console)

    return logger


log = _configure_logging()
log.debug("retail_ledger logging initialised (file=%s)", LOG_FILE)
