# cruise_watch/config/logging_config.py

"""Per-run logging for the watch engine and its CLI.

Each CLI invocation (``--watch``, ``--unwatch``, ``--refresh``, ``--list``)
writes one file, ``logs/run_YYYYMMDD_HHMMSS.log``, at DEBUG level.  The
loggers that feed it:

* ``cruise_watch.store``: watches created and deleted, observations
  appended or skipped because the clock did not advance.
* ``cruise_watch.refresh``: pass start and summary, per-offer stage
  transitions and failures.
* ``cruise_watch.cruiseway``: HTTP attempts, retries and parsed prices.
* ``cruise_watch.manager`` / ``cruise_watch.cli``: idempotent no-ops and
  command errors.

Refresh fetches run in ``asyncio.to_thread`` workers, so records carry the
thread name to tell interleaved offers apart.  Only WARNING and above reach
stderr, which keeps the rich tables and JSON output on stdout readable.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from cruise_watch.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging() -> Path:
    """Initialise the root ``cruise_watch`` logger for the current run.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this run.
    """
    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    root_logger = logging.getLogger("cruise_watch")
    root_logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls (e.g. tests)
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging initialised, log file: %s", log_file)

    return log_file
