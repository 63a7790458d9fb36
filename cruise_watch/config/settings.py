# cruise_watch/config/settings.py

"""Central configuration for the cruise_watch engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the cruise_watch engine."""

    # --- Upstream (Cruiseway API) ---
    CRUISEWAY_API_URL: str = os.getenv(
        "CRUISEWAY_API_URL", "http://api.cruiseway.gr/api"
    ).rstrip("/")
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "4"))
    MAX_RETRIES: int = 2                # Attempts per fetch on transient failures
    RETRY_DELAY: float = 1.0            # Seconds between attempts

    # --- Refresh pass ---
    REFRESH_TIMEOUT: float = float(
        os.getenv("REFRESH_TIMEOUT", "10")
    )                                   # Seconds per offer fetch
    REFRESH_CONCURRENCY: int = int(
        os.getenv("REFRESH_CONCURRENCY", "5")
    )                                   # Offers fetched in parallel

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DB_PATH: Path = Path(
        os.getenv(
            "CRUISE_WATCH_DB",
            str(BASE_DIR / "data" / "cruise_watch.db"),
        )
    )
    DB_BUSY_TIMEOUT: float = 5.0        # Seconds to wait on a locked DB
    LOGS_DIR: Path = BASE_DIR / "logs"
