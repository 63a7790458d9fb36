# cruise_watch/sources/base_source.py

"""Abstract base class for upstream price sources."""

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

from curl_cffi import requests as curl_requests

from cruise_watch.config.settings import Settings
from cruise_watch.errors import SourceNotFound, SourceUnavailable
from cruise_watch.models.offer import Offer

# A minus directly before the digits (optionally after a currency sign)
_NUMBER_RE = re.compile(r"(-?)\s*[€$£]?\s*(\d[\d.,]*)")


class BasePriceSource(ABC):
    """Abstract base class for upstream price sources.

    Subclasses implement :meth:`fetch_current`; this class provides the
    HTTP session, the retry loop and price parsing.  Sessions are kept per
    thread because a refresh pass calls the source from a worker pool.
    """

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"cruise_watch.{source_name}"
        )
        self.settings = Settings()
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT
        self._local = threading.local()

    @property
    def session(self) -> curl_requests.Session:
        """The calling thread's HTTP session, created on first use."""
        session: curl_requests.Session | None = getattr(
            self._local, "session", None
        )
        if session is None:
            session = curl_requests.Session(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
            self._local.session = session
        return session

    def _fetch_json(self, url: str, offer_id: str) -> Any:
        """GET a JSON document with retries on transient failures.

        Raises ``SourceNotFound`` on HTTP 404 and ``SourceUnavailable`` once
        all attempts are exhausted.
        """
        reason = "no attempt made"
        for attempt in range(self.settings.MAX_RETRIES):
            if attempt:
                time.sleep(self.settings.RETRY_DELAY * attempt)
            try:
                resp = self.session.get(
                    url,
                    headers=self.settings.DEFAULT_HEADERS,
                    timeout=self._request_timeout,
                )
            except Exception as exc:
                reason = f"request failed: {exc}"
                self.logger.warning(
                    "[%s] Request error for offer %s on attempt %d: %s",
                    self.source_name,
                    offer_id,
                    attempt + 1,
                    exc,
                )
                continue

            if resp.status_code == 404:
                raise SourceNotFound(offer_id, "HTTP 404")
            if resp.status_code != 200:
                reason = f"HTTP {resp.status_code}"
                self.logger.warning(
                    "[%s] HTTP %d for offer %s on attempt %d",
                    self.source_name,
                    resp.status_code,
                    offer_id,
                    attempt + 1,
                )
                continue

            try:
                return resp.json()
            except ValueError as exc:
                reason = f"invalid JSON: {exc}"
                self.logger.warning(
                    "[%s] Invalid JSON for offer %s: %s",
                    self.source_name,
                    offer_id,
                    exc,
                )

        raise SourceUnavailable(offer_id, reason)

    @staticmethod
    def extract_price(raw: object) -> Decimal | None:
        """Parse a price like ``'€2.713,00'``, ``'1,299.50'`` or ``2713``.

        The separator followed by exactly one or two trailing digits is the
        decimal point; every other separator groups thousands.
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float, Decimal)):
            return Decimal(str(raw))

        match = _NUMBER_RE.search(str(raw))
        if not match:
            return None
        sign = match.group(1)
        number = match.group(2).rstrip(".,")
        integer, decimals = number, ""
        split_at = max(number.rfind(","), number.rfind("."))
        if split_at != -1 and 1 <= len(number) - split_at - 1 <= 2:
            integer, decimals = number[:split_at], number[split_at + 1:]
        digits = re.sub(r"[.,]", "", integer)
        try:
            return Decimal(
                sign + (f"{digits}.{decimals}" if decimals else digits)
            )
        except InvalidOperation:
            return None

    @abstractmethod
    def fetch_current(self, offer_id: str) -> Offer:
        """Return the offer's current price and attributes."""
        ...
