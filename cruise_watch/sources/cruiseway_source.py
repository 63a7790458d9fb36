# cruise_watch/sources/cruiseway_source.py

"""Cruiseway API price source."""

from decimal import Decimal
from typing import Any
from urllib.parse import quote

from cruise_watch.errors import SourceNotFound, SourceUnavailable
from cruise_watch.models.offer import DisplayAttributes, Offer
from cruise_watch.sources.base_source import BasePriceSource

# Payload fields tried in order for the headline price
_PRICE_FIELDS: tuple[str, ...] = ("starting_price", "price")


def _parse_duration(raw: object) -> int | None:
    try:
        return int(str(raw).split()[0])
    except (ValueError, IndexError):
        return None


class CruisewaySource(BasePriceSource):
    """Fetches a single cruise by id from the Cruiseway content API."""

    def __init__(self, base_url: str | None = None) -> None:
        super().__init__("cruiseway")
        self.base_url = (
            base_url or self.settings.CRUISEWAY_API_URL
        ).rstrip("/")

    def offer_url(self, offer_id: str) -> str:
        """Return the detail endpoint for one cruise."""
        return f"{self.base_url}/cruises/id/{quote(offer_id, safe='')}"

    def fetch_current(self, offer_id: str) -> Offer:
        """Fetch the cruise's current starting price and attributes.

        Raises ``SourceNotFound`` when the API no longer returns the cruise
        and ``SourceUnavailable`` for transport errors or a payload without
        a usable price.
        """
        payload = self._fetch_json(self.offer_url(offer_id), offer_id)
        data: Any = (
            payload.get("data") if isinstance(payload, dict) else None
        )
        if not data:
            raise SourceNotFound(offer_id, "cruise not found upstream")
        if not isinstance(data, dict):
            raise SourceUnavailable(offer_id, "unexpected payload shape")

        price: Decimal | None = None
        for name in _PRICE_FIELDS:
            price = self.extract_price(data.get(name))
            if price is not None:
                break
        if price is None or not price.is_finite() or price < 0:
            raise SourceUnavailable(offer_id, "no usable price in payload")

        vessel = data.get("vessel")
        vessel = vessel if isinstance(vessel, dict) else {}
        port = data.get("port")
        port = port if isinstance(port, dict) else {}
        attributes = DisplayAttributes(
            vessel_name=str(vessel.get("name") or ""),
            departure_date=str(data.get("departured_at") or ""),
            port_name=str(port.get("name") or ""),
            duration=_parse_duration(data.get("duration")),
        )
        self.logger.debug(
            "[%s] Offer %s priced at %s", self.source_name, offer_id, price,
        )
        return Offer(offer_id=offer_id, price=price, attributes=attributes)
