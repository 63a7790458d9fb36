# cruise_watch/errors.py

"""Exception taxonomy for the watch engine."""


class WatchError(Exception):
    """Base class for every error raised by cruise_watch."""


class AlreadyWatched(WatchError):
    """A watch already exists for this offer id."""

    def __init__(self, offer_id: str) -> None:
        super().__init__(f"offer {offer_id} is already watched")
        self.offer_id = offer_id


class NotWatched(WatchError):
    """No watch exists for this offer id."""

    def __init__(self, offer_id: str) -> None:
        super().__init__(f"offer {offer_id} is not watched")
        self.offer_id = offer_id


class StoreFailure(WatchError):
    """The underlying database could not complete an operation."""


class InconsistentState(WatchError):
    """Persisted data violates an engine invariant."""


class SourceError(WatchError):
    """The upstream price source failed for one offer."""

    def __init__(self, offer_id: str, reason: str) -> None:
        super().__init__(f"offer {offer_id}: {reason}")
        self.offer_id = offer_id
        self.reason = reason


class SourceUnavailable(SourceError):
    """Transient upstream failure (network, timeout, 5xx, bad payload)."""


class SourceNotFound(SourceError):
    """The upstream no longer lists the offer."""
