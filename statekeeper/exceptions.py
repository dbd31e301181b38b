"""Error taxonomy for statekeeper."""

from typing import Optional


class StateKeeperError(Exception):
    """Base class for all statekeeper errors."""


class ConfigurationError(StateKeeperError):
    """Invalid or missing configuration (clock skew, malformed address, ...).

    Not retried; these usually need an operator to fix something.
    """


class TransportError(StateKeeperError):
    """Network or RPC failure while talking to a backing client."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        self.message = message
        if url:
            super().__init__(f"{message} ({url})")
        else:
            super().__init__(message)


class NotReadyError(StateKeeperError):
    """A client did not become ready in time. Callers may retry later."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(message)


class NoAvailableClientError(StateKeeperError):
    """Both the primary and the fallback client are unusable."""

    def __init__(self, kind: str, primary_error: str, fallback_error: Optional[str] = None):
        self.kind = kind
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        if fallback_error is None:
            message = (
                f"Primary {kind} client is unavailable ({primary_error}) "
                f"and no fallback {kind} client is configured."
            )
        else:
            message = (
                f"Primary {kind} client is unavailable ({primary_error}) and fallback "
                f"{kind} client is unavailable ({fallback_error}), no {kind} clients are ready."
            )
        super().__init__(message)


class MissingDataError(StateKeeperError):
    """Required chain data does not exist (e.g. no block at or below a slot)."""

    def __init__(self, message: str, slot: Optional[int] = None):
        self.slot = slot
        super().__init__(message)
