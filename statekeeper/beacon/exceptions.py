"""Exceptions for the beacon client."""

from ..exceptions import TransportError


class BeaconAPIError(TransportError):
    """Error from Beacon API."""

    def __init__(self, status: int, message: str, url: str = ""):
        self.status = status
        super().__init__(f"Beacon API error {status}: {message}", url or None)


class BlockNotFoundError(BeaconAPIError):
    """Block not found error."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(404, message, url)
