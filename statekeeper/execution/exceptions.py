"""Exceptions for the execution client."""

from ..exceptions import TransportError


class ExecutionAPIError(TransportError):
    """Error returned by the execution client's JSON-RPC API."""

    def __init__(self, code: int, message: str, url: str = ""):
        self.code = code
        super().__init__(f"Execution API error {code}: {message}", url or None)
