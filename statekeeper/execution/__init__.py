"""JSON-RPC client for communication with the execution layer."""

from .exceptions import ExecutionAPIError
from .types import BlockHeader, SyncProgress
from .client import ExecutionClient

__all__ = [
    "ExecutionClient",
    "ExecutionAPIError",
    "BlockHeader",
    "SyncProgress",
]
