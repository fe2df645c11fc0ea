"""AnkiConnect HTTP client package."""

from .api_client import AnkiClient, AnkiClientProtocol
from .exceptions import AnkiConnectionError, AnkiError

__all__ = [
    "AnkiClient",
    "AnkiClientProtocol",
    "AnkiConnectionError",
    "AnkiError",
]
