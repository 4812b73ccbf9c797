"""Repository abstractions for database interactions."""

from .errors import StoreError, StoreWriteFailure
from .market_repository import MarketRepository
from .store import MarketStore

__all__ = [
    "MarketRepository",
    "MarketStore",
    "StoreError",
    "StoreWriteFailure",
]
