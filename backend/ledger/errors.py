"""Exceptions raised while reading and decoding ledger accounts."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger read failures."""


class DecodeError(LedgerError):
    """Buffer is too short or structurally inconsistent for the expected record."""


class LedgerUnavailable(LedgerError):
    """The RPC node could not be reached, timed out, or answered with an error."""


class MarketNotFound(LedgerError):
    """No account exists on the ledger at the requested address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Market account not found: {address}")
        self.address = address


__all__ = ["DecodeError", "LedgerError", "LedgerUnavailable", "MarketNotFound"]
