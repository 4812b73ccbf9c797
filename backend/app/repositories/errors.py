"""Exceptions raised by the persisted market store."""

from __future__ import annotations


class StoreError(Exception):
    """The persisted store could not be read."""


class StoreWriteFailure(StoreError):
    """A write to the persisted store failed."""


__all__ = ["StoreError", "StoreWriteFailure"]
