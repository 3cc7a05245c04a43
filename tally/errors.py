"""Error taxonomy for storage, decoding, restore, and calculation failures."""

from __future__ import annotations


class DecodeError(Exception):
    """A persisted blob is not a valid envelope."""


class StorageWriteError(Exception):
    """The local store could not be written (unavailable or over quota)."""


class EntityNotFound(LookupError):
    """A pair or item id no longer exists in its scope."""


class PartialRestoreWarning(UserWarning):
    """Some serialized entities were skipped during a restore."""


class NoDataError(Exception):
    """A calculation was requested with no contributing values."""
