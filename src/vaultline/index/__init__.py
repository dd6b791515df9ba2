"""
Index subsystem for Vaultline.

Purpose: The read path. Lazily load a provider's committed index and
decrypt individual payloads on demand.

Responsibilities:
- Record types shared with the write path (DataFileKey, TimelineEntryKey, ...)
- BaseDatabase: which providers have committed data
- ProviderDatabase: files, metadata, timeline keys and hydration

Non-responsibilities:
- No writes (see writer/)
- No rendering of records
"""

from .types import (
    ParseError,
    DataFileKey,
    DataFile,
    TimelineEntryKey,
    TimelineEntry,
    ProviderIndex,
    TOO_LARGE,
)
from vaultline.store import EncryptedRecord
from .query import BaseDatabase, ProviderDatabase

__all__ = [
    "ParseError",
    "DataFileKey",
    "DataFile",
    "TimelineEntryKey",
    "TimelineEntry",
    "EncryptedRecord",
    "ProviderIndex",
    "TOO_LARGE",
    "BaseDatabase",
    "ProviderDatabase",
]
