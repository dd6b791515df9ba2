"""
Store subsystem for Vaultline.

Purpose: Keep every record encrypted at rest in one durable table, under a
secret that lives outside the store and expires.

Responsibilities:
- RecordTable: sqlite key/value table with immediate write transactions
- KeyJar: the expiring secret
- Broadcaster: rekey / reset / write notifications
- ReadBackend / WriteBackend: marker check, AES-GCM records, root index
- maybe_expire: wipe a store whose secret is gone

Non-responsibilities:
- No knowledge of files or timelines (see index/ and writer/)
"""

from .table import RecordTable, StoreError
from .keys import KeyJar
from .broadcast import Broadcast, Broadcaster
from .backend import (
    ReadBackend,
    WriteBackend,
    EncryptedRecord,
    KeyMismatchError,
    MissingKeyError,
    derive_key,
    maybe_expire,
    KEY_HASH_KEY,
    ROOT_INDEX_KEY,
)

__all__ = [
    "RecordTable",
    "StoreError",
    "KeyJar",
    "Broadcast",
    "Broadcaster",
    "ReadBackend",
    "WriteBackend",
    "EncryptedRecord",
    "KeyMismatchError",
    "MissingKeyError",
    "derive_key",
    "maybe_expire",
    "KEY_HASH_KEY",
    "ROOT_INDEX_KEY",
]
