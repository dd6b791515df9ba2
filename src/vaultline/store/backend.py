# backend.py
# Vaultline – Store subsystem: encrypted record backend (AES-256-GCM over RecordTable)

import os
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from vaultline.codec import b64dec, b64enc, deserialize, key_hash, serialize
from .broadcast import Broadcast, Broadcaster
from .table import RecordTable, StoreError


# ============================================================
# Exceptions
# ============================================================

class KeyMismatchError(StoreError):
    """A writer connected under a secret other than the one that claimed the store."""
    pass


class MissingKeyError(StoreError):
    """A record pointer is missing its IV or offset."""
    pass


# ============================================================
# Configuration
# ============================================================

KEY_HASH_KEY = "KEY-HASH"
ROOT_INDEX_KEY = "ROOT-INDEX"

KEY_SIZE = 32  # AES-256
IV_SIZE = 12   # 96-bit GCM nonce
HKDF_INFO = b"vaultline store key"


@dataclass(frozen=True)
class EncryptedRecord:
    iv: str  # base64 nonce, doubles as the record key
    ciphertext: bytes


def derive_key(secret: bytes) -> bytes:
    """Stretch the jar secret into the AES-256 cipher key."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=HKDF_INFO,
    ).derive(secret)


def _stored_marker(table: RecordTable) -> Optional[str]:
    row = table.get(KEY_HASH_KEY)
    return row[1].decode("ascii") if row is not None else None


# ============================================================
# Read Backend
# ============================================================

class ReadBackend:
    """Decrypting view of a store whose marker matches the given secret."""

    def __init__(self, table: RecordTable, key: bytes, broadcaster: Optional[Broadcaster] = None):
        self.table = table
        self.marker = key_hash(key)
        self.broadcaster = broadcaster
        self._aead = AESGCM(key)

    @classmethod
    def connect(
        cls,
        table: RecordTable,
        secret: Optional[bytes],
        broadcaster: Optional[Broadcaster] = None,
    ) -> Optional["ReadBackend"]:
        """
        Open the store for reading.

        Returns None when there is no secret, the store has never been
        written, or it was created under a different secret. Readers treat
        all three as an empty store.
        """
        if secret is None:
            return None
        key = derive_key(secret)
        if _stored_marker(table) != key_hash(key):
            return None
        return cls(table, key, broadcaster)

    def _decrypt(self, record_key: str, iv: bytes, ciphertext: bytes) -> bytes:
        try:
            return self._aead.decrypt(iv, ciphertext, None)
        except InvalidTag as e:
            raise StoreError(f"Failed to decrypt record {record_key!r}") from e

    def get(self, key: str, binary: bool = False, named: bool = False) -> Any:
        """
        Fetch and decrypt one record, or None if absent.

        Anonymous records are keyed by their base64 IV; named records carry
        the IV alongside the ciphertext.
        """
        row = self.table.get(key)
        if row is None:
            return None
        iv, ciphertext = row
        if not named:
            iv = b64dec(key)
        elif iv is None:
            raise MissingKeyError(f"Named record {key!r} has no IV")
        plaintext = self._decrypt(key, iv, ciphertext)
        return plaintext if binary else deserialize(plaintext)

    def get_root_index(self) -> dict:
        """provider slug -> index record key"""
        return self.get(ROOT_INDEX_KEY, named=True) or {}


# ============================================================
# Write Backend
# ============================================================

class WriteBackend(ReadBackend):

    @classmethod
    def connect(
        cls,
        table: RecordTable,
        secret: bytes,
        broadcaster: Optional[Broadcaster] = None,
    ) -> "WriteBackend":
        """
        Open the store for writing, claiming it if it has never been written.

        Raises:
            KeyMismatchError: the store was created under another secret
        """
        key = derive_key(secret)
        marker = key_hash(key)

        claimed = False
        with table.transaction():
            stored = _stored_marker(table)
            if stored is None:
                table.put(KEY_HASH_KEY, marker.encode("ascii"))
                claimed = True
            elif stored != marker:
                raise KeyMismatchError("Writing to a store created under an old encryption key")

        backend = cls(table, key, broadcaster)
        if claimed:
            # other views may hold a backend for a previous secret
            backend._publish(Broadcast("rekey"))
        return backend

    def _publish(self, message: Broadcast) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(message)

    def broadcast_reset(self) -> None:
        self._publish(Broadcast("reset"))

    def broadcast_write(self, provider: str) -> None:
        self._publish(Broadcast("write", provider=provider))

    def encrypt(self, value: Any, binary: bool = False) -> EncryptedRecord:
        data = bytes(value) if binary else serialize(value)
        iv = os.urandom(IV_SIZE)
        return EncryptedRecord(iv=b64enc(iv), ciphertext=self._aead.encrypt(iv, data, None))

    def put(self, value: Any, key: Optional[str] = None, binary: bool = False) -> str:
        """Encrypt and store one record; returns its key."""
        record = self.encrypt(value, binary=binary)
        if key is None:
            self.table.put(record.iv, record.ciphertext)
            return record.iv
        self.table.put(key, record.ciphertext, iv=b64dec(record.iv))
        return key

    def puts(self, values: Iterable[Any], binary: bool = False) -> List[str]:
        """Encrypt and store several anonymous records in one transaction."""
        return self.put_records([self.encrypt(v, binary=binary) for v in values])

    def put_records(self, records: Iterable[EncryptedRecord]) -> List[str]:
        records = list(records)
        self.table.put_many((r.iv, None, r.ciphertext) for r in records)
        return [r.iv for r in records]

    def deletes(self, keys: Iterable[str]) -> None:
        self.table.delete_many(keys)

    def update_root_index(self, update: Callable[[dict], None]) -> dict:
        """
        Read-modify-write of the root index inside one immediate transaction.

        Raises:
            KeyMismatchError: the store was wiped or re-keyed since connect
        """
        with self.table.transaction():
            if _stored_marker(self.table) != self.marker:
                raise KeyMismatchError("Store was re-keyed during the write")
            index = self.get_root_index()
            update(index)
            self.put(index, key=ROOT_INDEX_KEY)
        return index

    def clear(self) -> None:
        """Wipe every record, marker included."""
        print("Clearing store...")
        self.table.clear()
        self._publish(Broadcast("rekey", clear=self.marker))


# ============================================================
# Expiry
# ============================================================

def maybe_expire(
    table: RecordTable,
    secret: Optional[bytes],
    broadcaster: Optional[Broadcaster] = None,
) -> bool:
    """
    Wipe a store that can no longer be decrypted.

    A store whose marker does not match the current secret (or with no
    secret at all) is unreadable forever. An unclaimed store is left alone.

    Returns:
        True if the store was wiped
    """
    marker = key_hash(derive_key(secret)) if secret is not None else None
    with table.transaction():
        stored = _stored_marker(table)
        if stored is None or stored == marker:
            return False
        print("Expiring store...")
        table.clear()

    if broadcaster is not None:
        broadcaster.publish(Broadcast("rekey", clear=stored))
    return True
