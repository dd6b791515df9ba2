# writer.py
# Vaultline – Writer subsystem: buffered encrypted writes and the atomic index commit

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Set

from vaultline.index import DataFile, DataFileKey, ProviderDatabase, ProviderIndex, TimelineEntry
from vaultline.store import EncryptedRecord, WriteBackend


# ============================================================
# Configuration
# ============================================================

# Larger batches speed up imports but make each timeline hydrate decrypt
# more unrelated entries.
DEFAULT_BATCH_SIZE = 64
DEFAULT_FILE_BUFFER_LIMIT = 16 * 1024 * 1024  # 16MB of plaintext per flush
DEFAULT_TIMELINE_WRITE_LIMIT = 1024           # entries per flush


@dataclass
class _Pending:
    files: List[EncryptedRecord] = field(default_factory=list)
    file_bytes: int = 0
    file_index: List[DataFileKey] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    batch: List[TimelineEntry] = field(default_factory=list)
    batches: List[EncryptedRecord] = field(default_factory=list)
    seen: Set[str] = field(default_factory=set)
    timeline_index: List[list] = field(default_factory=list)


# ============================================================
# Writer
# ============================================================

class Writer:
    """
    Accumulates one import session for a provider.

    Payloads are written as they are buffered, but nothing is visible to
    readers until `commit()` swaps the provider's entry in the root index.
    A session abandoned before that leaves only unreferenced records.
    """

    def __init__(
        self,
        backend: WriteBackend,
        provider,
        batch_size: int = DEFAULT_BATCH_SIZE,
        file_buffer_limit: int = DEFAULT_FILE_BUFFER_LIMIT,
        timeline_write_limit: int = DEFAULT_TIMELINE_WRITE_LIMIT,
    ):
        self.backend = backend
        self.provider = provider
        self.batch_size = batch_size
        self.file_buffer_limit = file_buffer_limit
        self.timeline_write_limit = timeline_write_limit
        self._pending = _Pending()

    def put_file(self, file: DataFile) -> DataFileKey:
        record = self.backend.encrypt(file.data, binary=True)
        key = file.key(iv=record.iv)

        self._pending.files.append(record)
        self._pending.file_bytes += len(file.data)
        self._pending.file_index.append(key)

        if self._pending.file_bytes > self.file_buffer_limit:
            self._flush_files()
        return key

    def put_metadata(self, metadata: Mapping[str, Any]) -> None:
        self._pending.metadata.update(metadata)

    def put_timeline_entry(self, entry: TimelineEntry) -> bool:
        """Buffer an entry; returns False if its slug was already seen this session."""
        pending = self._pending
        if entry.slug in pending.seen:
            return False
        pending.seen.add(entry.slug)
        pending.batch.append(entry)

        if len(pending.batch) >= self.batch_size:
            self._flush_timeline_batch()
        if len(pending.batches) * self.batch_size >= self.timeline_write_limit:
            self._flush_timeline_writes()
        return True

    def _flush_files(self) -> None:
        if self._pending.files:
            self.backend.put_records(self._pending.files)
        self._pending.files = []
        self._pending.file_bytes = 0

    def _flush_timeline_batch(self) -> None:
        pending = self._pending
        if not pending.batch:
            return
        record = self.backend.encrypt([entry.payload() for entry in pending.batch])
        pending.batches.append(record)
        for offset, entry in enumerate(pending.batch):
            pending.timeline_index.append(entry.with_pointer(record.iv, offset).key().to_row())
        pending.batch = []

    def _flush_timeline_writes(self) -> None:
        if self._pending.batches:
            self.backend.put_records(self._pending.batches)
        self._pending.batches = []

    def commit(self) -> str:
        """
        Flush everything, write the provider index, then point the root
        index at it. Must be called for any of the session to become visible.

        Returns:
            Record key of the new provider index
        """
        pending = self._pending

        self._flush_files()
        files = sorted(pending.file_index, key=lambda f: f.joined_path)

        metadata = sorted(pending.metadata.items(), key=lambda kv: kv[0])

        self._flush_timeline_batch()
        self._flush_timeline_writes()
        timeline = sorted(pending.timeline_index, key=lambda row: row[4])

        index = ProviderIndex(
            files=files,
            metadata=metadata,
            timeline=timeline,
            has_errors=any(f.errors for f in files),
        )
        index_key = self.backend.put(index.to_json())

        # Root index last: this is the commit point. The replaced index and its
        # payloads are left in place until the store is cleared.
        self.backend.update_root_index(lambda root: root.__setitem__(self.provider.slug, index_key))

        self._pending = _Pending()

        self.backend.broadcast_write(self.provider.slug)
        return index_key


def _record_keys(query: ProviderDatabase) -> Set[str]:
    """Every record the provider's committed index points at, the index itself included."""
    keys = {f.iv for f in query.get_files()}
    keys.update(row[0] for row in query.index.timeline)
    keys.add(query.root_index.get(query.provider.slug))
    keys.discard(None)
    return keys


# ============================================================
# Resetter
# ============================================================

class Resetter:
    """Removes one provider's data; removing the last one wipes the store."""

    def __init__(self, backend: WriteBackend, provider):
        self.backend = backend
        self.provider = provider

    def reset_provider(self) -> None:
        query = ProviderDatabase(self.backend, self.provider)
        self.backend.deletes(_record_keys(query))

        root = self.backend.update_root_index(lambda index: index.pop(self.provider.slug, None))

        if not root:
            self.backend.clear()
        else:
            self.backend.broadcast_reset()
