# query.py
# Vaultline – Index subsystem: lazy read path over a committed store

from types import MappingProxyType
from typing import Mapping, Optional, Set, Tuple

from vaultline.store import MissingKeyError, ReadBackend
from .types import DataFile, DataFileKey, ProviderIndex, TimelineEntry, TimelineEntryKey


class BaseDatabase:
    """Root-level view: which providers have committed data."""

    def __init__(self, backend: Optional[ReadBackend]):
        self.backend = backend
        self._root_index: Optional[dict] = None

    @property
    def root_index(self) -> dict:
        if self._root_index is None:
            self._root_index = self.backend.get_root_index() if self.backend else {}
        return self._root_index

    def get_providers(self) -> Set[str]:
        return set(self.root_index)


class ProviderDatabase(BaseDatabase):
    """
    One provider's committed index, loaded once on first use.

    A missing backend (no secret, unclaimed or expired store) reads as an
    empty provider rather than an error.
    """

    def __init__(self, backend: Optional[ReadBackend], provider):
        super().__init__(backend)
        self.provider = provider
        self._index: Optional[ProviderIndex] = None

    @property
    def index(self) -> ProviderIndex:
        if self._index is None:
            self._index = self._load_index()
        return self._index

    def _load_index(self) -> ProviderIndex:
        if self.backend is not None:
            key = self.root_index.get(self.provider.slug)
            data = self.backend.get(key) if key else None
            if data:
                return ProviderIndex.from_json(data)
        return ProviderIndex()

    def get_has_errors(self) -> bool:
        return self.index.has_errors

    def get_files(self) -> Tuple[DataFileKey, ...]:
        return tuple(self.index.files)

    def get_metadata(self) -> Mapping:
        return MappingProxyType(dict(self.index.metadata))

    def get_timeline_entries(self) -> list:
        category_type = getattr(self.provider, "category_type", None)
        return [TimelineEntryKey.from_row(row, category_type) for row in self.index.timeline]

    def hydrate_file(self, key: DataFileKey) -> Optional[DataFile]:
        """
        Decrypt a file's bytes.

        Skipped files hydrate to empty bytes whether or not they carry an IV.

        Raises:
            MissingKeyError: a stored file's key has no IV
        """
        if key.skipped:
            return DataFile.hydrate(key, b"")
        if not key.iv:
            raise MissingKeyError("DataFileKey is missing IV")
        if self.backend is None:
            return None
        data = self.backend.get(key.iv, binary=True)
        if data is None:
            return None
        return DataFile.hydrate(key, data)

    def hydrate_timeline_entry(self, key: TimelineEntryKey) -> Optional[TimelineEntry]:
        """
        Decrypt one entry's [file, context, value] from its batch record.

        Raises:
            MissingKeyError: the key has no IV or offset
        """
        if not key.iv or key.offset is None:
            raise MissingKeyError("TimelineEntryKey is missing IV or offset")
        if self.backend is None:
            return None
        batch = self.backend.get(key.iv)
        if batch is None:
            return None
        return TimelineEntry.hydrate(key, batch[key.offset])

    def get_timeline_entry_by_slug(self, slug: str) -> Optional[TimelineEntry]:
        category_type = getattr(self.provider, "category_type", None)
        for row in self.index.timeline:
            if row[4] == slug:
                return self.hydrate_timeline_entry(TimelineEntryKey.from_row(row, category_type))
        return None
