# manager.py
# Vaultline – Manager subsystem: the application root that owns the store connection

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Set, Union

from vaultline.codec import key_hash
from vaultline.config import VaultConfig
from vaultline.index import BaseDatabase, DataFile, DataFileKey, ProviderDatabase, TimelineEntry, TimelineEntryKey
from vaultline.ingest import ImportResult, InputFile
from vaultline.ingest import import_files as ingest_files
from vaultline.ingest import list_profiles as ingest_profiles
from vaultline.providers import Provider, get_provider
from vaultline.store import (
    Broadcast,
    Broadcaster,
    KeyJar,
    ReadBackend,
    RecordTable,
    WriteBackend,
    derive_key,
    maybe_expire,
)
from vaultline.writer import Resetter

ProviderRef = Union[str, Provider]


class Vault:
    """
    One vault: a record table, its key jar and the cached read connection.

    Every rekey/reset/write notification bumps `generation` and drops the
    cached databases, so the next read sees the new committed state. Writes
    (import, reset) are serialized; reads never wait on them.
    """

    def __init__(self, config: Optional[VaultConfig] = None, broadcaster: Optional[Broadcaster] = None):
        self.config = config or VaultConfig()
        self.table = RecordTable(self.config.db_path)
        self.key_jar = KeyJar(self.config.key_path, max_age=self.config.key_max_age)
        self.broadcaster = broadcaster or Broadcaster()
        self.generation = 0

        self._state_lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._backend: Optional[ReadBackend] = None
        self._connected = False
        self._databases: Dict[Optional[str], BaseDatabase] = {}
        self._last_expiry_check: Optional[float] = None
        self._executor: Optional[ThreadPoolExecutor] = None

        self._unsubscribe = self.broadcaster.subscribe(self._on_broadcast)

    # ========================================================
    # Connection and Cache
    # ========================================================

    def _on_broadcast(self, message: Broadcast) -> None:
        if message.type == "rekey" and message.clear is not None:
            # the wiped store's secret is useless now; start a fresh retention period
            secret = self.key_jar.get()
            if secret is not None and key_hash(derive_key(secret)) == message.clear:
                self.key_jar.clear()
        self._invalidate(reconnect=message.type == "rekey")

    def _invalidate(self, reconnect: bool = False) -> None:
        with self._state_lock:
            self.generation += 1
            self._databases.clear()
            if reconnect:
                self._backend = None
                self._connected = False

    def connect(self) -> Optional[ReadBackend]:
        """(Re)open the cached read backend; None while the store is unreadable."""
        with self._state_lock:
            self._backend = ReadBackend.connect(self.table, self.key_jar.get(), self.broadcaster)
            self._connected = True
            self._databases.clear()
            return self._backend

    @property
    def backend(self) -> Optional[ReadBackend]:
        self._check_expiry()
        with self._state_lock:
            if not self._connected:
                self.connect()
            return self._backend

    def _check_expiry(self) -> None:
        now = time.monotonic()
        last = self._last_expiry_check
        if last is None or now - last >= self.config.expiry_check_interval:
            self._last_expiry_check = now
            self.maybe_expire()

    def base_database(self) -> BaseDatabase:
        backend = self.backend
        with self._state_lock:
            if None not in self._databases:
                self._databases[None] = BaseDatabase(backend)
            return self._databases[None]

    def provider_database(self, provider: ProviderRef) -> ProviderDatabase:
        provider = _resolve(provider)
        backend = self.backend
        with self._state_lock:
            if provider.slug not in self._databases:
                self._databases[provider.slug] = ProviderDatabase(backend, provider)
            return self._databases[provider.slug]

    def maybe_expire(self) -> bool:
        """Wipe the store if its secret has expired or been dropped."""
        return maybe_expire(self.table, self.key_jar.get(), self.broadcaster)

    # ========================================================
    # Write Operations
    # ========================================================

    def import_files(
        self,
        provider: ProviderRef,
        inputs: Sequence[InputFile],
        on_progress: Optional[Callable[[float], None]] = None,
        profile: Optional[str] = None,
    ) -> ImportResult:
        """Replace a provider's data with the contents of the given inputs."""
        provider = _resolve(provider)
        if not inputs:
            return ImportResult()
        with self._write_lock:
            self.maybe_expire()
            secret = self.key_jar.get_or_generate()
            backend = WriteBackend.connect(self.table, secret, self.broadcaster)
            return ingest_files(
                backend,
                provider,
                inputs,
                config=self.config,
                on_progress=on_progress,
                profile=profile,
            )

    def reset_provider(self, provider: ProviderRef) -> None:
        """Remove a provider's data. Resetting an absent provider does nothing."""
        provider = _resolve(provider)
        with self._write_lock:
            self.maybe_expire()
            secret = self.key_jar.get()
            if secret is None:
                return
            if ReadBackend.connect(self.table, secret) is None:
                return
            backend = WriteBackend.connect(self.table, secret, self.broadcaster)
            if provider.slug not in backend.get_root_index():
                return
            Resetter(backend, provider).reset_provider()

    def _pool(self) -> ThreadPoolExecutor:
        with self._state_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vaultline-writer")
            return self._executor

    def submit_import(self, provider: ProviderRef, inputs: Sequence[InputFile], **kwargs) -> Future:
        return self._pool().submit(self.import_files, provider, inputs, **kwargs)

    def submit_reset(self, provider: ProviderRef) -> Future:
        return self._pool().submit(self.reset_provider, provider)

    # ========================================================
    # Read Operations
    # ========================================================

    def get_providers(self) -> Set[str]:
        return self.base_database().get_providers()

    def get_has_errors(self, provider: ProviderRef) -> bool:
        return self.provider_database(provider).get_has_errors()

    def get_files(self, provider: ProviderRef):
        return self.provider_database(provider).get_files()

    def get_metadata(self, provider: ProviderRef):
        return self.provider_database(provider).get_metadata()

    def get_timeline_entries(self, provider: ProviderRef) -> List[TimelineEntryKey]:
        return self.provider_database(provider).get_timeline_entries()

    def get_timeline_entry_by_slug(self, provider: ProviderRef, slug: str) -> Optional[TimelineEntry]:
        return self.provider_database(provider).get_timeline_entry_by_slug(slug)

    def hydrate_file(self, provider: ProviderRef, key: DataFileKey) -> Optional[DataFile]:
        return self.provider_database(provider).hydrate_file(key)

    def hydrate_timeline_entry(self, provider: ProviderRef, key: TimelineEntryKey) -> Optional[TimelineEntry]:
        return self.provider_database(provider).hydrate_timeline_entry(key)

    def list_profiles(self, provider: ProviderRef, inputs: Sequence[InputFile]) -> List[str]:
        return ingest_profiles(_resolve(provider), inputs, config=self.config)

    # ========================================================
    # Lifecycle
    # ========================================================

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._unsubscribe()
        self.table.close()

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _resolve(provider: ProviderRef) -> Provider:
    return get_provider(provider) if isinstance(provider, str) else provider
