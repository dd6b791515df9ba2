# config.py
# Vaultline – Configuration

from dataclasses import dataclass, field
from pathlib import Path

from vaultline.stream import DEFAULT_CHUNK_SIZE
from vaultline.writer import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FILE_BUFFER_LIMIT,
    DEFAULT_TIMELINE_WRITE_LIMIT,
)


@dataclass
class VaultConfig:
    """Configuration for a vault."""
    # Storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".vaultline")
    db_name: str = "vault.sqlite3"
    key_file: str = "key.json"

    # Secret lifetime
    key_max_age: float = 24 * 60 * 60  # 24 hours
    expiry_check_interval: float = 60.0

    # Ingest
    max_file_size: int = 128 * 1024 * 1024  # 128MB per leaf file
    stream_chunk_size: int = DEFAULT_CHUNK_SIZE

    # Writer
    timeline_batch_size: int = DEFAULT_BATCH_SIZE
    file_buffer_limit: int = DEFAULT_FILE_BUFFER_LIMIT
    timeline_write_limit: int = DEFAULT_TIMELINE_WRITE_LIMIT

    verbose: bool = True

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    @property
    def key_path(self) -> Path:
        return self.data_dir / self.key_file
