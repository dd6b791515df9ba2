# stream/__init__.py
# Vaultline – Stream subsystem exports

from .stream import (
    iter_chunks,
    rechunk,
    track_progress,
    gunzip_chunks,
    ChunkReader,
    open_tar_gz,
    read_tar,
    looks_like_tar,
    TarMember,
    DEFAULT_CHUNK_SIZE,
)

__all__ = [
    "iter_chunks",
    "rechunk",
    "track_progress",
    "gunzip_chunks",
    "ChunkReader",
    "open_tar_gz",
    "read_tar",
    "looks_like_tar",
    "TarMember",
    "DEFAULT_CHUNK_SIZE",
]
