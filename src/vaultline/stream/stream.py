# stream.py
# Vaultline – Stream subsystem: chunked byte streams, streaming gunzip, progress, tar reading

import io
import tarfile
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Union


# ============================================================
# Configuration
# ============================================================

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64KB of compressed input per read

# Tar type flags for regular files ("0", and the pre-POSIX NUL flag)
REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE)

Source = Union[bytes, bytearray, memoryview, BinaryIO]


# ============================================================
# Output Format
# ============================================================

@dataclass
class TarMember:
    """A regular file inside a tar archive. `data` is None when the body was skipped."""
    name: str
    size: int
    data: Optional[bytes]


# ============================================================
# Chunk Sources and Transforms
# ============================================================

def iter_chunks(source: Source, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield fixed-size chunks from an in-memory buffer or a binary file object.

    Args:
        source: bytes-like object or anything with read(n)
        chunk_size: Maximum size of each chunk

    Returns:
        Iterator of byte chunks (the last one may be short)
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for i in range(0, len(view), chunk_size):
            yield bytes(view[i:i + chunk_size])
        return

    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        yield chunk


def rechunk(chunks: Iterable[bytes], min_chunk_size: int) -> Iterator[bytes]:
    """
    Coalesce small chunks so each emitted chunk exceeds min_chunk_size.

    A large chunk arriving with nothing buffered passes straight through.
    Whatever remains at the end is flushed as a final, possibly short, chunk.
    """
    buffer = []
    size = 0
    for chunk in chunks:
        if not size and len(chunk) > min_chunk_size:
            yield chunk
            continue
        buffer.append(chunk)
        size += len(chunk)
        if size > min_chunk_size:
            yield b"".join(buffer)
            buffer = []
            size = 0
    if size:
        yield b"".join(buffer)


def track_progress(chunks: Iterable[bytes], callback: Callable[[int], None]) -> Iterator[bytes]:
    """Pass chunks through, reporting the running byte total after each one."""
    progress = 0
    for chunk in chunks:
        progress += len(chunk)
        callback(progress)
        yield chunk


def _gzip_decompressor():
    return zlib.decompressobj(zlib.MAX_WBITS | 16)


def gunzip_chunks(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """
    Streaming gzip decompression.

    Handles multi-member files (as produced by `cat a.gz b.gz`) and NUL
    padding between or after members.

    Raises:
        zlib.error: on corrupt input
        EOFError: if the input ends in the middle of a member
    """
    decompressor = _gzip_decompressor()
    at_boundary = True  # no bytes of the current member consumed yet

    for chunk in chunks:
        data = bytes(chunk)
        while data:
            if at_boundary:
                data = data.lstrip(b"\x00")
                if not data:
                    break
                at_boundary = False

            out = decompressor.decompress(data)
            if out:
                yield out

            if decompressor.eof:
                data = decompressor.unused_data
                decompressor = _gzip_decompressor()
                at_boundary = True
            else:
                data = b""

    if not at_boundary:
        tail = decompressor.flush()
        if tail:
            yield tail
        if not decompressor.eof:
            raise EOFError("Compressed stream ended before the end-of-stream marker")


# ============================================================
# File-like Adapter
# ============================================================

class ChunkReader(io.RawIOBase):
    """
    Read-only file object over an iterator of byte chunks.

    Lets consumers that want read(n) (tarfile in stream mode) pull from a
    generator pipeline without materialising it.
    """

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._buffer = memoryview(b"")

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not len(self._buffer):
            try:
                self._buffer = memoryview(next(self._chunks))
            except StopIteration:
                return 0
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n


# ============================================================
# Tar Reading
# ============================================================

def open_tar_gz(
    source: Source,
    total_size: Optional[int] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    keep: Optional[Callable[[str, int], bool]] = None,
) -> Iterator[TarMember]:
    """
    Stream the regular files out of a gzip-compressed tar archive.

    Progress is measured in *compressed* bytes consumed against total_size,
    since that is the only size known ahead of time.

    Args:
        source: Compressed archive bytes or binary file object
        total_size: Compressed size, required for progress reporting
        on_progress: Called with a fraction in [0, 1]
        chunk_size: Compressed bytes per read
        keep: Predicate (name, size) -> bool; bodies of rejected members are
              skipped and yielded with data=None

    Returns:
        Iterator of TarMember
    """
    chunks = iter_chunks(source, chunk_size)
    if on_progress is not None and total_size:
        chunks = track_progress(chunks, lambda n: on_progress(min(n / total_size, 1.0)))

    # tarfile gets whole records, however small the compressed reads
    data = rechunk(gunzip_chunks(chunks), tarfile.RECORDSIZE)
    yield from read_tar(ChunkReader(data), keep=keep)


def read_tar(fileobj: BinaryIO, keep: Optional[Callable[[str, int], bool]] = None) -> Iterator[TarMember]:
    """
    Stream the regular files out of an uncompressed tar file object.

    Members are read strictly in order, so a rejected body costs a skip,
    never a buffer.
    """
    with tarfile.open(fileobj=fileobj, mode="r|") as tar:
        for member in tar:
            if member.type not in REGULAR_TYPES:
                continue
            if keep is not None and not keep(member.name, member.size):
                yield TarMember(name=member.name, size=member.size, data=None)
                continue
            handle = tar.extractfile(member)
            data = handle.read() if handle is not None else b""
            if len(data) != member.size:
                raise EOFError(
                    f"Invalid read length for {member.name}: got {len(data)}, expected {member.size}"
                )
            yield TarMember(name=member.name, size=member.size, data=data)


def looks_like_tar(data: bytes) -> bool:
    """True if the first 512 bytes are a valid tar header (checksum included)."""
    if len(data) < tarfile.BLOCKSIZE:
        return False
    try:
        tarfile.TarInfo.frombuf(data[:tarfile.BLOCKSIZE], "utf-8", "surrogateescape")
    except tarfile.HeaderError:
        return False
    return True
