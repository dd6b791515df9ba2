# ingest.py
# Vaultline – Ingest subsystem: expand nested export archives and import their files

import io
import tarfile
import time
import zipfile
import zlib
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlparse

import requests

from vaultline.codec import path_slug
from vaultline.config import VaultConfig
from vaultline.index import TOO_LARGE, DataFile
from vaultline.parse import parse_by_stages, parse_profiles
from vaultline.store import WriteBackend
from vaultline.stream import (
    DEFAULT_CHUNK_SIZE,
    gunzip_chunks,
    iter_chunks,
    looks_like_tar,
    open_tar_gz,
    read_tar,
)
from vaultline.writer import Writer


# ============================================================
# Exceptions
# ============================================================

class IngestError(Exception):
    pass


# ============================================================
# Inputs
# ============================================================

@dataclass
class InputFile:
    """A top-level input: in-memory bytes or a local file."""
    name: str
    data: Optional[bytes] = None
    path: Optional[Path] = None
    size: int = 0

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise IngestError(f"Failed to read file {self.path}: {e}")

    def open(self):
        """Binary file object over the input, for streaming readers."""
        if self.data is not None:
            return io.BytesIO(self.data)
        try:
            return self.path.open("rb")
        except OSError as e:
            raise IngestError(f"Failed to open file {self.path}: {e}")


def input_from_bytes(name: str, data: bytes) -> InputFile:
    return InputFile(name=name, data=bytes(data), size=len(data))


def input_from_path(path: Union[str, Path]) -> InputFile:
    path = Path(path).expanduser()
    if not path.is_file():
        raise IngestError(f"Path does not exist or is not a file: {path}")
    return InputFile(name=path.name, path=path, size=path.stat().st_size)


def input_from_url(url: str, timeout: float = 60) -> InputFile:
    """Download an export archive. The last URL path segment names the input."""
    name = unquote(PurePosixPath(urlparse(url).path).name) or "download"
    try:
        resp = requests.get(url, timeout=timeout)
        if not resp.ok:
            raise IngestError(f"HTTP {resp.status_code}: failed to download {url}")
        return input_from_bytes(name, resp.content)
    except requests.RequestException as e:
        raise IngestError(f"Failed to fetch {url}: {e}")


def input_from_arg(arg: str) -> InputFile:
    if arg.startswith(("http://", "https://")):
        return input_from_url(arg)
    return input_from_path(arg)


# ============================================================
# Archive Walking
# ============================================================

@dataclass
class LeafFile:
    """A non-container file found while walking the inputs."""
    path: Tuple[str, ...]
    data: bytes
    size: int
    too_large: bool = False


def container_kind(name: str) -> Optional[str]:
    lower = name.lower()
    if lower.endswith(".zip"):
        return "zip"
    if lower.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    if lower.endswith(".gz"):
        return "gz"
    return None


def split_member_name(name: str) -> List[str]:
    """Archive member name -> path segments, dropping empty and "." segments."""
    return [part for part in name.split("/") if part and part != "."]


class _Progress:
    """Overall fraction across top-level inputs, by compressed size."""

    def __init__(self, inputs: Sequence[InputFile], callback: Optional[Callable[[float], None]]):
        self.callback = callback
        self.total = sum(i.size for i in inputs) or 1
        self.done = 0

    def partial(self, size: int) -> Optional[Callable[[float], None]]:
        if self.callback is None:
            return None
        return lambda fraction: self.callback(min((self.done + fraction * size) / self.total, 1.0))

    def finish(self, size: int) -> None:
        self.done += size
        if self.callback is not None:
            self.callback(min(self.done / self.total, 1.0))


def walk_inputs(
    inputs: Sequence[InputFile],
    max_file_size: int,
    failures: Optional[List[str]] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[LeafFile]:
    """
    Expand the inputs breadth-first and yield every leaf file.

    Containers found inside containers are pushed back onto the work
    queue. Leaves over max_file_size are yielded with too_large=True and
    no bytes; containers are never size-limited.

    Args:
        inputs: Top-level inputs; each must be a container
        max_file_size: Leaf size ceiling in bytes
        failures: If given, a failing branch is recorded here and the walk
                  continues with its siblings; otherwise IngestError is raised
        on_progress: Called with the overall fraction of input consumed
        chunk_size: Compressed bytes per read for tar.gz streams

    Returns:
        Iterator of LeafFile
    """
    progress = _Progress(inputs, on_progress)
    work = deque()  # (path, source, top-level size or None)
    for item in inputs:
        work.append(((item.name,), item, item.size))

    while work:
        path, source, top_size = work.popleft()
        kind = container_kind(path[-1])
        try:
            if kind is None:
                raise IngestError(f"Unknown file: {path[-1]}")
            children = _expand(kind, path, source, max_file_size, chunk_size,
                               progress.partial(top_size) if top_size else None)
            for child_path, data, size in children:
                if container_kind(child_path[-1]) is not None:
                    work.append((child_path, data, None))
                elif size > max_file_size:
                    yield LeafFile(path=child_path, data=b"", size=size, too_large=True)
                else:
                    yield LeafFile(path=child_path, data=data, size=size)
        except IngestError as e:
            if failures is None:
                raise
            message = f"{'/'.join(path)}: {e}"
            print(f"Warning: {message}")
            failures.append(message)
        finally:
            if top_size is not None:
                progress.finish(top_size)


def _expand(kind, path, source, max_file_size, chunk_size, on_progress):
    """Yield (path, bytes or None, size) for each member of one container."""
    if kind == "zip":
        return _expand_zip(path, source, max_file_size)
    if kind == "tar.gz":
        return _expand_tar_gz(path, source, max_file_size, chunk_size, on_progress)
    return _expand_gz(path, source, max_file_size, chunk_size)


def _keep(max_file_size):
    return lambda name, size: size <= max_file_size or container_kind(name) is not None


def _as_stream(source):
    return source.open() if isinstance(source, InputFile) else io.BytesIO(source)


def _expand_zip(path, source, max_file_size):
    stream = _as_stream(source)
    try:
        with zipfile.ZipFile(stream) as z:
            for info in z.infolist():
                if info.is_dir():
                    continue
                child = path + tuple(split_member_name(info.filename))
                if len(child) == len(path):
                    continue
                if info.file_size > max_file_size and container_kind(child[-1]) is None:
                    yield child, None, info.file_size
                    continue
                yield child, z.read(info), info.file_size
    except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
        raise IngestError(f"Invalid ZIP: {e}")
    finally:
        stream.close()


def _tar_children(path, members):
    for member in members:
        child = path + tuple(split_member_name(member.name))
        if len(child) == len(path):
            continue
        yield child, member.data, member.size


def _expand_tar_gz(path, source, max_file_size, chunk_size, on_progress):
    total_size = source.size if isinstance(source, InputFile) else len(source)
    stream = _as_stream(source)
    try:
        members = open_tar_gz(
            stream,
            total_size=total_size,
            on_progress=on_progress,
            chunk_size=chunk_size,
            keep=_keep(max_file_size),
        )
        yield from _tar_children(path, members)
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise IngestError(f"Invalid tar.gz: {e}")
    finally:
        stream.close()


def _expand_gz(path, source, max_file_size, chunk_size):
    """A lone .gz: a tar inside is walked, anything else becomes one file named without .gz."""
    stream = _as_stream(source)
    try:
        data = b"".join(gunzip_chunks(iter_chunks(stream, chunk_size)))
        if looks_like_tar(data):
            yield from _tar_children(path, read_tar(io.BytesIO(data), keep=_keep(max_file_size)))
        else:
            yield path + (path[-1][:-3],), data, len(data)
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise IngestError(f"Invalid gzip: {e}")
    finally:
        stream.close()


# ============================================================
# Output Format
# ============================================================

@dataclass
class ImportResult:
    """Summary of one committed import session."""
    files: int = 0
    timeline_entries: int = 0
    errors: int = 0         # files with at least one ParseError
    failures: List[str] = field(default_factory=list)  # branches that could not be expanded
    index_key: Optional[str] = None


# ============================================================
# Import
# ============================================================

def import_files(
    backend: WriteBackend,
    provider,
    inputs: Sequence[InputFile],
    config: Optional[VaultConfig] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    profile: Optional[str] = None,
) -> ImportResult:
    """
    Walk, parse and commit one import session for a provider.

    The commit replaces the provider's previous data atomically. A branch
    that fails to expand is recorded in `failures` and the rest of the
    session still commits. An empty input list commits nothing.

    Raises:
        IngestError: nothing at all could be read from the inputs
    """
    if not inputs:
        return ImportResult()

    config = config or VaultConfig()
    start = time.time()

    writer = Writer(
        backend,
        provider,
        batch_size=config.timeline_batch_size,
        file_buffer_limit=config.file_buffer_limit,
        timeline_write_limit=config.timeline_write_limit,
    )
    result = ImportResult()
    metadata = {}

    leaves = walk_inputs(
        inputs,
        max_file_size=config.max_file_size,
        failures=result.failures,
        on_progress=on_progress,
        chunk_size=config.stream_chunk_size,
    )
    for leaf in leaves:
        slug = path_slug(leaf.path)
        result.files += 1

        if leaf.too_large:
            writer.put_file(DataFile(
                provider=provider.slug,
                path=leaf.path,
                slug=slug,
                skipped=TOO_LARGE,
                status="skipped",
            ))
            continue

        response = parse_by_stages(provider, leaf.path, leaf.data, profile=profile)
        writer.put_file(DataFile(
            provider=provider.slug,
            path=leaf.path,
            slug=slug,
            status=response.status,
            errors=tuple(response.errors),
            data=leaf.data,
        ))
        if response.errors:
            result.errors += 1
            if config.verbose:
                print(f"Warning: {len(response.errors)} error(s) parsing {'/'.join(leaf.path)}")
        for entry in response.timeline:
            if writer.put_timeline_entry(entry):
                result.timeline_entries += 1
        metadata.update(response.metadata)

    if result.files == 0 and result.failures:
        raise IngestError(f"Nothing imported: {'; '.join(result.failures)}")

    writer.put_metadata(metadata)
    middle = time.time()
    if config.verbose:
        print(f"Parse Time: {middle - start:.2f}s")

    result.index_key = writer.commit()
    end = time.time()
    if config.verbose:
        print(f"Database Time: {end - middle:.2f}s")
        print(f"Total Time: {end - start:.2f}s")
    return result


def list_profiles(
    provider,
    inputs: Sequence[InputFile],
    config: Optional[VaultConfig] = None,
) -> List[str]:
    """Account profiles found in the inputs, per the provider's profile rule."""
    if getattr(provider, "profile", None) is None:
        return []
    config = config or VaultConfig()
    failures: List[str] = []
    leaves = walk_inputs(
        inputs,
        max_file_size=config.max_file_size,
        failures=failures,
        chunk_size=config.stream_chunk_size,
    )
    return parse_profiles(provider, ((leaf.path, leaf.data) for leaf in leaves if not leaf.too_large))
