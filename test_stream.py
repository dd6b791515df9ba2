"""
Test the stream helpers: chunking, streaming gunzip and tar reading.
"""

import gzip
import io
import tarfile
import zlib

import pytest

from conftest import make_tar_gz
from vaultline.stream import (
    ChunkReader,
    gunzip_chunks,
    iter_chunks,
    looks_like_tar,
    open_tar_gz,
    rechunk,
    track_progress,
)


def test_iter_chunks_bytes_and_file():
    data = bytes(range(10))
    assert list(iter_chunks(data, 4)) == [data[0:4], data[4:8], data[8:10]]
    assert b"".join(iter_chunks(io.BytesIO(data), 3)) == data


def test_rechunk_coalesces_small_chunks():
    out = list(rechunk([b"a", b"b", b"c", b"dddd", b"e"], 2))
    assert out == [b"abc", b"dddd", b"e"]


def test_track_progress_reports_running_total():
    seen = []
    assert list(track_progress([b"ab", b"cde"], seen.append)) == [b"ab", b"cde"]
    assert seen == [2, 5]


def test_gunzip_multi_member_with_padding():
    data = gzip.compress(b"hello ") + b"\x00\x00" + gzip.compress(b"world") + b"\x00"
    out = b"".join(gunzip_chunks(iter_chunks(data, 5)))
    assert out == b"hello world"


def test_gunzip_truncated_raises():
    data = gzip.compress(b"x" * 10_000)
    with pytest.raises(EOFError):
        b"".join(gunzip_chunks([data[:-8]]))


def test_gunzip_corrupt_raises():
    with pytest.raises(zlib.error):
        b"".join(gunzip_chunks([b"\x1f\x8b\x09\x00" + b"\x00" * 16]))


def test_chunk_reader_reads_across_chunks():
    reader = ChunkReader([b"ab", b"", b"cdef"])
    assert reader.read(1) == b"a"
    assert reader.readall() == b"bcdef"
    assert reader.read(4) == b""


def test_open_tar_gz_yields_regular_files_with_progress():
    archive = make_tar_gz({"a.txt": b"alpha", "dir/b.txt": b"beta"})
    progress = []
    members = list(open_tar_gz(archive, total_size=len(archive), on_progress=progress.append, chunk_size=16))
    assert [(m.name, m.data) for m in members] == [("a.txt", b"alpha"), ("dir/b.txt", b"beta")]
    assert progress[-1] == pytest.approx(1.0)
    assert all(0 <= p <= 1 for p in progress)


def test_open_tar_gz_with_tiny_reads():
    body = bytes(range(256)) * 120
    archive = make_tar_gz({"big.bin": body, "small.txt": b"ok"})
    members = list(open_tar_gz(archive, chunk_size=1))
    assert [(m.name, m.data) for m in members] == [("big.bin", body), ("small.txt", b"ok")]

def test_open_tar_gz_skips_directories_and_rejected_bodies():
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        directory = tarfile.TarInfo("dir")
        directory.type = tarfile.DIRTYPE
        tar.addfile(directory)
        info = tarfile.TarInfo("dir/big.bin")
        info.size = 100
        tar.addfile(info, io.BytesIO(b"x" * 100))
        info = tarfile.TarInfo("dir/small.txt")
        info.size = 2
        tar.addfile(info, io.BytesIO(b"ok"))

    members = list(open_tar_gz(buf.getvalue(), keep=lambda name, size: size < 50))
    assert [(m.name, m.size, m.data) for m in members] == [
        ("dir/big.bin", 100, None),
        ("dir/small.txt", 2, b"ok"),
    ]


def test_looks_like_tar():
    tar_bytes = gzip.decompress(make_tar_gz({"a": b"1"}))
    assert looks_like_tar(tar_bytes)
    assert not looks_like_tar(b"not a tar" * 100)
