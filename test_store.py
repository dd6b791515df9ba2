"""
Test the encrypted store: marker handling, records, root index and expiry.
"""

import json
import os
import threading
import time

import pytest

from conftest import OTHER_SECRET, SECRET
from vaultline.codec import b64dec
from vaultline.store import (
    KEY_HASH_KEY,
    ROOT_INDEX_KEY,
    Broadcast,
    Broadcaster,
    KeyJar,
    KeyMismatchError,
    ReadBackend,
    RecordTable,
    StoreError,
    WriteBackend,
    derive_key,
    maybe_expire,
)


# ============================================================
# Record Table
# ============================================================

def test_table_roundtrip_and_delete(table):
    table.put("a", b"1")
    table.put("b", b"2", iv=b"iv")
    assert table.get("a") == (None, b"1")
    assert table.get("b") == (b"iv", b"2")
    table.delete_many(["a"])
    assert table.get("a") is None
    assert len(table) == 1


def test_transaction_rolls_back(table):
    table.put("kept", b"1")
    with pytest.raises(RuntimeError):
        with table.transaction():
            table.put("lost", b"2")
            raise RuntimeError("boom")
    assert table.get("lost") is None
    assert table.get("kept") == (None, b"1")


def test_table_is_shared_between_connections(tmp_path):
    path = tmp_path / "shared.sqlite3"
    with RecordTable(path) as one, RecordTable(path) as two:
        one.put("k", b"v")
        assert two.get("k") == (None, b"v")


def test_reads_do_not_wait_for_a_write_transaction(table):
    table.put("old", b"1")
    seen = []
    with table.transaction():
        table.put("new", b"2")
        assert table.get("new") == (None, b"2")

        reader = threading.Thread(target=lambda: seen.append((table.get("old"), table.get("new"))))
        reader.start()
        reader.join(timeout=5)
        assert not reader.is_alive()

    assert seen == [((None, b"1"), None)]
    assert table.get("new") == (None, b"2")

def test_sqlite_errors_become_store_errors(table):
    table.close()
    with pytest.raises(StoreError):
        table.get("anything")


# ============================================================
# Key Jar
# ============================================================

def test_key_jar_generates_and_persists(tmp_path):
    jar = KeyJar(tmp_path / "key.json")
    assert jar.get() is None
    secret = jar.get_or_generate()
    assert len(secret) == 32
    assert KeyJar(tmp_path / "key.json").get() == secret
    assert os.stat(tmp_path / "key.json").st_mode & 0o777 == 0o600


def test_key_jar_expires(tmp_path):
    path = tmp_path / "key.json"
    jar = KeyJar(path)
    jar.get_or_generate()
    record = json.loads(path.read_text())
    record["expires"] = time.time() - 1
    path.write_text(json.dumps(record))
    assert jar.get() is None
    assert not path.exists()
    assert jar.get_or_generate() is not None


# ============================================================
# Broadcaster
# ============================================================

def test_broadcaster_unsubscribe():
    bus = Broadcaster()
    seen = []
    unsubscribe = bus.subscribe(seen.append)
    bus.publish(Broadcast("write", provider="acme"))
    unsubscribe()
    bus.publish(Broadcast("reset"))
    assert seen == [Broadcast("write", provider="acme")]


def test_broadcast_rejects_unknown_type():
    with pytest.raises(ValueError):
        Broadcast("explode")


# ============================================================
# Connect
# ============================================================

def test_reader_sees_unclaimed_store_as_absent(table):
    assert ReadBackend.connect(table, SECRET) is None
    assert ReadBackend.connect(table, None) is None
    assert len(table) == 0


def test_writer_claims_unclaimed_store(table, broadcaster, messages):
    WriteBackend.connect(table, SECRET, broadcaster)
    assert table.get(KEY_HASH_KEY) is not None
    assert messages == [Broadcast("rekey")]
    assert ReadBackend.connect(table, SECRET) is not None
    assert ReadBackend.connect(table, OTHER_SECRET) is None


def test_writer_reconnect_does_not_rekey(table, broadcaster, messages):
    WriteBackend.connect(table, SECRET, broadcaster)
    WriteBackend.connect(table, SECRET, broadcaster)
    assert messages == [Broadcast("rekey")]


def test_writer_with_other_secret_fails(backend, table):
    with pytest.raises(KeyMismatchError):
        WriteBackend.connect(table, OTHER_SECRET)


def test_derive_key_is_deterministic():
    assert derive_key(SECRET) == derive_key(SECRET)
    assert derive_key(SECRET) != derive_key(OTHER_SECRET)
    assert len(derive_key(SECRET)) == 32


# ============================================================
# Records
# ============================================================

def test_encrypted_roundtrip(backend, table):
    key = backend.put({"hello": ["world", 1]})
    assert backend.get(key) == {"hello": ["world", 1]}
    # anonymous records are keyed by their IV
    assert len(b64dec(key)) == 12
    assert b"hello" not in table.get(key)[1]


def test_binary_roundtrip(backend):
    keys = backend.puts([b"\x00\x01", b"\xff"], binary=True)
    assert [backend.get(k, binary=True) for k in keys] == [b"\x00\x01", b"\xff"]


def test_missing_record_is_none(backend):
    assert backend.get("nope") is None


def test_tampered_record_fails(backend, table):
    key = backend.put("secret")
    iv, value = table.get(key)
    table.put(key, bytes([value[0] ^ 1]) + value[1:])
    with pytest.raises(StoreError):
        backend.get(key)


def test_root_index_update(backend, table):
    assert backend.get_root_index() == {}
    backend.update_root_index(lambda index: index.__setitem__("acme", "k1"))
    backend.update_root_index(lambda index: index.__setitem__("other", "k2"))
    assert backend.get_root_index() == {"acme": "k1", "other": "k2"}
    iv, _ = table.get(ROOT_INDEX_KEY)
    assert iv is not None and len(iv) == 12


def test_root_index_update_refuses_rekeyed_store(backend, table):
    table.clear()
    WriteBackend.connect(table, OTHER_SECRET)
    with pytest.raises(KeyMismatchError):
        backend.update_root_index(lambda index: index.__setitem__("acme", "k"))


def test_clear_wipes_marker_and_broadcasts(backend, table, messages):
    backend.put("x")
    backend.clear()
    assert len(table) == 0
    assert messages[-1] == Broadcast("rekey", clear=backend.marker)


# ============================================================
# Expiry
# ============================================================

def test_maybe_expire_keeps_current_or_unclaimed_store(table, broadcaster, messages):
    assert maybe_expire(table, None, broadcaster) is False
    WriteBackend.connect(table, SECRET, broadcaster).put("x")
    assert maybe_expire(table, SECRET, broadcaster) is False
    assert len(table) == 2
    assert messages == [Broadcast("rekey")]


@pytest.mark.parametrize("secret", [None, OTHER_SECRET])
def test_maybe_expire_wipes_unreadable_store(table, broadcaster, messages, secret):
    backend = WriteBackend.connect(table, SECRET, broadcaster)
    backend.put("x")
    assert maybe_expire(table, secret, broadcaster) is True
    assert len(table) == 0
    assert messages[-1] == Broadcast("rekey", clear=backend.marker)
    # a new secret can claim the wiped store
    assert WriteBackend.connect(table, OTHER_SECRET) is not None
