"""
Test the codec helpers: base64, hashing slugs and smart decoding.
"""

import hashlib

import pytest

from vaultline.codec import (
    DecodeError,
    b64dec,
    b64enc,
    deserialize,
    is_printable_unicode,
    key_hash,
    path_slug,
    repair_strings,
    serialize,
    smart_decode,
    smart_decode_text,
    timeline_slug,
)


def test_b64_is_url_safe():
    data = bytes([0xfb, 0xff, 0xfe])
    encoded = b64enc(data)
    assert "+" not in encoded and "/" not in encoded
    assert b64dec(encoded) == data


def test_serialize_is_compact_and_keeps_order():
    assert serialize({"b": 1, "a": [1, "é"]}) == '{"b":1,"a":[1,"é"]}'.encode("utf-8")
    assert deserialize(serialize({"x": None})) == {"x": None}


def test_key_hash_is_b64_sha256():
    key = b"k" * 32
    assert b64dec(key_hash(key)) == hashlib.sha256(key).digest()


def test_path_slug_is_stable_and_path_sensitive():
    slug = path_slug(["export.zip", "a.json"])
    assert len(slug) == 16
    assert slug == path_slug(("export.zip", "a.json"))
    assert slug != path_slug(["export.zip", "b.json"])

    digest = hashlib.sha1(b'"export.zip/a.json"').digest()
    first = int.from_bytes(digest[0:4], "little")
    assert slug.startswith(f"{first:08x}")


def test_timeline_slug_sorts_by_time():
    token = {"text": "hi"}
    early = timeline_slug(1_000_000_000.9, token)
    late = timeline_slug(1_600_000_000, token)
    assert early[:8] == f"{1_000_000_000:08x}"
    assert early < late
    assert timeline_slug(1_000_000_000, token) == early
    assert timeline_slug(1_000_000_000, {"text": "other"}) != early


def test_smart_decode_repairs_double_encoding():
    original = "Crème brûlée"
    twice = original.encode("utf-8").decode("latin-1").encode("utf-8")
    assert smart_decode(twice) == original


def test_smart_decode_leaves_plain_utf8_alone():
    assert smart_decode("Crème brûlée".encode("utf-8")) == "Crème brûlée"
    assert smart_decode(b"plain ascii") == "plain ascii"


def test_smart_decode_normalizes_newlines():
    assert smart_decode(b"a\r\nb\rc\n") == "a\nb\nc\n"


def test_smart_decode_falls_back_to_utf16be():
    assert smart_decode("hello".encode("utf-16-be")) == "hello"


def test_smart_decode_rejects_binary():
    with pytest.raises(DecodeError):
        smart_decode(b"\x00\x01\x02\xff\xfe\x00\x07")


def test_is_printable_unicode():
    assert is_printable_unicode("tab\tnewline\n emoji 🎉")
    assert is_printable_unicode("")
    assert not is_printable_unicode("bell\x07")


def test_repair_strings_walks_json():
    broken = "é".encode("utf-8").decode("latin-1")
    value = {"a": [broken, 1, None], "b": {"c": broken}}
    assert repair_strings(value) == {"a": ["é", 1, None], "b": {"c": "é"}}
    assert smart_decode_text("fine") == "fine"
