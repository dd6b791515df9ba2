# codec.py
# Vaultline – Codec subsystem: base64, serialization, content hashing, text decoding heuristics

import base64
import hashlib
import json
import math
import unicodedata
from typing import Any


# ============================================================
# Exceptions
# ============================================================

class DecodeError(Exception):
    """Bytes could not be decoded to a printable Unicode string."""
    pass


# ============================================================
# Base64
# ============================================================

def b64enc(data: bytes) -> str:
    """URL-safe base64 ("+" -> "-", "/" -> "_"), padding kept."""
    return base64.urlsafe_b64encode(bytes(data)).decode("ascii")


def b64dec(text: str) -> bytes:
    return base64.urlsafe_b64decode(text.encode("ascii"))


# ============================================================
# Serialization
# ============================================================

def serialize(obj: Any) -> bytes:
    """Compact JSON, UTF-8 encoded, keys in insertion order."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def deserialize(data: bytes) -> Any:
    return json.loads(bytes(data).decode("utf-8"))


# ============================================================
# Content Hashing
# ============================================================

def key_hash(key: bytes) -> str:
    """Fingerprint of a cipher key, stored in the clear as the store's key marker."""
    return b64enc(hashlib.sha256(key).digest())


def _uint32_words(digest: bytes, count: int) -> list[int]:
    # Little-endian words, matching how the slugs were first defined
    return [int.from_bytes(digest[i * 4:i * 4 + 4], "little") for i in range(count)]


def path_slug(path) -> str:
    """
    Stable identifier for a file, derived from its archive path only.

    Args:
        path: Sequence of path segments (outermost archive first)

    Returns:
        16 hex characters
    """
    digest = hashlib.sha1(serialize("/".join(path))).digest()
    return "".join(f"{word:08x}" for word in _uint32_words(digest, 2))


def timeline_slug(timestamp: float, token: Any) -> str:
    """
    Dedup key and sort key for a timeline entry.

    The first half is the timestamp in hex, so lexicographic order over slugs
    follows time order; the second half is a hash of the raw token.
    """
    digest = hashlib.sha1(serialize(token)).digest()
    (word,) = _uint32_words(digest, 1)
    return f"{math.floor(timestamp):08x}{word:08x}"


# ============================================================
# Smart Decode
# ============================================================

# U+F8FF is the Apple logo on macOS
_EXTRA_PRINTABLE = frozenset("\n\r\t\uf8ff")
_PRINTABLE_CATEGORIES = frozenset("LMNSPZ")


def is_printable_unicode(text: str) -> bool:
    for ch in text:
        if ch in _EXTRA_PRINTABLE:
            continue
        category = unicodedata.category(ch)
        if category[0] in _PRINTABLE_CATEGORIES or category == "Cf":
            continue
        return False
    return True


def _undo_double_encoding(text: str) -> str | None:
    try:
        return text.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return None


def smart_decode(data: bytes) -> str:
    """
    Decode bytes that are *probably* UTF-8.

    Some companies (e.g. Amazon, Facebook) mis-encode some of their files by
    applying UTF-8 encoding twice. Candidates are tried in order:

    1. double-encoded UTF-8 (a double-encoded "é" reads as valid "Ã©", so this
       has to come first)
    2. plain UTF-8
    3. UTF-16 big-endian (seen in some Apple JSON files)

    Line endings are normalized to "\\n".

    Raises:
        DecodeError: if no candidate is printable
    """
    data = bytes(data)
    candidates = []
    try:
        basic = data.decode("utf-8")
    except UnicodeDecodeError:
        basic = None
    if basic is not None:
        double = _undo_double_encoding(basic)
        if double is not None:
            candidates.append(double)
        candidates.append(basic)

    for text in candidates:
        if is_printable_unicode(text):
            return _normalize_newlines(text)

    try:
        text = data.decode("utf-16-be")
    except UnicodeDecodeError:
        text = None
    if text is not None and is_printable_unicode(text):
        return _normalize_newlines(text)

    raise DecodeError("Could not decode data to a printable Unicode string")


def smart_decode_text(text: str) -> str:
    """Repair a single already-decoded string that may be double-encoded."""
    double = _undo_double_encoding(text)
    if double is not None and is_printable_unicode(double):
        return double
    if is_printable_unicode(text):
        return text
    raise DecodeError("Could not decode text to a printable Unicode string")


def repair_strings(value: Any) -> Any:
    """Apply smart_decode_text to every string inside decoded JSON data."""
    if isinstance(value, str):
        return smart_decode_text(value)
    if isinstance(value, list):
        return [repair_strings(item) for item in value]
    if isinstance(value, dict):
        return {key: repair_strings(item) for key, item in value.items()}
    return value


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")
