"""
Codec subsystem for Vaultline.

Purpose: Small, dependency-free helpers shared by every other stage.

Responsibilities:
- URL-safe base64 for record keys
- JSON serialization of payloads
- Content hashes (key marker, file slugs, timeline slugs)
- Smart text decoding (undo double-encoded UTF-8, UTF-16BE fallback)

Non-responsibilities:
- No encryption (see store/)
- No tokenizing (see parse/)
"""

from .codec import (
    b64enc,
    b64dec,
    serialize,
    deserialize,
    key_hash,
    path_slug,
    timeline_slug,
    is_printable_unicode,
    smart_decode,
    smart_decode_text,
    repair_strings,
    DecodeError,
)

__all__ = [
    "b64enc",
    "b64dec",
    "serialize",
    "deserialize",
    "key_hash",
    "path_slug",
    "timeline_slug",
    "is_printable_unicode",
    "smart_decode",
    "smart_decode_text",
    "repair_strings",
    "DecodeError",
]
