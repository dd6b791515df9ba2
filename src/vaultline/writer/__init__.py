"""
Writer subsystem for Vaultline.

Purpose: The write path. Buffer one import session, commit it atomically,
and remove a provider's data.

Responsibilities:
- Encrypt file bytes and batched timeline payloads
- Dedup timeline entries by slug within a session
- Sort and commit the provider index, root index last
- Reset a provider (wipe the store when it was the last one)

Non-responsibilities:
- No parsing (see parse/)
- No archive walking (see ingest/)
"""

from .writer import (
    Writer,
    Resetter,
    DEFAULT_BATCH_SIZE,
    DEFAULT_FILE_BUFFER_LIMIT,
    DEFAULT_TIMELINE_WRITE_LIMIT,
)

__all__ = [
    "Writer",
    "Resetter",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_FILE_BUFFER_LIMIT",
    "DEFAULT_TIMELINE_WRITE_LIMIT",
]
