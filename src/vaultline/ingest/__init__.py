"""
Ingest subsystem for Vaultline.

Purpose: Turn user-supplied export archives into committed provider data.

Responsibilities:
- Accept local paths, URLs or in-memory bytes as top-level inputs
- Expand nested .zip / .tar.gz / .tgz / .gz containers breadth-first
- Enforce the leaf size ceiling (oversized files are recorded, not stored)
- Parse each leaf and feed the writer; commit once per session

Non-responsibilities:
- No parsing rules (see parse/ and providers/)
- No encryption (see store/)
"""

from .ingest import (
    InputFile,
    LeafFile,
    ImportResult,
    IngestError,
    input_from_bytes,
    input_from_path,
    input_from_url,
    input_from_arg,
    container_kind,
    walk_inputs,
    import_files,
    list_profiles,
)

__all__ = [
    "InputFile",
    "LeafFile",
    "ImportResult",
    "IngestError",
    "input_from_bytes",
    "input_from_path",
    "input_from_url",
    "input_from_arg",
    "container_kind",
    "walk_inputs",
    "import_files",
    "list_profiles",
]
