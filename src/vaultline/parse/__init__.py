"""
Parse subsystem for Vaultline.

Purpose: Turn one leaf file's bytes into timeline entries and metadata,
using a provider's ordered glob → tokenizer → parse rule tables.

Responsibilities:
- Compile globs and pick the first matching rule per table
- Tokenize (rule tokenizer, or the default for the file extension)
- Run parse and transform per token, capturing each failure as a ParseError
- Classify the file: parsed / skipped / empty / unknown

Non-responsibilities:
- No archive expansion (see ingest/)
- No storage or encryption
"""

from .parse import (
    Glob,
    IgnoreRule,
    MetadataRule,
    TimelineRule,
    ProfileRule,
    ParseResponse,
    find_rule,
    match_path,
    parse_by_stages,
    parse_profiles,
    parse_json,
    parse_json_lines,
    parse_csv,
    parse_iso,
    file_is_empty,
    object_is_empty,
    DEFAULT_TOKENIZERS,
)

__all__ = [
    "Glob",
    "IgnoreRule",
    "MetadataRule",
    "TimelineRule",
    "ProfileRule",
    "ParseResponse",
    "find_rule",
    "match_path",
    "parse_by_stages",
    "parse_profiles",
    "parse_json",
    "parse_json_lines",
    "parse_csv",
    "parse_iso",
    "file_is_empty",
    "object_is_empty",
    "DEFAULT_TOKENIZERS",
]
