# parse.py
# Vaultline – Parse subsystem: glob-dispatched tokenize → parse → transform over one leaf file

import csv
import io
import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from vaultline.codec import repair_strings, serialize, smart_decode, timeline_slug
from vaultline.index.types import ParseError, TimelineEntry


# ============================================================
# Globs
# ============================================================

class Glob:
    """
    Compiled glob over archive-relative paths.

    - `**` matches across directories (and `**/` may match none)
    - `*` and `?` stay within one path segment
    - `[...]` / `[!...]` character classes
    - unless dot=True, wildcards do not match a segment's leading "."
    """

    def __init__(self, pattern: str, dot: bool = False):
        self.pattern = pattern
        self.dot = dot
        self._regex = re.compile(_translate(pattern, dot), re.DOTALL)

    def match(self, path: str) -> bool:
        return self._regex.fullmatch(path) is not None

    def __repr__(self) -> str:
        return f"Glob({self.pattern!r}, dot={self.dot})"


def _translate(pattern: str, dot: bool) -> str:
    guard = "" if dot else r"(?!\.)"
    segment = guard + "[^/]*"
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        at_segment_start = i == 0 or pattern[i - 1] == "/"
        if pattern.startswith("**/", i) and at_segment_start:
            out.append(f"(?:{segment}/)*")
            i += 3
        elif pattern.startswith("**", i) and at_segment_start:
            out.append(f"(?:{segment}(?:/{segment})*)?")
            i += 2
        elif c == "*":
            out.append((guard if at_segment_start else "") + "[^/]*")
            i += 1
        elif c == "?":
            out.append((guard if at_segment_start else "") + "[^/]")
            i += 1
        elif c == "[":
            j = pattern.find("]", i + 2)
            if j == -1:
                out.append(re.escape(c))
                i += 1
                continue
            body = pattern[i + 1:j]
            negate = body.startswith("!")
            if negate:
                body = body[1:]
            body = body.replace("\\", "\\\\")
            out.append(("[^/" if negate else "[") + body + "]")
            i = j + 1
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


def _as_glob(glob: Union[str, Glob]) -> Glob:
    return glob if isinstance(glob, Glob) else Glob(glob)


# ============================================================
# Rules
# ============================================================

Tokenizer = Callable[[bytes, Tuple[str, ...]], list]


@dataclass
class IgnoreRule:
    """Known file that is intentionally not parsed."""
    glob: Union[str, Glob]

    def __post_init__(self):
        self.glob = _as_glob(self.glob)


@dataclass
class MetadataRule:
    """Token -> (key, value) pairs kept outside the timeline."""
    glob: Union[str, Glob]
    parse: Callable[[Any], Tuple[str, Any]]
    tokenize: Optional[Tokenizer] = None
    smart: bool = False  # repair double-encoded strings in JSON tokens

    def __post_init__(self):
        self.glob = _as_glob(self.glob)


@dataclass
class TimelineRule:
    """
    Token -> zero, one or many (category, when, context) tuples.

    `when` is a datetime (naive means UTC) or epoch seconds. Returning None
    drops the token silently.
    """
    glob: Union[str, Glob]
    parse: Callable[[Any], Any]
    tokenize: Optional[Tokenizer] = None
    smart: bool = False
    filter: Optional[Callable[[Any, str], bool]] = None  # (token, profile) -> keep?

    def __post_init__(self):
        self.glob = _as_glob(self.glob)


@dataclass
class ProfileRule:
    """Where a provider lists its account profiles, and how to read them."""
    file: str
    extract: Callable[[bytes], List[str]]


def find_rule(rules: Optional[Sequence], path: str):
    """First rule whose glob matches, or None. Tables are small; a linear scan is fine."""
    for rule in rules or ():
        if rule.glob.match(path):
            return rule
    return None


# ============================================================
# Tokenizers
# ============================================================

def parse_json(data: Union[bytes, str], smart: bool = False) -> Any:
    """
    Decode JSON from bytes.

    Falls back to UTF-16BE when the UTF-8 reading fails (seen in some Apple
    *.pkpass files). Use smart=True to repair double-encoded strings
    (noticeably slower).
    """
    if isinstance(data, str):
        value = json.loads(data)
    else:
        data = bytes(data)
        try:
            value = json.loads(data.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            value = json.loads(data.decode("utf-16-be"))
    return repair_strings(value) if smart else value


def parse_json_lines(data: Union[bytes, str], smart: bool = False) -> List[Any]:
    """Newline-delimited JSON: one document per non-empty line."""
    text = data if isinstance(data, str) else bytes(data).decode("utf-8")
    return [parse_json(line, smart=smart) for line in text.split("\n") if line.strip()]


def parse_csv(data: Union[bytes, str]) -> List[dict]:
    """CSV with a header row -> list of {column: value} dicts."""
    text = data if isinstance(data, str) else smart_decode(data)
    if text.startswith("\ufeff"):
        text = text[1:]
    return [dict(row) for row in csv.DictReader(io.StringIO(text))]


def _tokenize_json(data, path, smart=False):
    return parse_json(data, smart=smart)


def _tokenize_json_lines(data, path, smart=False):
    return parse_json_lines(data, smart=smart)


def _tokenize_csv(data, path, smart=False):
    return parse_csv(data)


DEFAULT_TOKENIZERS = {
    "csv": _tokenize_csv,
    "json": _tokenize_json,
    "jsonl": _tokenize_json_lines,
    "ndjson": _tokenize_json_lines,
}


def tokenize(rule, path: Tuple[str, ...], data: bytes) -> list:
    """
    Run a rule's tokenizer, or the default one for the file extension.

    Raises:
        ValueError: no tokenizer is available, or the result is not a list
    """
    if rule.tokenize is not None:
        tokens = rule.tokenize(data, path)
        if rule.smart:
            tokens = repair_strings(tokens)
    else:
        ext = PurePosixPath(path[-1]).suffix.lstrip(".").lower() if path else ""
        tokenizer = DEFAULT_TOKENIZERS.get(ext)
        if tokenizer is None:
            raise ValueError(f"No default tokenizer for .{ext or 'unknown'}")
        tokens = tokenizer(data, path, smart=rule.smart)

    if not isinstance(tokens, list):
        raise ValueError("Non-Array Tokenization")
    return tokens


# ============================================================
# Transform
# ============================================================

def parse_iso(text: Any) -> Optional[datetime]:
    """Lenient ISO-8601 parse for rule authors; None when the value is not a date."""
    if not isinstance(text, str) or not text.strip():
        return None
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_timestamp(when: Any) -> Tuple[float, str]:
    """
    Normalize a parsed time to (epoch seconds, ISO day).

    The day is taken in the datetime's own zone; naive datetimes and bare
    numbers are treated as UTC.

    Raises:
        ValueError: when the time is missing or not a real number
    """
    if isinstance(when, datetime):
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when.timestamp(), when.date().isoformat()

    if isinstance(when, (int, float)) and not isinstance(when, bool):
        timestamp = float(when)
        if not math.isfinite(timestamp):
            raise ValueError("Received NaN for timestamp")
        day = datetime.fromtimestamp(timestamp, timezone.utc).date().isoformat()
        return timestamp, day

    if when is None:
        raise ValueError("Invalid datetime")
    raise ValueError(f"Unsupported timestamp type: {type(when).__name__}")


def transform(path: Tuple[str, ...], token: Any, parsed: tuple) -> TimelineEntry:
    """Turn one (category, when, context) tuple into an uncommitted TimelineEntry."""
    category, when, context = parsed
    timestamp, day = to_timestamp(when)
    if isinstance(category, Enum):
        category = category.value
    return TimelineEntry(
        day=day,
        timestamp=timestamp,
        slug=timeline_slug(timestamp, token),
        category=category,
        file=tuple(path),
        context=tuple(context) if isinstance(context, list) else context,
        value=token,
    )


def _as_tuples(parsed: Any) -> List[tuple]:
    if not parsed:
        return []
    if isinstance(parsed, list) and isinstance(parsed[0], (list, tuple)):
        return [tuple(p) for p in parsed]
    return [tuple(parsed)]


# ============================================================
# Output Format
# ============================================================

@dataclass
class ParseResponse:
    """Everything extracted from one leaf file."""
    timeline: List[TimelineEntry] = field(default_factory=list)
    metadata: List[Tuple[str, Any]] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    status: str = "unknown"


def _error(exc: Exception, stage: str, line: Any = None, has_line: bool = False) -> ParseError:
    message = str(exc) or type(exc).__name__
    if not has_line:
        return ParseError(stage=stage, message=message)
    try:
        text = serialize(line).decode("utf-8")
    except (TypeError, ValueError):
        text = repr(line)
    return ParseError(stage=stage, message=message, line=text)


# ============================================================
# Empty File Detection
# ============================================================

EMPTY_CHECK_LIMIT = 16 * 1024


def object_is_empty(value: Any) -> bool:
    """True when a JSON structure contains no scalar anywhere."""
    if isinstance(value, list):
        return all(object_is_empty(x) for x in value)
    if isinstance(value, dict):
        return all(object_is_empty(v) for v in value.values())
    return False


def file_is_empty(data: bytes) -> bool:
    """
    Whitespace only, an empty/all-empty JSON structure, or a CSV with zero rows.

    Valid JSON is judged as JSON only; a one-line non-JSON file counts as a
    header-only CSV.
    """
    if len(data) > EMPTY_CHECK_LIMIT:
        return False

    if not bytes(data).decode("utf-8", errors="replace").strip():
        return True

    try:
        return object_is_empty(parse_json(data))
    except (ValueError, UnicodeDecodeError):
        pass

    try:
        if len(parse_csv(data)) == 0:
            return True
    except (ValueError, UnicodeDecodeError, csv.Error):
        pass

    return False


# ============================================================
# Main Parse Function
# ============================================================

def match_path(path: Sequence[str]) -> str:
    """Rules match against the path inside the top-level input."""
    return "/".join(path[1:])


def parse_by_stages(
    provider,
    path: Sequence[str],
    data: bytes,
    profile: Optional[str] = None,
) -> ParseResponse:
    """
    Classify one leaf file and extract its metadata and timeline entries.

    Never raises for bad input: each failing token (or a failing tokenizer)
    becomes a ParseError on the response and the rest carries on.

    Args:
        provider: Object with `ignore`, `metadata` and `timeline` rule lists
        path: Full path segments, top-level input name first
        data: Raw file bytes
        profile: Selected account profile, passed to timeline rule filters

    Returns:
        ParseResponse with timeline, metadata, errors and status
    """
    path = tuple(path)
    relative = match_path(path)
    timeline_rule = find_rule(provider.timeline, relative)
    metadata_rule = find_rule(getattr(provider, "metadata", None), relative)
    ignore_rule = find_rule(getattr(provider, "ignore", None), relative)

    response = ParseResponse()

    if metadata_rule is not None:
        response.status = "parsed"
        try:
            tokens = tokenize(metadata_rule, path, data)
        except Exception as e:
            response.errors.append(_error(e, "tokenize"))
            tokens = []
        for token in tokens:
            try:
                key, value = metadata_rule.parse(token)
                response.metadata.append((key, value))
            except Exception as e:
                response.errors.append(_error(e, "parse", token, has_line=True))

    if timeline_rule is not None:
        response.status = "parsed"
        try:
            tokens = tokenize(timeline_rule, path, data)
        except Exception as e:
            response.errors.append(_error(e, "tokenize"))
            tokens = []
        for token in tokens:
            try:
                if profile and timeline_rule.filter is not None:
                    if timeline_rule.filter(token, profile) is False:
                        continue
                parsed = _as_tuples(timeline_rule.parse(token))
            except Exception as e:
                response.errors.append(_error(e, "parse", token, has_line=True))
                continue
            for item in parsed:
                try:
                    response.timeline.append(transform(path, token, item))
                except Exception as e:
                    response.errors.append(_error(e, "transform", token, has_line=True))

    if response.status == "unknown":
        if ignore_rule is not None:
            response.status = "skipped"
        elif file_is_empty(data):
            response.status = "empty"

    return response


def parse_profiles(provider, files: Iterable[Tuple[Sequence[str], bytes]]) -> List[str]:
    """Run a provider's profile rule over (path, data) pairs; first matching file wins."""
    rule = getattr(provider, "profile", None)
    if rule is None:
        return []
    for path, data in files:
        if match_path(path) == rule.file:
            return list(rule.extract(data))
    return []
