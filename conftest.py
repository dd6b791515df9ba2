"""
Shared fixtures: a throwaway vault directory, store connections and the
"acme" test provider.
"""

import io
import json
import tarfile
import zipfile
from enum import Enum

import pytest

from vaultline.config import VaultConfig
from vaultline.parse import IgnoreRule, MetadataRule, ProfileRule, TimelineRule, parse_iso, parse_json
from vaultline.providers import PROVIDERS, Provider, TimelineCategory
from vaultline.store import Broadcaster, RecordTable, WriteBackend

SECRET = b"\x01" * 32
OTHER_SECRET = b"\x02" * 32


# ============================================================
# Test Provider
# ============================================================

class AcmeCategory(Enum):
    POST = "post"
    LIKE = "like"


def _when(value):
    return value if isinstance(value, (int, float)) else parse_iso(value)


def _metadata_tokens(data, path):
    return list(parse_json(data).items())


ACME = Provider(
    slug="acme",
    display_name="Acme",
    categories={
        AcmeCategory.POST: TimelineCategory("p", "📝", "Posts"),
        AcmeCategory.LIKE: TimelineCategory("l", "👍", "Likes"),
    },
    ignore=[IgnoreRule("**/README.txt")],
    metadata=[MetadataRule("account/profile.json", lambda kv: (kv[0], kv[1]), tokenize=_metadata_tokens)],
    timeline=[
        TimelineRule(
            "*.json",
            lambda item: (AcmeCategory.POST, _when(item["time"]), (item["text"],)),
            filter=lambda item, profile: item.get("user", profile) == profile,
        ),
        TimelineRule(
            "**/*.csv",
            lambda row: (AcmeCategory.LIKE, parse_iso(row["date"]), (row["what"],)),
        ),
    ],
    profile=ProfileRule("account/profile.json", lambda data: [parse_json(data)["name"]]),
    category_type=AcmeCategory,
)
PROVIDERS.setdefault(ACME.slug, ACME)


# ============================================================
# Archive Builders
# ============================================================

def make_zip(files: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
        for name, data in files.items():
            z.writestr(name, data)
    return buf.getvalue()


def make_tar_gz(files: dict) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def json_bytes(value) -> bytes:
    return json.dumps(value).encode("utf-8")


SCENARIO_JSON = json_bytes([
    {"time": "2021-03-04T05:06:07Z", "text": "hello"},
    {"time": 1614834367, "text": "world"},
])
SCENARIO_CSV = (
    b"date,what\n"
    b"2021-01-01T00:00:00Z,cats\n"
    b"not a date,dogs\n"
    b"2021-01-02T00:00:00+02:00,birds\n"
)


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def acme():
    return ACME


@pytest.fixture
def config(tmp_path):
    return VaultConfig(data_dir=tmp_path / "vault", verbose=False)


@pytest.fixture
def table(tmp_path):
    t = RecordTable(tmp_path / "records.sqlite3")
    yield t
    t.close()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def messages(broadcaster):
    received = []
    broadcaster.subscribe(received.append)
    return received


@pytest.fixture
def backend(table, broadcaster):
    return WriteBackend.connect(table, SECRET, broadcaster)
