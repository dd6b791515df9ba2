"""
Test the provider registry and the GitHub export rules.
"""

import pytest

from conftest import json_bytes, make_tar_gz
from vaultline.ingest import input_from_bytes
from vaultline.manager import Vault
from vaultline.parse import parse_by_stages
from vaultline.providers import GITHUB, PROVIDERS, GitHubCategory, Provider, get_provider, register_provider
from vaultline.providers.github import _body, _obj

USER = "https://github.com/octocat"
REPO = "https://github.com/octocat/hello"


def test_registry():
    assert get_provider("github") is GITHUB
    assert "github" in PROVIDERS
    with pytest.raises(KeyError, match="nope"):
        get_provider("nope")
    with pytest.raises(ValueError):
        register_provider(Provider(slug="github", display_name="Again"))


@pytest.mark.parametrize("url,expected", [
    (USER, "octocat"),
    (REPO, "hello"),
    (REPO + "/commit/0123456789abcdef", "hello@01234567"),
    (REPO + "/issues/7", "hello#7"),
    (REPO + "/pull/8#discussion_r1", "hello#8"),
])
def test_object_names(url, expected):
    assert _obj(url) == expected


def test_object_names_reject_unknown_kinds():
    with pytest.raises(ValueError):
        _obj(REPO + "/wiki/Home")


def test_body_keeps_first_line():
    assert _body("one line") == "one line"
    assert _body("first\nsecond") == "first [...]"


def test_ignored_files():
    for name in ("schema.json", "repositories/hello/.git/HEAD", "users_000001.json"):
        assert parse_by_stages(GITHUB, ("export.tar.gz", name), b"[]").status == "skipped"


def test_issue_event_rule():
    data = json_bytes([{
        "event": "head_ref_deleted",
        "created_at": "2020-05-06T07:08:09Z",
        "actor": USER,
        "url": REPO + "/issues/3",
    }])
    response = parse_by_stages(GITHUB, ("export.tar.gz", "issue_events_000001.json"), data)
    assert response.status == "parsed"
    (entry,) = response.timeline
    assert entry.category == GitHubCategory.ACTIVITY.value
    assert entry.context == ("Issue Head Ref Deleted", "by octocat on hello#3")


def test_github_export_import(config):
    archive = make_tar_gz({
        "schema.json": b"{}",
        "issue_comments_000001.json": json_bytes([{
            "created_at": "2021-01-01T00:00:00Z",
            "body": "Looks good\nthanks",
            "user": USER,
            "url": REPO + "/issues/1",
        }]),
        "pull_requests_000001.json": json_bytes([{
            "created_at": "2021-01-02T00:00:00Z",
            "title": "Fix typo",
            "user": USER,
            "url": REPO + "/pull/2",
        }]),
        "repositories_000001.json": json_bytes([{"created_at": "2019-01-01T00:00:00Z", "url": REPO}]),
    })
    with Vault(config) as vault:
        result = vault.import_files("github", [input_from_bytes("github.tar.gz", archive)])
        assert result.files == 4
        assert result.timeline_entries == 3
        assert result.errors == 0

        keys = vault.get_timeline_entries("github")
        assert {k.category for k in keys} == {GitHubCategory.ACTIVITY, GitHubCategory.MESSAGE}
        contexts = sorted(vault.hydrate_timeline_entry("github", k).context for k in keys)
        assert contexts == [
            ("Fix typo", "octocat created pull request hello#2"),
            ("Looks good [...]", "octocat commented on hello#1"),
            ("Repository Created", "hello"),
        ]
