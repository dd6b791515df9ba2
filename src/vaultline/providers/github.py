# github.py
# Vaultline – GitHub account export (tar.gz of JSON arrays)

from enum import Enum

from vaultline.parse import Glob, IgnoreRule, TimelineRule, parse_iso
from .provider import Provider, TimelineCategory, register_provider


class GitHubCategory(Enum):
    ACTIVITY = "activity"
    MESSAGE = "message"


def _obj(url: str) -> str:
    """Short name for a GitHub API/html URL: user, repo, repo@sha or repo#n."""
    parts = url.split("/")
    if len(parts) < 5:
        return parts[3]
    repo = parts[4]
    if len(parts) < 6:
        return repo
    kind = parts[5]
    if kind == "commit":
        return f"{repo}@{parts[6][:8]}"
    if kind in ("issues", "pull"):
        return f"{repo}#{parts[6].split('#')[0]}"
    raise ValueError(f"Can't parse object: {url}")


def _body(body: str) -> str:
    lines = body.split("\n")
    return lines[0] + " [...]" if len(lines) > 1 else lines[0]


def _comment(item):
    return (
        GitHubCategory.MESSAGE,
        parse_iso(item["created_at"]),
        (_body(item["body"]), f"{_obj(item['user'])} commented on {_obj(item['url'])}"),
    )


def _issue_event(item):
    event = " ".join(w.capitalize() for w in item["event"].split("_"))
    return (
        GitHubCategory.ACTIVITY,
        parse_iso(item["created_at"]),
        (f"Issue {event}", f"by {_obj(item['actor'])} on {_obj(item['url'])}"),
    )


GITHUB = register_provider(Provider(
    slug="github",
    display_name="GitHub",
    categories={
        GitHubCategory.ACTIVITY: TimelineCategory("a", "🖱", "Activity"),
        GitHubCategory.MESSAGE: TimelineCategory("m", "💬", "Messages"),
    },
    ignore=[
        IgnoreRule("schema.json"),
        IgnoreRule(Glob("repositories/**", dot=True)),
        IgnoreRule("protected_branches_*.json"),
        IgnoreRule("bots_*.json"),
        IgnoreRule("users_*.json"),
    ],
    timeline=[
        TimelineRule("commit_comments_*.json", _comment),
        TimelineRule("issue_comments_*.json", _comment),
        TimelineRule("issue_events_*.json", _issue_event),
        TimelineRule("issues_*.json", lambda item: (
            GitHubCategory.MESSAGE,
            parse_iso(item["created_at"]),
            (item["title"], f"{_obj(item['user'])} filed issue {_obj(item['url'])}"),
        )),
        TimelineRule("pull_requests_*.json", lambda item: (
            GitHubCategory.MESSAGE,
            parse_iso(item["created_at"]),
            (item["title"], f"{_obj(item['user'])} created pull request {_obj(item['url'])}"),
        )),
        TimelineRule("repositories_*.json", lambda item: (
            GitHubCategory.ACTIVITY,
            parse_iso(item["created_at"]),
            ("Repository Created", _obj(item["url"])),
        )),
    ],
    category_type=GitHubCategory,
))
